"""Tunable rule constants and runtime pacing for a match."""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Match settings, overridable through TACTICS_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="TACTICS_", env_file=".env", env_file_encoding="utf-8")

    # Map
    map_size: int = Field(default=20, gt=0, description="Tiles per map side")
    tile_size: float = Field(default=2.0, gt=0.0, description="World units per tile")

    # Economy
    starting_money: int = Field(default=500, ge=0)
    base_income: int = Field(default=100, ge=0, description="Paid at every player phase start")
    income_rate: int = Field(default=150, ge=0, description="Paid per player-owned capture point")

    # Rules
    capture_radius: float = Field(default=4.0, gt=0.0)
    deploy_radius: float = Field(default=10.0, gt=0.0, description="Max distance from a friendly point for placement")
    move_budget_factor: float = Field(default=2.0, gt=0.0, description="Single MOVE allowance is speed * factor")

    # Pacing (seconds)
    move_pacing_s: float = Field(default=0.8, ge=0.0)
    attack_pacing_s: float = Field(default=0.5, ge=0.0)
    ai_think_s: float = Field(default=1.0, ge=0.0)

    # Enemy reinforcements
    spawn_probability: float = Field(default=0.5, ge=0.0, le=1.0)
    spawn_kind: str = "TANK"
    max_enemy_units: int = Field(default=12, ge=0)
    enemy_home: List[float] = Field(default_factory=lambda: [12.0, 12.0])
    spawn_spread: float = Field(default=2.0, ge=0.0)

    seed: int = 42
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:5174", "http://localhost:5175"],
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
