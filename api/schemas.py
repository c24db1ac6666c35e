from typing import Any, Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, Field

class StartRequest(BaseModel):
    """Match start request schema."""
    seed: int = 42
    paced: bool = True  # False drops every pacing/thinking delay

class PlaceUnitIn(BaseModel):
    """Unit placement request schema."""
    kind: Literal["INFANTRY", "TANK", "HELI"]
    tile: Tuple[int, int]  # (x, z) tile indices
    team: Literal["player", "enemy"] = "player"

class SelectIn(BaseModel):
    unit_id: int

class BlockIn(BaseModel):
    """One editor block; REPEAT blocks nest their children."""
    type: Literal["MOVE", "ATTACK", "WAIT", "REPEAT"]
    params: Dict[str, Any] = Field(default_factory=dict)
    children: Optional[List["BlockIn"]] = None

class ScriptIn(BaseModel):
    blocks: List[BlockIn]

class PreviewStepOut(BaseModel):
    type: str
    x: float
    z: float
    valid: bool
    reason: Optional[str] = None
    dist: Optional[float] = None

class EventsResponse(BaseModel):
    """Events response schema."""
    next_offset: int
    events: list[dict]
