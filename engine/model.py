from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

Team = Literal["player", "enemy"]
Owner = Literal["player", "enemy", "neutral"]
Position = Tuple[float, float, float]  # (x, y, z), y is the kind's fixed elevation
Coord = Tuple[float, float]  # (x, z) on the ground plane


def other_team(team: Team) -> Team:
    return "enemy" if team == "player" else "player"


class Phase(Enum):
    """Half-turn during which one team acts."""
    PLAYER = "player"
    ENEMY = "enemy"


@dataclass(frozen=True)
class UnitKind:
    """Fixed stats shared by every unit of one kind"""
    name: str
    cost: int
    max_hp: int
    damage: int
    range: float
    speed: float
    ap: int  # action points per turn
    elevation: float
    flying: bool = False


UNIT_KINDS: Dict[str, UnitKind] = {
    "INFANTRY": UnitKind(name="Soldier", cost=50, max_hp=50, damage=15, range=4,
                         speed=4, ap=2, elevation=0.5),
    "TANK": UnitKind(name="Tank", cost=150, max_hp=200, damage=60, range=6,
                     speed=3, ap=2, elevation=0.8),
    "HELI": UnitKind(name="Helicopter", cost=300, max_hp=120, damage=40, range=8,
                     speed=6, ap=2, elevation=4.0, flying=True),
}


# --- Script commands -------------------------------------------------------
# Parameters are kept as authored; the interpreter parses them at run time so
# a malformed value degrades that single step instead of the whole script.

@dataclass(frozen=True)
class MoveCommand:
    target: Any  # "x,z" or a 2-sequence


@dataclass(frozen=True)
class AttackCommand:
    policy: Any = "closest"  # closest | weakest | base


@dataclass(frozen=True)
class WaitCommand:
    duration: Any = 1


@dataclass(frozen=True)
class RepeatCommand:
    times: Any = 3
    children: Tuple["Command", ...] = ()


Command = Union[MoveCommand, AttackCommand, WaitCommand, RepeatCommand]
Script = Tuple[Command, ...]


@dataclass
class Unit:
    id: int
    team: Team
    kind_id: str  # Key into UNIT_KINDS
    pos: Position
    hp: float
    ap: int
    script: Script = ()

    @property
    def kind(self) -> UnitKind:
        """Get the UnitKind definition for this unit"""
        return UNIT_KINDS[self.kind_id]

    @property
    def max_hp(self) -> int:
        return self.kind.max_hp

    @property
    def max_ap(self) -> int:
        return self.kind.ap


@dataclass
class CapturePoint:
    id: int
    pos: Position
    owner: Owner = "neutral"


@dataclass
class TurnState:
    phase: Phase = Phase.PLAYER
    turn: int = 1


@dataclass
class Event:
    kind: str
    turn: int
    data: Dict


@dataclass(frozen=True)
class Rejected:
    """Typed refusal of an action. The world is left untouched."""
    reason: str


def default_capture_points() -> List[CapturePoint]:
    return [
        CapturePoint(id=1, pos=(-15.0, 0.0, -15.0), owner="player"),
        CapturePoint(id=2, pos=(15.0, 0.0, 15.0), owner="enemy"),
        CapturePoint(id=3, pos=(0.0, 0.0, 0.0), owner="neutral"),
    ]


@dataclass
class Snapshot:
    """Read-only copy of the world handed to presentation layers."""
    turn: TurnState
    treasury: int
    units: List[Unit] = field(default_factory=list)
    capture_points: List[CapturePoint] = field(default_factory=list)
    selected_id: Optional[int] = None
