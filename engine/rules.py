"""Combat and capture rules shared by the AI and the script interpreter.

Callers re-fetch units by id right before calling into these, since an
earlier step of the same turn may have moved, damaged or removed them.
"""
import math
from typing import List, Literal, Optional, Sequence, Tuple

from .model import CapturePoint, Coord, Position, Team, Unit
from .world import World

AttackOutcome = Literal["hit", "out_of_range"]
TARGET_POLICIES = ("closest", "weakest", "base")


def distance_3d(pos1: Position, pos2: Position) -> float:
    """Calculate Euclidean distance between two 3D positions."""
    dx = pos2[0] - pos1[0]
    dy = pos2[1] - pos1[1]
    dz = pos2[2] - pos1[2]
    return math.sqrt(dx * dx + dy * dy + dz * dz)


def ground_distance(pos: Position, coord: Coord) -> float:
    """Distance on the x/z plane, ignoring elevation."""
    dx = coord[0] - pos[0]
    dz = coord[1] - pos[2]
    return math.sqrt(dx * dx + dz * dz)


def normalize_2d(vec: Tuple[float, float]) -> Tuple[float, float]:
    """Normalize a 2D vector to unit length."""
    mag = math.sqrt(vec[0] * vec[0] + vec[1] * vec[1])
    if mag < 0.001:
        return (0.0, 0.0)
    return (vec[0] / mag, vec[1] / mag)


def is_in_range(attacker: Unit, target: Unit) -> bool:
    return distance_3d(attacker.pos, target.pos) <= attacker.kind.range


def resolve_attack(world: World, attacker: Unit, target: Unit) -> AttackOutcome:
    """Apply one attack. The caller culls the target if it died."""
    if not is_in_range(attacker, target):
        return "out_of_range"
    world.apply_damage(target.id, attacker.kind.damage)
    world.spend_ap(attacker.id, 1)
    return "hit"


def select_target(unit: Unit, candidates: Sequence[Unit], policy: str) -> Optional[Unit]:
    """Pick an attack target among candidates.

    ``base`` has no structural base entity to aim at and simply takes the
    first candidate in iteration order. It is a coarse placeholder policy.
    """
    if not candidates:
        return None
    if policy == "closest":
        best = None
        best_d = float("inf")
        for c in candidates:
            d = distance_3d(unit.pos, c.pos)
            if d < best_d:
                best, best_d = c, d
        return best
    if policy == "weakest":
        return min(candidates, key=lambda c: (c.hp, c.id))
    if policy == "base":
        return candidates[0]
    return None


def capture_candidates(pos: Position, capture_points: Sequence[CapturePoint], capture_radius: float) -> List[CapturePoint]:
    """Points whose ground distance to pos is inside the capture radius."""
    return [cp for cp in capture_points if ground_distance(pos, (cp.pos[0], cp.pos[2])) < capture_radius]


def try_capture(world: World, pos: Position, team: Team, capture_radius: float) -> List[CapturePoint]:
    """Give every point around pos to team. Returns points that changed hands."""
    changed: List[CapturePoint] = []
    for cp in capture_candidates(pos, world.capture_points, capture_radius):
        if cp.owner != team:
            world.set_owner(cp.id, team)
            changed.append(cp)
    return changed


def can_afford(treasury: int, cost: int) -> bool:
    return treasury >= cost
