import logging
import math
from typing import Dict, Iterable, List, Optional

from .model import UNIT_KINDS, CapturePoint, Owner, Position, Script, Team, TurnState, Unit

logger = logging.getLogger(__name__)


class World:
    """Authoritative match state.

    Units live in an id -> unit index; callers keep ids, never unit objects,
    across suspension points. Mutation primitives apply changes without
    judging them: whether an attack or capture is legal is decided in
    ``engine.rules`` before these are called.
    """

    def __init__(self, treasury: int, capture_points: Iterable[CapturePoint], turn: Optional[TurnState] = None):
        self.treasury = treasury
        self.turn = turn or TurnState()
        self._units: Dict[int, Unit] = {}
        self._points: Dict[int, CapturePoint] = {cp.id: cp for cp in capture_points}
        self._next_id = 1

    # --- queries -----------------------------------------------------------

    def unit(self, unit_id: int) -> Optional[Unit]:
        """Fresh lookup by id; None once the unit is gone."""
        return self._units.get(unit_id)

    def units(self) -> List[Unit]:
        return list(self._units.values())

    def units_by_team(self, team: Team) -> List[Unit]:
        return [u for u in self._units.values() if u.team == team]

    def live_units(self, team: Optional[Team] = None) -> List[Unit]:
        return [u for u in self._units.values() if u.hp > 0 and (team is None or u.team == team)]

    def capture_point(self, point_id: int) -> Optional[CapturePoint]:
        return self._points.get(point_id)

    @property
    def capture_points(self) -> List[CapturePoint]:
        return list(self._points.values())

    def owned_points(self, owner: Owner) -> List[CapturePoint]:
        return [cp for cp in self._points.values() if cp.owner == owner]

    def nearest_point_to(self, pos: Position) -> Optional[CapturePoint]:
        best = None
        best_d = float("inf")
        for cp in self._points.values():
            d = math.dist(pos, cp.pos)
            if d < best_d:
                best, best_d = cp, d
        return best

    # --- mutation primitives -------------------------------------------------

    def add_unit(self, team: Team, kind_id: str, pos: Position, ap: Optional[int] = None,
                 hp: Optional[float] = None, script: Script = (), unit_id: Optional[int] = None) -> int:
        kind = UNIT_KINDS[kind_id]
        uid = unit_id if unit_id is not None else self._next_id
        self._next_id = max(self._next_id, uid + 1)
        self._units[uid] = Unit(
            id=uid, team=team, kind_id=kind_id,
            pos=(float(pos[0]), kind.elevation, float(pos[2])),
            hp=kind.max_hp if hp is None else hp,
            ap=kind.ap if ap is None else ap,
            script=script,
        )
        logger.debug(f"[World] Added {team} {kind_id} #{uid} at {self._units[uid].pos}")
        return uid

    def apply_damage(self, unit_id: int, amount: float) -> None:
        u = self._units[unit_id]
        u.hp = max(0.0, u.hp - amount)

    def set_position(self, unit_id: int, pos: Position) -> None:
        self._units[unit_id].pos = pos

    def spend_ap(self, unit_id: int, amount: int = 1) -> None:
        u = self._units[unit_id]
        u.ap = max(0, u.ap - amount)

    def reset_ap(self, team: Team) -> None:
        for u in self._units.values():
            if u.team == team:
                u.ap = u.max_ap

    def set_script(self, unit_id: int, script: Script) -> None:
        self._units[unit_id].script = script

    def set_owner(self, point_id: int, owner: Owner) -> None:
        self._points[point_id].owner = owner

    def deduct_cost(self, cost: int) -> None:
        self.treasury -= cost

    def add_income(self, amount: int) -> None:
        self.treasury += amount

    def remove_dead_units(self) -> List[Unit]:
        """Cull every unit at or below zero hp. Returns the removed units."""
        dead = [u for u in self._units.values() if u.hp <= 0]
        for u in dead:
            del self._units[u.id]
            logger.info(f"[World] Unit #{u.id} ({u.team} {u.kind_id}) destroyed")
        return dead

    def check_invariants(self) -> None:
        assert self.treasury >= 0, f"treasury went negative: {self.treasury}"
        for u in self._units.values():
            assert 0 < u.hp <= u.max_hp, f"unit #{u.id} hp {u.hp} outside (0, {u.max_hp}]"
            assert 0 <= u.ap <= u.max_ap, f"unit #{u.id} ap {u.ap} outside [0, {u.max_ap}]"
