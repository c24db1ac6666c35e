import asyncio
import logging
import math
from typing import List, Optional

from .config import Settings
from .interpreter import Sleep
from .model import Coord, Event, Unit
from .rng import DRNG
from .rules import is_in_range, normalize_2d, resolve_attack, distance_3d, try_capture
from .world import World

logger = logging.getLogger(__name__)


class AIController:
    """Single-pass enemy policy run once per enemy phase.

    Each enemy unit with AP left either attacks the nearest player unit (when
    in range) or steps straight toward it, or toward an objective when no
    player unit is alive. No path-finding: terrain is not checked for AI
    movement. Only the reinforcement roll is random.
    """

    def __init__(self, world: World, settings: Settings, rng: DRNG, sleep: Sleep = asyncio.sleep):
        self.world = world
        self.settings = settings
        self.rng = rng
        self._sleep = sleep

    async def run_phase(self) -> List[Event]:
        """Think, act with every enemy unit, maybe reinforce, think again."""
        await self._sleep(self.settings.ai_think_s)
        evts = self.act()
        evts += self.spawn()
        await self._sleep(self.settings.ai_think_s)
        return evts

    def act(self) -> List[Event]:
        evts: List[Event] = []
        for unit_id in [u.id for u in self.world.units_by_team("enemy")]:
            unit = self.world.unit(unit_id)
            if unit is None or unit.hp <= 0 or unit.ap <= 0:
                continue
            evts += self._act_unit(unit)
        self.world.check_invariants()
        return evts

    def nearest_player_unit(self, unit: Unit) -> Optional[Unit]:
        best = None
        best_d = float("inf")
        for p in self.world.live_units("player"):
            d = distance_3d(unit.pos, p.pos)
            if d < best_d:
                best, best_d = p, d
        return best

    def move_target(self, unit: Unit, target: Optional[Unit]) -> Optional[Coord]:
        if target is not None:
            return (target.pos[0], target.pos[2])
        for cp in self.world.capture_points:
            if cp.owner != unit.team:
                return (cp.pos[0], cp.pos[2])
        return None

    def _event(self, kind: str, data: dict) -> Event:
        return Event(kind, self.world.turn.turn, data)

    def _act_unit(self, unit: Unit) -> List[Event]:
        target = self.nearest_player_unit(unit)
        if target is not None and is_in_range(unit, target):
            resolve_attack(self.world, unit, target)
            target_hp = target.hp
            dead = {u.id for u in self.world.remove_dead_units()}
            logger.info(f"[AI] Unit #{unit.id} attacks #{target.id} (hp {target_hp})")
            return [self._event("attacked", {
                "unit_id": unit.id, "target_id": target.id,
                "start": list(unit.pos), "end": list(target.pos),
                "damage": unit.kind.damage, "target_hp": target_hp,
                "destroyed": target.id in dead,
            })]

        dest = self.move_target(unit, target)
        if dest is None:
            return []
        dx = dest[0] - unit.pos[0]
        dz = dest[1] - unit.pos[2]
        dist = math.sqrt(dx * dx + dz * dz)
        if dist < 0.001:
            return []
        dir_x, dir_z = normalize_2d((dx, dz))
        step = min(unit.kind.speed, dist)

        old_pos = unit.pos
        new_pos = (unit.pos[0] + dir_x * step, unit.pos[1], unit.pos[2] + dir_z * step)
        self.world.set_position(unit.id, new_pos)
        self.world.spend_ap(unit.id, 1)
        evts = [self._event("moved", {"unit_id": unit.id, "from": list(old_pos), "to": list(new_pos),
                                      "ap": unit.ap})]
        for cp in try_capture(self.world, new_pos, unit.team, self.settings.capture_radius):
            evts.append(self._event("captured", {"point_id": cp.id, "owner": unit.team, "unit_id": unit.id}))
        return evts

    def spawn(self) -> List[Event]:
        """Maybe drop one reinforcement near the enemy home area."""
        if len(self.world.units_by_team("enemy")) >= self.settings.max_enemy_units:
            return []
        if not self.rng.bernoulli(self.settings.spawn_probability):
            return []
        home_x, home_z = self.settings.enemy_home
        x, z = self.rng.scatter(home_x, home_z, self.settings.spawn_spread)
        kind_id = self.settings.spawn_kind
        uid = self.world.add_unit("enemy", kind_id, (x, 0.0, z))
        logger.info(f"[AI] Reinforcement {kind_id} #{uid} at ({x:.1f}, {z:.1f})")
        return [self._event("spawned", {"unit_id": uid, "team": "enemy", "kind": kind_id,
                                        "pos": list(self.world.unit(uid).pos)})]
