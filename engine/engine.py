import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .ai import AIController
from .config import Settings, get_settings
from .interpreter import Interpreter, ScriptRun, Sleep
from .mapgen import TileMap, generate_map
from .model import (UNIT_KINDS, CapturePoint, Command, Event, Phase, Rejected, Snapshot, Team,
                    TurnState, Unit, default_capture_points)
from .preview import PreviewStep, preview_script
from .rng import DRNG
from .rules import can_afford, distance_3d
from .script import blocks_from_commands, commands_from_blocks
from .turns import TurnEngine
from .world import World

logger = logging.getLogger(__name__)


def make_initial_world(settings: Settings) -> World:
    """Opening position: one infantry squad per side next to its home point."""
    world = World(settings.starting_money, default_capture_points())
    world.add_unit("player", "INFANTRY", (-12.0, 0.0, -12.0))
    world.add_unit("enemy", "INFANTRY", (12.0, 0.0, 12.0))
    return world


class Engine:
    """Game session: one per match.

    Owns the world and hands it explicitly to the turn engine, the script
    interpreter and the AI. Presentation code reads snapshots and changes
    the game only through place_unit, set_script, run_script and end_turn.
    """

    def __init__(self, settings: Optional[Settings] = None, seed: Optional[int] = None,
                 world: Optional[World] = None, tile_map: Optional[TileMap] = None,
                 sleep: Sleep = asyncio.sleep):
        self.settings = settings or get_settings()
        self.seed = self.settings.seed if seed is None else seed
        self._rng = DRNG(self.seed)
        self.map = tile_map or generate_map(self.settings.map_size, self.settings.tile_size)
        self.world = world if world is not None else make_initial_world(self.settings)
        self.turns = TurnEngine(self.world, self.settings)
        self.interpreter = Interpreter(self.world, self.settings, sleep)
        self.ai = AIController(self.world, self.settings, self._rng, sleep)
        self.selected_id: Optional[int] = None
        self.placement_kind: Optional[str] = None

    @property
    def acting_team(self) -> Team:
        return "player" if self.world.turn.phase is Phase.PLAYER else "enemy"

    # --- placement -----------------------------------------------------------

    def begin_placement(self, kind_id: str) -> str | Rejected:
        if kind_id not in UNIT_KINDS:
            return Rejected("unknown_kind")
        if self.world.turn.phase is not Phase.PLAYER:
            return Rejected("wrong_phase")
        self.placement_kind = kind_id
        self.selected_id = None
        return kind_id

    def place_unit(self, team: Team, kind_id: str, tile: Tuple[int, int]) -> int | Rejected:
        """Deploy a unit on a walkable tile near a capture point its team owns.

        Player units are paid from the treasury; enemy units are free since
        the enemy economy is only counted in units. New units act from the
        next phase of their team (they start with 0 AP).
        """
        kind = UNIT_KINDS.get(kind_id)
        if kind is None:
            return Rejected("unknown_kind")
        if team == "player" and self.world.turn.phase is not Phase.PLAYER:
            return Rejected("wrong_phase")
        t = self.map.tile_at(int(tile[0]), int(tile[1]))
        if t is None or not t.walkable:
            return Rejected("not_walkable")
        wx, wz = self.map.tile_to_world(t.x, t.z)
        if not any(cp.owner == team and distance_3d((wx, 0.0, wz), cp.pos) < self.settings.deploy_radius
                   for cp in self.world.capture_points):
            return Rejected("not_near_friendly_base")
        if team == "player":
            if not can_afford(self.world.treasury, kind.cost):
                return Rejected("insufficient_funds")
            self.world.deduct_cost(kind.cost)

        uid = self.world.add_unit(team, kind_id, (wx, 0.0, wz), ap=0)
        self.placement_kind = None
        self.world.check_invariants()
        logger.info(f"[Engine] Placed {team} {kind_id} #{uid} on tile {tile}, treasury {self.world.treasury}")
        return uid

    # --- selection & scripts ----------------------------------------------------

    def _owned_live_unit(self, unit_id: int) -> Unit | Rejected:
        unit = self.world.unit(unit_id)
        if unit is None or unit.hp <= 0:
            return Rejected("unknown_unit")
        if unit.team != self.acting_team:
            return Rejected("not_owned")
        return unit

    def select_unit(self, unit_id: int) -> int | Rejected:
        unit = self._owned_live_unit(unit_id)
        if isinstance(unit, Rejected):
            return unit
        self.selected_id = unit.id
        self.placement_kind = None
        return unit.id

    def deselect_unit(self) -> None:
        self.selected_id = None

    def selected_unit(self) -> Optional[int]:
        """Selected unit id if it is still eligible for script assignment."""
        if self.selected_id is None:
            return None
        if isinstance(self._owned_live_unit(self.selected_id), Rejected):
            self.selected_id = None
        return self.selected_id

    def set_script(self, unit_id: int, script: Sequence[Command]) -> int | Rejected:
        unit = self._owned_live_unit(unit_id)
        if isinstance(unit, Rejected):
            return unit
        self.world.set_script(unit.id, tuple(script))
        return unit.id

    def run_script(self, unit_id: int) -> ScriptRun | Rejected:
        """Start the unit's script. Iterate the returned run to drive it."""
        if self.world.turn.phase is not Phase.PLAYER:
            return Rejected("wrong_phase")
        unit = self._owned_live_unit(unit_id)
        if isinstance(unit, Rejected):
            return unit
        return self.interpreter.start(unit.id)

    def preview(self, unit_id: int, script: Optional[Sequence[Command]] = None) -> List[PreviewStep] | Rejected:
        unit = self.world.unit(unit_id)
        if unit is None:
            return Rejected("unknown_unit")
        allowance = unit.kind.speed * self.settings.move_budget_factor
        return preview_script(unit, unit.script if script is None else script, allowance)

    # --- turns -------------------------------------------------------------

    async def end_turn(self) -> List[Event] | Rejected:
        """Player phase -> enemy phase (AI pass, reinforcements) -> next player phase."""
        evts = self.turns.end_player_phase()
        if isinstance(evts, Rejected):
            return evts
        self.selected_id = None
        self.placement_kind = None
        self.interpreter.cancel_all()

        evts += await self.ai.run_phase()
        evts += self.turns.end_enemy_phase()
        return evts

    # --- snapshots ---------------------------------------------------------

    @property
    def treasury(self) -> int:
        return self.world.treasury

    @property
    def turn_state(self) -> TurnState:
        return copy.copy(self.world.turn)

    def units(self) -> List[Unit]:
        return copy.deepcopy(self.world.units())

    def capture_points(self) -> List[CapturePoint]:
        return copy.deepcopy(self.world.capture_points)

    def snapshot(self) -> Snapshot:
        """Return a copy of the current state."""
        return Snapshot(turn=self.turn_state, treasury=self.world.treasury, units=self.units(),
                        capture_points=self.capture_points(), selected_id=self.selected_unit())

    # --- save / load ---------------------------------------------------------

    def save(self) -> Dict[str, Any]:
        w = self.world
        return {
            "seed": self.seed,
            "treasury": w.treasury,
            "turn": {"phase": w.turn.phase.value, "turn": w.turn.turn},
            "capture_points": [{"id": cp.id, "pos": list(cp.pos), "owner": cp.owner} for cp in w.capture_points],
            "units": [{
                "id": u.id, "team": u.team, "kind": u.kind_id, "pos": list(u.pos),
                "hp": u.hp, "ap": u.ap, "script": blocks_from_commands(u.script),
            } for u in w.units()],
        }

    @classmethod
    def load(cls, data: Dict[str, Any], settings: Optional[Settings] = None, sleep: Sleep = asyncio.sleep) -> "Engine":
        turn = TurnState(phase=Phase(data["turn"]["phase"]), turn=int(data["turn"]["turn"]))
        points = [CapturePoint(id=cp["id"], pos=tuple(cp["pos"]), owner=cp["owner"]) for cp in data["capture_points"]]
        world = World(int(data["treasury"]), points, turn)
        for u in data["units"]:
            world.add_unit(u["team"], u["kind"], tuple(u["pos"]), ap=u["ap"], hp=u["hp"],
                           script=commands_from_blocks(u["script"]), unit_id=u["id"])
        world.check_invariants()
        return cls(settings=settings, seed=data.get("seed"), world=world, sleep=sleep)
