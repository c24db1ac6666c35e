import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from .config import Settings
from .model import (AttackCommand, Command, Event, MoveCommand, Rejected, RepeatCommand, Script,
                    WaitCommand, other_team)
from .rules import TARGET_POLICIES, ground_distance, resolve_attack, select_target, try_capture
from .script import parse_coord, parse_duration, parse_times
from .world import World

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

MAX_RUN_WARNINGS = 32


class RunState(Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"  # waiting out a WAIT or a pacing delay
    HALTED = "halted"


class ScriptRun:
    """One execution of a unit's script.

    Iterating the run (``async for evt in run``) drives the script and
    yields its effects: moved, attacked, captured and a final halted event.
    A run can be iterated only once.
    """

    def __init__(self, interpreter: "Interpreter", unit_id: int, script: Script):
        self.unit_id = unit_id
        self.script = script
        self.state = RunState.RUNNING
        self.halt_reason: Optional[str] = None
        self.warnings: List[str] = []
        self.cancelled = False
        self._interpreter = interpreter
        self._consumed = False

    def cancel(self) -> None:
        """Request a halt; honoured before the next command starts."""
        self.cancelled = True
        if not self._consumed and self.state is not RunState.HALTED:
            self._halt("cancelled")

    def _halt(self, reason: str) -> None:
        self.state = RunState.HALTED
        self.halt_reason = reason
        self._interpreter._release(self)

    def __aiter__(self) -> AsyncIterator[Event]:
        if self._consumed:
            raise RuntimeError(f"script run for unit #{self.unit_id} was already consumed")
        self._consumed = True
        return self._interpreter._events(self)


class Interpreter:
    """Runs unit scripts against the shared world, one step at a time."""

    def __init__(self, world: World, settings: Settings, sleep: Sleep = asyncio.sleep):
        self.world = world
        self.settings = settings
        self._sleep = sleep
        self._active: Dict[int, ScriptRun] = {}

    def start(self, unit_id: int, script: Optional[Sequence[Command]] = None) -> ScriptRun | Rejected:
        """Create a run for unit_id, using the unit's own script by default.

        The unit counts as running from here on. The caller must either
        iterate the returned run or cancel() it; a dropped run keeps the
        unit busy until cancel_all().
        """
        if unit_id in self._active:
            return Rejected("already_running")
        unit = self.world.unit(unit_id)
        if unit is None:
            return Rejected("unknown_unit")
        run = ScriptRun(self, unit_id, tuple(unit.script if script is None else script))
        self._active[unit_id] = run
        return run

    def is_running(self, unit_id: int) -> bool:
        return unit_id in self._active

    def cancel_all(self) -> None:
        for run in list(self._active.values()):
            run.cancel()

    def _release(self, run: ScriptRun) -> None:
        if self._active.get(run.unit_id) is run:
            del self._active[run.unit_id]

    def _event(self, kind: str, data: Dict) -> Event:
        return Event(kind, self.world.turn.turn, data)

    async def _events(self, run: ScriptRun) -> AsyncIterator[Event]:
        try:
            if run.state is not RunState.HALTED:
                logger.info(f"[Interpreter] Unit #{run.unit_id}: running {len(run.script)} commands")
                async for evt in self._execute(run, run.script):
                    yield evt
                if run.state is not RunState.HALTED:
                    run._halt("completed")
            yield self._event("halted", {"unit_id": run.unit_id, "reason": run.halt_reason,
                                         "warnings": list(run.warnings)})
        finally:
            if run.state is not RunState.HALTED:
                run._halt("cancelled")

    def _revalidate(self, run: ScriptRun) -> bool:
        if run.state is RunState.HALTED:
            return False
        if run.cancelled:
            run._halt("cancelled")
        else:
            unit = self.world.unit(run.unit_id)
            if unit is None:
                run._halt("unit_missing")
            elif unit.hp <= 0:
                run._halt("unit_dead")
        if run.state is RunState.HALTED:
            logger.info(f"[Interpreter] Unit #{run.unit_id}: halted ({run.halt_reason})")
            return False
        return True

    def _degrade(self, run: ScriptRun, msg: str) -> None:
        # Repeated warnings are recorded once
        if msg in run.warnings or len(run.warnings) >= MAX_RUN_WARNINGS:
            return
        logger.warning(f"[Interpreter] Unit #{run.unit_id}: {msg}, step skipped")
        run.warnings.append(msg)

    async def _suspend(self, run: ScriptRun, seconds: float) -> None:
        run.state = RunState.SUSPENDED
        try:
            await self._sleep(seconds)
        finally:
            if run.state is RunState.SUSPENDED:
                run.state = RunState.RUNNING

    async def _checkpoint(self, run: ScriptRun) -> bool:
        """Give the event loop a turn, then re-validate the run."""
        await asyncio.sleep(0)
        return self._revalidate(run)

    async def _execute(self, run: ScriptRun, commands: Sequence[Command]) -> AsyncIterator[Event]:
        # Every step and every REPEAT iteration passes a checkpoint, so steps
        # that never sleep still let cancel() and other tasks through.
        for command in commands:
            if not await self._checkpoint(run):
                return
            if isinstance(command, RepeatCommand):
                times = parse_times(command.times)
                if times is None:
                    self._degrade(run, f"REPEAT count {command.times!r} is not a number")
                    continue
                for _ in range(times):
                    if not await self._checkpoint(run):
                        return
                    async for evt in self._execute(run, command.children):
                        yield evt
                    if run.state is RunState.HALTED:
                        return
            elif isinstance(command, WaitCommand):
                duration = parse_duration(command.duration)
                if duration is None:
                    self._degrade(run, f"WAIT duration {command.duration!r} is not a number")
                    continue
                await self._suspend(run, duration)
            elif isinstance(command, MoveCommand):
                evts = self._move(run, command)
                if evts is None:
                    continue
                for evt in evts:
                    yield evt
                await self._suspend(run, self.settings.move_pacing_s)
            elif isinstance(command, AttackCommand):
                evts = self._attack(run, command)
                if evts is None:
                    continue
                for evt in evts:
                    yield evt
                await self._suspend(run, self.settings.attack_pacing_s)
            else:
                raise TypeError(f"unknown command {command!r}")

    def _move(self, run: ScriptRun, command: MoveCommand) -> Optional[List[Event]]:
        """All-or-nothing move. None means the step was malformed."""
        coord = parse_coord(command.target)
        if coord is None:
            self._degrade(run, f"MOVE target {command.target!r} is not an x,z coordinate")
            return None
        unit = self.world.unit(run.unit_id)
        if unit.ap <= 0:
            return []
        dist = ground_distance(unit.pos, coord)
        allowance = unit.kind.speed * self.settings.move_budget_factor
        if dist > allowance:
            logger.info(f"[Interpreter] Unit #{unit.id}: move to {coord} rejected ({dist:.1f} > {allowance:.1f})")
            return []

        old_pos = unit.pos
        new_pos = (coord[0], unit.kind.elevation, coord[1])
        self.world.set_position(unit.id, new_pos)
        self.world.spend_ap(unit.id, 1)
        evts = [self._event("moved", {"unit_id": unit.id, "from": list(old_pos), "to": list(new_pos),
                                      "ap": self.world.unit(unit.id).ap})]
        for cp in try_capture(self.world, new_pos, unit.team, self.settings.capture_radius):
            evts.append(self._event("captured", {"point_id": cp.id, "owner": unit.team, "unit_id": unit.id}))
        self.world.check_invariants()
        return evts

    def _attack(self, run: ScriptRun, command: AttackCommand) -> Optional[List[Event]]:
        if command.policy not in TARGET_POLICIES:
            self._degrade(run, f"ATTACK policy {command.policy!r} is unknown")
            return None
        unit = self.world.unit(run.unit_id)
        if unit.ap <= 0:
            return []
        candidates = self.world.live_units(other_team(unit.team))
        target = select_target(unit, candidates, command.policy)
        if target is None or resolve_attack(self.world, unit, target) != "hit":
            return []

        target_hp = target.hp
        dead = {u.id for u in self.world.remove_dead_units()}
        self.world.check_invariants()
        return [self._event("attacked", {
            "unit_id": unit.id, "target_id": target.id,
            "start": list(unit.pos), "end": list(target.pos),
            "damage": unit.kind.damage, "target_hp": target_hp,
            "destroyed": target.id in dead,
        })]
