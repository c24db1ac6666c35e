import asyncio
import logging
from typing import List, Set, Tuple

from engine.engine import Engine
from engine.interpreter import ScriptRun
from engine.model import Event, Rejected, Snapshot, Team
from .eventlog import EventLog

logger = logging.getLogger(__name__)


class MatchRunner:
    """Async driver for one match.

    Script runs and enemy phases are started as background tasks and take
    turns on a single lock, so at most one of them mutates the world at a
    time. Every effect they produce lands in ``events``.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.events = EventLog()
        self._tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    async def stop(self):
        """Cancel running scripts and background tasks."""
        self.engine.interpreter.cancel_all()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self):
        """Wait until every background script run has finished."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def place_unit(self, team: Team, kind_id: str, tile: Tuple[int, int]) -> int | Rejected:
        result = self.engine.place_unit(team, kind_id, tile)
        if not isinstance(result, Rejected):
            unit = self.engine.world.unit(result)
            self.events.append(Event("placed", self.engine.world.turn.turn, {
                "unit_id": result, "team": team, "kind": kind_id, "pos": list(unit.pos),
                "treasury": self.engine.world.treasury,
            }))
        return result

    async def run_script(self, unit_id: int) -> ScriptRun | Rejected:
        """Start a unit's script in the background."""
        run = self.engine.run_script(unit_id)
        if isinstance(run, Rejected):
            logger.info(f"[MatchRunner] Script run for #{unit_id} rejected: {run.reason}")
            return run
        self._spawn(self._drain(run))
        return run

    async def _drain(self, run: ScriptRun):
        async with self._lock:
            async for evt in run:
                self.events.append(evt)
        logger.info(f"[MatchRunner] Script of #{run.unit_id} finished: {run.halt_reason}")

    async def end_turn(self) -> List[Event] | Rejected:
        """Cancel live scripts, then play the whole enemy phase."""
        self.engine.interpreter.cancel_all()
        async with self._lock:
            evts = await self.engine.end_turn()
        if isinstance(evts, Rejected):
            return evts
        start, end = self.events.append_many(evts)
        logger.info(f"[MatchRunner] Turn ended, events {start}..{end}")
        return evts

    def snapshot(self) -> Snapshot:
        """Current state. Mutations never straddle an await, so no lock is needed."""
        return self.engine.snapshot()
