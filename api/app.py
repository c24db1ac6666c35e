import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from engine.config import get_settings
from engine.engine import Engine
from engine.model import CapturePoint, Rejected, Unit
from engine.script import ScriptFormatError, blocks_from_commands, commands_from_blocks
from runtime.runner import MatchRunner
from .schemas import EventsResponse, PlaceUnitIn, PreviewStepOut, ScriptIn, SelectIn, StartRequest

logger = logging.getLogger(__name__)

app = FastAPI(title="Scripted Tactics API")
runner: MatchRunner | None = None

settings = get_settings()

# Enable CORS for development (the renderer runs on a Vite dev server)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

UNPACED = {"move_pacing_s": 0.0, "attack_pacing_s": 0.0, "ai_think_s": 0.0}


def _runner() -> MatchRunner:
    if not runner:
        raise HTTPException(400, "Match not started")
    return runner


def _refuse(rejected: Rejected):
    status = 404 if rejected.reason == "unknown_unit" else 400
    raise HTTPException(status, rejected.reason)


def _unit_dict(u: Unit) -> dict:
    return {
        "id": u.id,
        "team": u.team,
        "kind": u.kind_id,
        "pos": list(u.pos),
        "hp": u.hp,
        "max_hp": u.max_hp,
        "ap": u.ap,
        "max_ap": u.max_ap,
        "script_len": len(u.script),
    }


def _point_dict(cp: CapturePoint) -> dict:
    return {"id": cp.id, "pos": list(cp.pos), "owner": cp.owner}


@app.get("/")
async def root():
    """API root endpoint."""
    return {
        "message": "Scripted Tactics API",
        "docs": "/docs",
        "version": "1.0"
    }


@app.on_event("startup")
async def startup():
    """Open a default match on app startup."""
    global runner
    runner = MatchRunner(Engine(settings=settings))


@app.on_event("shutdown")
async def shutdown():
    """Stop background work on app shutdown."""
    global runner
    if runner:
        await runner.stop()


@app.post("/match/start")
async def start_match(req: StartRequest):
    """Discard the current match and start a new one."""
    await shutdown()
    global runner
    match_settings = settings if req.paced else settings.model_copy(update=UNPACED)
    runner = MatchRunner(Engine(settings=match_settings, seed=req.seed))
    logger.info(f"[API] Match started, seed {req.seed}, paced {req.paced}")
    return {"match_id": "local", "seed": req.seed}


@app.get("/match/state")
async def get_state():
    """Get current match snapshot."""
    s = _runner().snapshot()
    return {
        "turn": s.turn.turn,
        "phase": s.turn.phase.value,
        "treasury": s.treasury,
        "selected_id": s.selected_id,
        "units": {u.id: _unit_dict(u) for u in s.units},
        "capture_points": [_point_dict(cp) for cp in s.capture_points],
    }


@app.get("/match/map")
async def get_map():
    """Terrain tiles for the renderer and the editor preview."""
    tile_map = _runner().engine.map
    return {
        "map_size": tile_map.map_size,
        "tile_size": tile_map.tile_size,
        "tiles": [{"x": t.x, "z": t.z, "terrain": t.terrain, "walkable": t.walkable} for t in tile_map.tiles],
    }


@app.post("/match/units")
async def place_unit(req: PlaceUnitIn):
    """Deploy a unit near a friendly capture point."""
    result = _runner().place_unit(req.team, req.kind, req.tile)
    if isinstance(result, Rejected):
        _refuse(result)
    return {"unit_id": result, "treasury": _runner().engine.treasury}


@app.post("/match/select")
async def select_unit(req: SelectIn):
    result = _runner().engine.select_unit(req.unit_id)
    if isinstance(result, Rejected):
        _refuse(result)
    return {"selected_id": result}


@app.delete("/match/select")
async def deselect_unit():
    _runner().engine.deselect_unit()
    return {"selected_id": None}


@app.get("/match/units/{unit_id}/script")
async def get_script(unit_id: int):
    unit = _runner().engine.world.unit(unit_id)
    if unit is None:
        _refuse(Rejected("unknown_unit"))
    return {"unit_id": unit_id, "blocks": blocks_from_commands(unit.script)}


@app.put("/match/units/{unit_id}/script")
async def set_script(unit_id: int, req: ScriptIn):
    """Replace a unit's script wholesale."""
    try:
        script = commands_from_blocks([b.model_dump(exclude_none=True) for b in req.blocks])
    except ScriptFormatError as e:
        raise HTTPException(422, str(e))
    result = _runner().engine.set_script(unit_id, script)
    if isinstance(result, Rejected):
        _refuse(result)
    return {"unit_id": unit_id, "commands": len(script)}


@app.post("/match/units/{unit_id}/preview", response_model=list[PreviewStepOut])
async def preview_script(unit_id: int, req: Optional[ScriptIn] = None):
    """Dry-run a script (the unit's own one when no body is sent)."""
    script = None
    if req is not None:
        try:
            script = commands_from_blocks([b.model_dump(exclude_none=True) for b in req.blocks])
        except ScriptFormatError as e:
            raise HTTPException(422, str(e))
    steps = _runner().engine.preview(unit_id, script)
    if isinstance(steps, Rejected):
        _refuse(steps)
    return [PreviewStepOut(**vars(s)) for s in steps]


@app.post("/match/units/{unit_id}/run")
async def run_script(unit_id: int):
    """Start the unit's script; effects show up in /match/events."""
    result = await _runner().run_script(unit_id)
    if isinstance(result, Rejected):
        _refuse(result)
    return {"unit_id": unit_id, "running": True}


@app.post("/match/end-turn")
async def end_turn():
    """Play the enemy phase and open the next player phase."""
    evts = await _runner().end_turn()
    if isinstance(evts, Rejected):
        _refuse(evts)
    s = _runner().snapshot()
    return {"turn": s.turn.turn, "phase": s.turn.phase.value, "treasury": s.treasury, "events": len(evts),
            "next_offset": len(_runner().events)}


@app.get("/match/events")
async def get_events(since: int = 0, limit: int = 500, kind: Optional[str] = None):
    """Get events since offset."""
    evts, next_offset = _runner().events.since(since, limit, kind)
    return EventsResponse(
        next_offset=next_offset,
        events=[{"kind": e.kind, "turn": e.turn, "data": e.data} for e in evts]
    )
