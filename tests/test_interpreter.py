"""Test the unit script interpreter."""
import asyncio

import pytest
from engine.config import Settings
from engine.interpreter import MAX_RUN_WARNINGS, Interpreter, RunState
from engine.model import (AttackCommand, CapturePoint, MoveCommand, Rejected, RepeatCommand,
                          WaitCommand)
from engine.world import World


class RecordingSleep:
    """Stands in for asyncio.sleep; records durations and can run a hook."""

    def __init__(self, hook=None):
        self.calls = []
        self.hook = hook

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if self.hook:
            self.hook(len(self.calls))


def make_interpreter(points=(), sleep=None):
    world = World(treasury=500, capture_points=list(points))
    settings = Settings(move_pacing_s=0.8, attack_pacing_s=0.5, ai_think_s=0.0)
    sleep = sleep or RecordingSleep()
    return world, Interpreter(world, settings, sleep=sleep), sleep


async def collect(run):
    return [e async for e in run]


@pytest.mark.asyncio
async def test_move_within_allowance_commits():
    """Speed 4 unit at (0,0): MOVE 2,0 lands, costs one AP."""
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    events = await collect(interp.start(uid, [MoveCommand("2,0")]))

    u = world.unit(uid)
    assert u.pos == (2.0, 0.5, 0.0)
    assert u.ap == 1
    assert [e.kind for e in events] == ["moved", "halted"]
    assert events[-1].data["reason"] == "completed"


@pytest.mark.asyncio
async def test_move_beyond_allowance_is_rejected_not_clamped():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    events = await collect(interp.start(uid, [MoveCommand("10,0")]))

    u = world.unit(uid)
    assert u.pos == (0.0, 0.5, 0.0)
    assert u.ap == 2
    assert [e.kind for e in events] == ["halted"]


@pytest.mark.asyncio
async def test_repeat_three_makes_exactly_three_move_attempts():
    world, interp, sleep = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    script = [RepeatCommand(times=3, children=(MoveCommand("1,0"),))]
    events = await collect(interp.start(uid, script))

    # every attempt is paced, the third one finds no AP left
    assert sleep.calls == [0.8, 0.8, 0.8]
    assert [e.kind for e in events].count("moved") == 2
    assert world.unit(uid).ap == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("times", [0, -2, "0"])
async def test_repeat_below_one_runs_nothing(times):
    world, interp, sleep = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    run = interp.start(uid, [RepeatCommand(times=times, children=(MoveCommand("1,0"),))])
    await collect(run)
    assert sleep.calls == []
    assert run.warnings == []


@pytest.mark.asyncio
async def test_malformed_steps_degrade_without_aborting():
    world, interp, sleep = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    script = [
        MoveCommand("north"),
        WaitCommand("soon"),
        RepeatCommand(times="lots", children=(MoveCommand("1,0"),)),
        AttackCommand("loudest"),
        MoveCommand("2,0"),
    ]
    run = interp.start(uid, script)
    events = await collect(run)

    assert len(run.warnings) == 4
    assert world.unit(uid).pos == (2.0, 0.5, 0.0)
    assert events[-1].data["reason"] == "completed"
    assert sleep.calls == [0.8]


@pytest.mark.asyncio
async def test_wait_suspends_for_its_duration():
    world, interp, sleep = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    states = []
    sleep.hook = lambda n: states.append(run.state)
    run = interp.start(uid, [WaitCommand("1.5")])
    await collect(run)
    assert sleep.calls == [1.5]
    assert states == [RunState.SUSPENDED]
    assert run.state is RunState.HALTED


@pytest.mark.asyncio
async def test_attack_hits_and_destroys():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "TANK", (0, 0, 0))
    target = world.add_unit("enemy", "INFANTRY", (3, 0, 0))
    events = await collect(interp.start(uid, [AttackCommand("closest")]))

    attacked = events[0]
    assert attacked.kind == "attacked"
    assert attacked.data["target_id"] == target
    assert attacked.data["destroyed"] is True
    assert attacked.data["start"] == [0.0, 0.8, 0.0]
    assert attacked.data["end"] == [3.0, 0.5, 0.0]
    assert world.unit(target) is None
    assert world.unit(uid).ap == 1


@pytest.mark.asyncio
async def test_attack_out_of_range_or_without_ap_is_a_no_op():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    far = world.add_unit("enemy", "INFANTRY", (9, 0, 0))
    await collect(interp.start(uid, [AttackCommand("closest")]))
    assert world.unit(far).hp == 50

    tired = world.add_unit("player", "INFANTRY", (8, 0, 0), ap=0)
    await collect(interp.start(tired, [AttackCommand("closest")]))
    assert world.unit(far).hp == 50


@pytest.mark.asyncio
async def test_weakest_policy_targets_lowest_hp():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "HELI", (0, 0, 0))
    healthy = world.add_unit("enemy", "INFANTRY", (1, 0, 0))
    wounded = world.add_unit("enemy", "INFANTRY", (5, 0, 0), hp=30)
    await collect(interp.start(uid, [AttackCommand("weakest")]))
    assert world.unit(healthy).hp == 50
    assert world.unit(wounded) is None


@pytest.mark.asyncio
async def test_unit_killed_mid_script_halts_before_next_step():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))

    def kill(n):
        world.apply_damage(uid, 999)
        world.remove_dead_units()

    interp._sleep = RecordingSleep(hook=kill)
    run = interp.start(uid, [MoveCommand("1,0"), MoveCommand("2,0"), AttackCommand("closest")])
    events = await collect(run)

    assert [e.kind for e in events] == ["moved", "halted"]
    assert run.halt_reason == "unit_missing"
    assert not interp.is_running(uid)


@pytest.mark.asyncio
async def test_halt_inside_repeat_stops_the_loop():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    interp._sleep = RecordingSleep(hook=lambda n: run.cancel() if n == 1 else None)
    run = interp.start(uid, [RepeatCommand(times=5, children=(WaitCommand(1), MoveCommand("1,0")))])
    events = await collect(run)
    assert run.halt_reason == "cancelled"
    assert [e.kind for e in events] == ["halted"]
    assert world.unit(uid).pos == (0.0, 0.5, 0.0)


@pytest.mark.asyncio
async def test_second_run_on_same_unit_is_rejected_while_live():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    run = interp.start(uid, [MoveCommand("1,0")])
    assert interp.start(uid, [MoveCommand("2,0")]) == Rejected("already_running")
    await collect(run)
    assert isinstance(interp.start(uid, []), type(run))


@pytest.mark.asyncio
async def test_run_is_not_restartable():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    run = interp.start(uid, [])
    await collect(run)
    with pytest.raises(RuntimeError):
        await collect(run)


@pytest.mark.asyncio
async def test_cancel_before_start_halts_immediately():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    run = interp.start(uid, [MoveCommand("1,0")])
    run.cancel()
    assert not interp.is_running(uid)
    events = await collect(run)
    assert [(e.kind, e.data["reason"]) for e in events] == [("halted", "cancelled")]
    assert world.unit(uid).pos == (0.0, 0.5, 0.0)


@pytest.mark.asyncio
async def test_moving_onto_a_point_captures_it_and_leaving_keeps_it():
    world, interp, _ = make_interpreter([CapturePoint(id=7, pos=(3, 0, 0), owner="neutral")])
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    events = await collect(interp.start(uid, [MoveCommand("2,0"), MoveCommand("9,0")]))

    assert [e.kind for e in events] == ["moved", "captured", "moved", "halted"]
    assert world.capture_point(7).owner == "player"
    assert world.unit(uid).pos == (9.0, 0.5, 0.0)


async def cancel_soon(run, turns=5):
    for _ in range(turns):
        await asyncio.sleep(0)
    run.cancel()


@pytest.mark.asyncio
@pytest.mark.parametrize("children", [(MoveCommand("bad"),), (AttackCommand("loudest"),), ()])
async def test_long_repeat_without_pacing_can_be_cancelled(children):
    world, interp, sleep = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    run = interp.start(uid, [RepeatCommand(times=10 ** 9, children=children)])

    task = asyncio.create_task(collect(run))
    await cancel_soon(run)
    events = await asyncio.wait_for(task, timeout=5)

    assert run.halt_reason == "cancelled"
    assert sleep.calls == []
    assert len(events[-1].data["warnings"]) <= 1
    assert not interp.is_running(uid)


@pytest.mark.asyncio
async def test_warnings_are_deduplicated_and_capped():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    script = [MoveCommand("bad")] * 3 + [WaitCommand(f"w{i}") for i in range(MAX_RUN_WARNINGS + 5)]
    run = interp.start(uid, script)
    await collect(run)

    assert run.warnings.count("MOVE target 'bad' is not an x,z coordinate") == 1
    assert len(run.warnings) == MAX_RUN_WARNINGS


@pytest.mark.asyncio
async def test_unconsumed_run_keeps_unit_busy_until_cancelled():
    world, interp, _ = make_interpreter()
    uid = world.add_unit("player", "INFANTRY", (0, 0, 0))
    run = interp.start(uid, [MoveCommand("1,0")])
    assert interp.start(uid, []) == Rejected("already_running")

    run.cancel()
    assert isinstance(interp.start(uid, []), type(run))
    assert world.unit(uid).pos == (0.0, 0.5, 0.0)
