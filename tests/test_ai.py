"""Test the enemy decision procedure."""
import pytest
from engine.ai import AIController
from engine.config import Settings
from engine.model import CapturePoint
from engine.rng import DRNG
from engine.world import World


def make_ai(points=(), seed=42, **overrides):
    world = World(treasury=500, capture_points=list(points))
    settings = Settings(ai_think_s=0.0, **overrides)
    return world, AIController(world, settings, DRNG(seed))


def test_enemy_in_range_attacks_once_per_pass():
    world, ai = make_ai(spawn_probability=0.0)
    p = world.add_unit("player", "INFANTRY", (0, 0, 0))
    e = world.add_unit("enemy", "INFANTRY", (3, 0, 0))
    evts = ai.act()

    assert world.unit(p).hp == 50 - 15
    assert world.unit(e).ap == 1
    assert [ev.kind for ev in evts] == ["attacked"]
    assert evts[0].data["start"] == [3.0, 0.5, 0.0]


def test_enemy_out_of_range_steps_speed_toward_nearest_player():
    world, ai = make_ai()
    world.add_unit("player", "INFANTRY", (0, 0, 0))
    world.add_unit("player", "INFANTRY", (-30, 0, 0))
    e = world.add_unit("enemy", "INFANTRY", (20, 0, 0))
    ai.act()

    u = world.unit(e)
    assert u.pos == pytest.approx((16.0, 0.5, 0.0))
    assert u.ap == 1


def test_move_never_overshoots_its_target():
    world, ai = make_ai([CapturePoint(id=1, pos=(0, 0, 2), owner="player")])
    e = world.add_unit("enemy", "TANK", (0, 0, 0))
    ai.act()
    assert world.unit(e).pos == pytest.approx((0.0, 0.8, 2.0))
    assert world.capture_point(1).owner == "enemy"


def test_without_players_enemy_heads_for_a_point_and_captures_it():
    world, ai = make_ai([
        CapturePoint(id=1, pos=(10, 0, 10), owner="enemy"),
        CapturePoint(id=2, pos=(0, 0, 3), owner="neutral"),
    ])
    e = world.add_unit("enemy", "TANK", (0, 0, 0))
    evts = ai.act()

    assert world.unit(e).pos == pytest.approx((0.0, 0.8, 3.0))
    assert world.capture_point(2).owner == "enemy"
    assert [ev.kind for ev in evts] == ["moved", "captured"]


def test_nothing_to_do_holds_position():
    world, ai = make_ai([CapturePoint(id=1, pos=(10, 0, 10), owner="enemy")])
    e = world.add_unit("enemy", "TANK", (0, 0, 0))
    assert ai.act() == []
    assert world.unit(e).ap == 2


def test_units_without_ap_do_not_act():
    world, ai = make_ai()
    p = world.add_unit("player", "INFANTRY", (0, 0, 0))
    world.add_unit("enemy", "INFANTRY", (2, 0, 0), ap=0)
    assert ai.act() == []
    assert world.unit(p).hp == 50


def test_dead_targets_are_culled_and_not_attacked_again():
    world, ai = make_ai()
    p = world.add_unit("player", "INFANTRY", (0, 0, 0), hp=10)
    world.add_unit("enemy", "TANK", (2, 0, 0))
    second = world.add_unit("enemy", "TANK", (12, 0, 0))
    evts = ai.act()

    assert world.unit(p) is None
    assert [e.kind for e in evts] == ["attacked"]
    assert evts[0].data["destroyed"] is True
    # with no player left, the second tank has nowhere to go
    assert world.unit(second).ap == 2


def test_spawn_respects_probability_and_cap():
    world, ai = make_ai(spawn_probability=1.0, max_enemy_units=2)
    evts = ai.spawn()
    assert [ev.kind for ev in evts] == ["spawned"]
    spawned = world.unit(evts[0].data["unit_id"])
    assert spawned.kind_id == "TANK"
    assert 12.0 <= spawned.pos[0] < 14.0 and 12.0 <= spawned.pos[2] < 14.0

    ai.spawn()
    assert ai.spawn() == []
    assert len(world.units_by_team("enemy")) == 2

    world, never = make_ai(spawn_probability=0.0)
    assert never.spawn() == []


def test_spawn_is_reproducible_for_a_seed():
    _, ai1 = make_ai(seed=7)
    _, ai2 = make_ai(seed=7)
    rolls1 = [tuple(ev.data["pos"]) for _ in range(5) for ev in ai1.spawn()]
    rolls2 = [tuple(ev.data["pos"]) for _ in range(5) for ev in ai2.spawn()]
    assert rolls1 == rolls2


@pytest.mark.asyncio
async def test_run_phase_thinks_before_and_after():
    world, ai = make_ai(spawn_probability=0.0)
    pauses = []

    async def sleep(s):
        pauses.append(s)

    ai._sleep = sleep
    ai.settings = ai.settings.model_copy(update={"ai_think_s": 1.0})
    world.add_unit("enemy", "TANK", (0, 0, 0))
    await ai.run_phase()
    assert pauses == [1.0, 1.0]
