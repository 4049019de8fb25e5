"""Test Suite - Simulator lifecycle, command handling and publishing."""

import asyncio
import json

import pytest

from vplant.mqtt_sim import listener_task
from vplant.scenarios.catalog import BASELINE_ID
from vplant.simulation import PlantSimulator, parse_queue
from vplant.store import MemoryStateStore


def _last_write(store, key):
    for k, v, ack in reversed(store.writes):
        if k == key:
            return v, ack
    raise AssertionError(f"{key} never written")


# =============================================================================
# Startup
# =============================================================================

@pytest.mark.case("VP-SIM-001")
def test_init_publishes_controls_and_state(simulator, store):
    catalog = json.loads(store.values["scenario.catalog_json"])
    assert len(catalog) == 33
    assert store.values["info.connection"] is True
    assert store.values["scenario.selected"] == BASELINE_ID
    assert store.values["suite.queue"] == "[]"
    assert store.values["scenario.ctrl.start"] is False
    assert store.values["suite.ctrl.stop"] is False
    assert store.values["scenario.buttons.dc_rush_10"] is False
    assert store.values["evcs.count"] == 10
    assert store.values["evcs.c10.type"] in ("ac", "dc")
    assert all(ack for _, _, ack in store.writes)


@pytest.mark.case("VP-SIM-002")
def test_init_restores_selection_and_queue(small_cfg, now):
    store = MemoryStateStore({
        "scenario.selected": "dc_rush_10",
        "suite.queue": '["storage_soc0", "tariff_flat_low_10ct"]',
        "grid.limit_kw": 75,
    })
    sim = PlantSimulator(small_cfg, store)
    asyncio.run(sim.init(now))

    assert sim.engine.state.selected == "dc_rush_10"
    assert sim.suite_queue == ["storage_soc0", "tariff_flat_low_10ct"]
    assert sim.model.grid.limit_kw == 75


@pytest.mark.parametrize("value, expected", [
    ("a,b , c", ["a", "b", "c"]),
    ('["a", "b"]', ["a", "b"]),
    (["a", " ", "b"], ["a", "b"]),
    ("[broken", []),
    ('{"a": 1}', []),
    ("", []),
    (None, []),
])
@pytest.mark.case("VP-SIM-003")
def test_parse_queue(value, expected):
    assert parse_queue(value) == expected


# =============================================================================
# Commands
# =============================================================================

@pytest.mark.case("VP-SIM-010")
def test_own_writes_are_ignored(simulator, store, now):
    before = len(store.writes)
    asyncio.run(simulator.handle_command("grid.limit_kw", 5, ack=True, now=now))
    assert len(store.writes) == before
    assert simulator.model.grid.limit_kw == simulator.cfg.grid_limit_kw


@pytest.mark.case("VP-SIM-011")
def test_command_before_init_is_only_acknowledged(small_cfg, now):
    store = MemoryStateStore()
    sim = PlantSimulator(small_cfg, store)
    asyncio.run(sim.handle_command("grid.limit_kw", 5, now=now))
    assert store.writes == [("grid.limit_kw", 5, True)]
    assert sim.model is None


@pytest.mark.case("VP-SIM-012")
def test_command_is_clamped_and_acknowledged(simulator, store, now):
    """Test Case - Command acknowledgement.

    Description:
    -----------------
    A plant command is applied to the model and acknowledged with the
    value the model actually holds after clamping.

    Steps:
    ----------
    1. Write grid.limit_kw = -5 (not acknowledged)
    2. Tick once

    Expected Results:
    ---------------------------
    1. Model limit is 1, store holds 1 with ack=true
    2. The tick does not republish the unchanged value
    """
    asyncio.run(simulator.handle_command("grid.limit_kw", -5, now=now))
    assert simulator.model.grid.limit_kw == 1
    assert _last_write(store, "grid.limit_kw") == (1.0, True)

    count = len(store.written("grid.limit_kw"))
    asyncio.run(simulator.tick(now + 1))
    assert len(store.written("grid.limit_kw")) == count


@pytest.mark.case("VP-SIM-013")
def test_read_only_key_is_not_applied(simulator, store, now):
    async def scenario():
        await simulator.handle_command("grid.power_kw", 999, now=now)
        await simulator.tick(now + 1)

    asyncio.run(scenario())
    assert store.values["grid.power_kw"] == simulator.point_value("grid.power_kw", now + 1)
    assert store.values["grid.power_kw"] != 999


@pytest.mark.case("VP-SIM-014")
def test_momentary_controls_are_reset(simulator, store, now):
    async def scenario():
        await simulator.handle_command("scenario.selected", "dc rush 10", now=now)
        await simulator.handle_command("scenario.ctrl.start", True, now=now)

    asyncio.run(scenario())
    assert _last_write(store, "scenario.selected") == ("dc_rush_10", True)
    assert _last_write(store, "scenario.ctrl.start") == (False, True)
    assert simulator.engine.state.running is True


@pytest.mark.case("VP-SIM-015")
def test_buttons_start_timelines_and_apply_oneshots(simulator, now):
    asyncio.run(simulator.handle_command("scenario.buttons.storage_soc100", True, now=now))
    assert simulator.engine.state.active == "storage_soc100"
    assert simulator.engine.state.running is False

    asyncio.run(simulator.handle_command("scenario.buttons.grid_limit_drop_timeline", True, now=now))
    assert simulator.engine.state.active == "grid_limit_drop_timeline"
    assert simulator.engine.state.running is True

    # only an explicit true presses a button
    asyncio.run(simulator.handle_command("scenario.buttons.dc_rush_10", "yes", now=now))
    assert simulator.engine.state.active == "grid_limit_drop_timeline"


@pytest.mark.case("VP-SIM-016")
def test_writes_counted_during_scenario_only(simulator, now):
    async def scenario():
        await simulator.handle_command("evcs.c01.ctrl.limit_kw", 5, now=now)
        await simulator.handle_command("scenario.selected", "dc_rush_10", now=now)
        await simulator.handle_command("scenario.ctrl.start", True, now=now)
        await simulator.handle_command("evcs.c01.ctrl.limit_kw", 7, now=now + 1)
        await simulator.handle_command("storage.ctrl.power_set_kw", 20, now=now + 2)
        await simulator.handle_command("scenario.ctrl.stop", True, now=now + 3)

    asyncio.run(scenario())

    summary = simulator.report.last_scenario_summary
    assert summary["id"] == "dc_rush_10"
    assert summary["reason"] == "stopped"
    assert summary["writes"]["total"] == 2
    assert summary["writes"]["by_category"]["evcs_limit"] == 1
    assert summary["writes"]["by_category"]["storage_power"] == 1


@pytest.mark.case("VP-SIM-017")
def test_stop_schedules_reset_to_baseline(simulator, store, now):
    pause = simulator.cfg.scenario_reset_pause_s

    async def scenario():
        await simulator.handle_command("scenario.buttons.grid_limit_drop_timeline", True, now=now)
        await simulator.handle_command("scenario.ctrl.stop", True, now=now + 10)
        await simulator.tick(now + 10 + pause - 1)
        before = simulator.engine.state.active
        await simulator.tick(now + 10 + pause)
        return before

    before = asyncio.run(scenario())
    assert before == "grid_limit_drop_timeline"
    assert simulator.engine.state.active == BASELINE_ID
    assert store.values["scenario.active"] == BASELINE_ID
    assert json.loads(store.values["report.last_json"])["reason"] == "stopped"


@pytest.mark.case("VP-SIM-018")
def test_completed_scenario_resets_after_pause(simulator, now):
    duration = simulator.cfg.scenario_duration_s
    pause = simulator.cfg.scenario_reset_pause_s

    async def scenario():
        await simulator.handle_command("scenario.selected", "storage_soc100", now=now)
        await simulator.handle_command("scenario.ctrl.start", True, now=now)
        await simulator.tick(now + duration)
        phase = simulator.engine.state.phase
        await simulator.tick(now + duration + pause)
        return phase

    assert asyncio.run(scenario()) == "done"
    assert simulator.engine.state.active == BASELINE_ID
    assert simulator.report.last_scenario_summary["reason"] == "completed"


@pytest.mark.case("VP-SIM-019")
def test_reset_button_goes_straight_to_baseline(simulator, now):
    async def scenario():
        await simulator.handle_command("scenario.buttons.tariff_pulse_timeline", True, now=now)
        await simulator.handle_command("scenario.ctrl.reset", True, now=now + 2)

    asyncio.run(scenario())
    assert simulator.engine.state.active == BASELINE_ID
    assert simulator.engine.state.running is False
    assert simulator.engine.state.pending_reset_at is None


# =============================================================================
# Ticking and publishing
# =============================================================================

@pytest.mark.case("VP-SIM-020")
def test_static_points_published_once(simulator, store, now):
    async def scenario():
        for i in range(1, 6):
            await simulator.tick(now + i)

    asyncio.run(scenario())
    assert len(store.written("scenario.catalog_json")) == 1
    assert len(store.written("evcs.c01.type")) == 1
    assert len(store.written("grid.limit_kw")) == 1


@pytest.mark.case("VP-SIM-021")
def test_store_failure_then_recovery(simulator, store, now):
    """Test Case - Publishing survives a failing store.

    Description:
    -----------------
    While the store rejects writes the tick still completes; changed
    values are written once the store recovers.

    Steps:
    ----------
    1. Make the store reject writes, change storage.ctrl.enabled, tick
    2. Let the store recover, tick again

    Expected Results:
    ---------------------------
    1. tick returns True, failed writes counted, store still holds True
    2. store holds False
    """
    async def scenario():
        store.fail_writes = True
        simulator.model.storage.ctrl.enabled = False
        first = await simulator.tick(now + 1)
        held = store.values["storage.ctrl.enabled"]
        store.fail_writes = False
        await simulator.tick(now + 2)
        return first, held

    first, held = asyncio.run(scenario())
    assert first is True
    assert held is True
    assert simulator.publisher.failed_writes > 0
    assert store.values["storage.ctrl.enabled"] is False


@pytest.mark.case("VP-SIM-022")
def test_failed_ack_is_logged_not_raised(simulator, store, now):
    store.fail_writes = True
    asyncio.run(simulator.handle_command("grid.limit_kw", 20, now=now))
    assert simulator.model.grid.limit_kw == 20


@pytest.mark.case("VP-SIM-023")
def test_busy_tick_is_skipped(simulator, now):
    simulator._busy = True
    assert asyncio.run(simulator.tick(now + 1)) is False
    assert simulator.skipped_ticks == 1
    assert simulator.last_tick is None


@pytest.mark.case("VP-SIM-024")
def test_tick_before_init_does_nothing(small_cfg, now):
    sim = PlantSimulator(small_cfg, MemoryStateStore())
    assert asyncio.run(sim.tick(now)) is False


@pytest.mark.case("VP-SIM-025")
def test_listener_feeds_commands(simulator, store, now):
    store.inject("grid.limit_kw", 33)
    store.inject("grid.limit_kw", 99, ack=True)

    async def scenario():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(listener_task(simulator, store), timeout=0.1)

    asyncio.run(scenario())
    assert simulator.model.grid.limit_kw == 33


@pytest.mark.case("VP-SIM-026")
def test_oversized_command_is_clamped_and_acknowledged(simulator, store, now):
    async def scenario():
        await simulator.handle_command("grid.limit_kw", 10 ** 400, now=now)
        await simulator.handle_command("storage.ctrl.power_set_kw", -(10 ** 400), now=now)
        await simulator.tick(now + 1)

    asyncio.run(scenario())
    assert _last_write(store, "grid.limit_kw") == (5000.0, True)
    assert _last_write(store, "storage.ctrl.power_set_kw") == (-200.0, True)
    assert simulator.model.storage.power_kw == -200.0
