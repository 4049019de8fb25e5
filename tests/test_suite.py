"""Test Suite - Sequential scenario suite runner."""

import asyncio
import json
import logging

import pytest

from vplant.scenarios.catalog import BASELINE_ID
from vplant.scenarios.engine import FinishSignal


def _collapse(seq):
    out = []
    for item in seq:
        if not out or out[-1] != item:
            out.append(item)
    return out


async def _run_ticks(sim, start, seconds):
    seen = []
    for i in range(1, seconds + 1):
        await sim.tick(start + i)
        seen.append(sim.suite.state.current_id)
    return seen


@pytest.mark.case("VP-SU-001")
def test_suite_runs_queue_in_order(simulator, now):
    """Test Case - Suite sequencing.

    Description:
    -----------------
    A suite runs its queue strictly one after another, with a reset pause
    before each scenario and a final pause before it reports done.

    Preconditions:
    -----------------
    1. 10 charge points, scenario duration 30 s, reset pause 5 s

    Steps:
    ----------
    1. Write a three-item queue to suite.queue
    2. Press suite.ctrl.start
    3. Tick once per second for 130 s

    Expected Results:
    ---------------------------
    1. current_id sequence: "", s1, "", s2, "", s3, ""
    2. Stage ends as done, suite no longer running
    3. Suite summary lists three completed scenarios with index/total
    """
    queue = ["storage_soc0", "tariff_flat_low_10ct", "dc_rush_10"]

    async def scenario():
        await simulator.handle_command("suite.queue", ",".join(queue), now=now)
        await simulator.handle_command("suite.ctrl.start", True, now=now)
        return await _run_ticks(simulator, now, 130)

    seen = asyncio.run(scenario())

    assert _collapse(seen) == ["", queue[0], "", queue[1], "", queue[2], ""]
    st = simulator.suite.state
    assert st.stage == "done"
    assert st.running is False
    assert st.index == 3

    summary = simulator.report.last_suite_summary
    assert summary["reason"] == "completed"
    assert summary["progress"] == {"completed": 3, "total": 3}
    assert [s["id"] for s in summary["scenarios"]] == queue
    assert [s["suite"] for s in summary["scenarios"]] == [
        {"index": 1, "total": 3},
        {"index": 2, "total": 3},
        {"index": 3, "total": 3},
    ]
    assert all(s["reason"] == "completed" for s in summary["scenarios"])
    assert simulator.engine.state.active == BASELINE_ID


@pytest.mark.case("VP-SU-002")
def test_suite_timing(simulator, now):
    async def scenario():
        await simulator.handle_command("suite.queue", '["storage_soc0"]', now=now)
        await simulator.handle_command("suite.ctrl.start", True, now=now)
        return await _run_ticks(simulator, now, 45)

    seen = asyncio.run(scenario())

    # pause 5 s, scenario 30 s, pause 5 s, done
    assert seen[3] == ""
    assert seen[4] == "storage_soc0"
    assert seen[33] == "storage_soc0"
    assert seen[34] == ""
    assert simulator.suite.state.stage == "done"


@pytest.mark.case("VP-SU-003")
def test_queue_is_resolved_and_echoed(simulator, store, now):
    asyncio.run(simulator.handle_command(
        "suite.queue", "dc_rush_10, nope, baseline, suite_smoke_all, storage_soc100", now=now
    ))
    assert simulator.suite_queue == ["dc_rush_10", "storage_soc100"]
    assert json.loads(store.values["suite.queue"]) == ["dc_rush_10", "storage_soc100"]


@pytest.mark.case("VP-SU-004")
def test_empty_queue_uses_default(suite, now):
    suite.start(now)
    assert len(suite.state.queue) == 30
    assert suite.state.stage == "pause"
    assert suite.state.pause_until == now + suite.pause_s


@pytest.mark.case("VP-SU-005")
def test_stop_idle_suite_returns_none(suite, now):
    assert suite.stop(now) is None
    assert suite.state.stage == "idle"


@pytest.mark.case("VP-SU-006")
def test_stop_mid_scenario(suite, engine, report, now):
    suite.start(now, ["dc_rush_10", "storage_soc0"])
    suite.step(now + suite.pause_s)
    assert engine.state.running is True

    summary = suite.stop(now + 20, reason="user")

    assert engine.state.running is False
    assert engine.state.active == BASELINE_ID
    assert suite.state.stage == "stopped"
    assert summary["reason"] == "user"
    # the interrupted scenario is listed but not counted as done
    assert summary["progress"] == {"completed": 0, "total": 2}
    assert summary["progress"]["completed"] == suite.state.index
    assert summary["scenarios"][0]["reason"] == "stopped"
    assert report.recording is False


@pytest.mark.case("VP-SU-007")
def test_suite_preempts_manual_scenario(suite, engine, report, now):
    engine.apply("dc_rush_10", start=True, now=now)
    report.begin_scenario("dc_rush_10", "DC", engine.state.duration_s, now)

    suite.start(now + 3, ["storage_soc0"])

    assert report.last_scenario_summary["reason"] == "preempted"
    assert engine.state.active == BASELINE_ID
    assert suite.state.running is True


@pytest.mark.case("VP-SU-008")
def test_manual_start_preempts_suite(simulator, now):
    async def scenario():
        await simulator.handle_command("suite.queue", "storage_soc0,dc_rush_10", now=now)
        await simulator.handle_command("suite.ctrl.start", True, now=now)
        await _run_ticks(simulator, now, 10)
        await simulator.handle_command("scenario.selected", "tariff_flat_low_10ct", now=now + 10)
        await simulator.handle_command("scenario.ctrl.start", True, now=now + 10)

    asyncio.run(scenario())

    assert simulator.suite.state.running is False
    assert simulator.suite.state.stage == "stopped"
    assert simulator.report.last_suite_summary["reason"] == "preempted"
    assert simulator.engine.state.active == "tariff_flat_low_10ct"
    assert simulator.engine.state.running is True


@pytest.mark.case("VP-SU-009")
def test_foreign_finish_signal_is_ignored(suite, engine, now):
    suite.start(now, ["storage_soc0"])
    suite.step(now + suite.pause_s)

    assert suite.on_scenario_finished(FinishSignal("dc_rush_10", "completed"), None, now + 6) is False
    assert suite.state.current_id == "storage_soc0"
    assert suite.state.stage == "scenario"


@pytest.mark.case("VP-SU-010")
def test_unknown_only_queue_is_reported(simulator, store, now, caplog):
    with caplog.at_level(logging.WARNING, logger="vplant.simulation"):
        asyncio.run(simulator.handle_command("suite.queue", "nope,also_nope", now=now))

    assert simulator.suite_queue == []
    assert store.values["suite.queue"] == "[]"
    assert any("no known scenario" in r.getMessage() for r in caplog.records)
