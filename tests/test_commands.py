"""Test Suite - External command parsing and clamping."""

import pytest

from vplant.plant.commands import (
    ChargePointCommand,
    DeviceCommand,
    GridCommand,
    PvCommand,
    ScenarioCommand,
    StorageCommand,
    SuiteCommand,
    TariffCommand,
    apply_command,
    parse_command,
)
from vplant.scenarios.actions import plug_charger


@pytest.mark.parametrize("key, expected", [
    ("grid.limit_kw", GridCommand("limit_kw")),
    ("grid.available", GridCommand("available")),
    ("tariff.mode", TariffCommand("mode")),
    ("pv.override.power_kw", PvCommand("override.power_kw")),
    ("storage.ctrl.power_set_kw", StorageCommand("ctrl.power_set_kw")),
    ("chp.ctrl.enabled", DeviceCommand("chp", "ctrl.enabled")),
    ("heatpump.ctrl.power_set_kw", DeviceCommand("heatpump", "ctrl.power_set_kw")),
    ("evcs.c07.ctrl.limit_kw", ChargePointCommand("c07", "ctrl.limit_kw")),
    ("evcs.c120.vehicle.departure_time", ChargePointCommand("c120", "vehicle.departure_time")),
    ("scenario.selected", ScenarioCommand("select")),
    ("scenario.buttons.dc_rush_10", ScenarioCommand("button", "dc_rush_10")),
    ("scenario.ctrl.start", ScenarioCommand("start")),
    ("scenario.ctrl.bogus", ScenarioCommand("other")),
    ("suite.ctrl.stop", SuiteCommand("stop")),
    ("suite.queue", SuiteCommand("queue")),
])
@pytest.mark.case("VP-CMD-001")
def test_parse_writable_keys(key, expected):
    assert parse_command(key) == expected


@pytest.mark.parametrize("key", [
    "grid.power_kw",
    "grid",
    "evcs.total_power_kw",
    "evcs.c01.meas.power_kw",
    "evcs.x01.ctrl.enabled",
    "storage.power_kw",
    "info.connection",
    "scenario.status",
    "",
])
@pytest.mark.case("VP-CMD-002")
def test_parse_read_only_keys(key):
    assert parse_command(key) is None


@pytest.mark.case("VP-CMD-003")
def test_clamping_to_nearest_bound(model, now):
    """Test Case - Invalid external input is clamped.

    Description:
    -----------------
    Out-of-range values land on the nearest bound, non-numeric values on
    the lower bound. Nothing raises.

    Expected Results:
    ---------------------------
    1. grid.limit_kw never below 1
    2. priority within [1, 10]
    3. non-numeric limit -> 0
    """
    assert apply_command(model, GridCommand("limit_kw"), -50, now)
    assert model.grid.limit_kw == 1

    apply_command(model, GridCommand("limit_kw"), "abc", now)
    assert model.grid.limit_kw == 1

    apply_command(model, GridCommand("limit_kw"), "75.5", now)
    assert model.grid.limit_kw == 75.5

    apply_command(model, ChargePointCommand("c01", "ctrl.priority"), 0, now)
    assert model.evcs.find("c01").ctrl.priority == 1
    apply_command(model, ChargePointCommand("c01", "ctrl.priority"), 42, now)
    assert model.evcs.find("c01").ctrl.priority == 10

    apply_command(model, ChargePointCommand("c01", "ctrl.limit_kw"), None, now)
    assert model.evcs.find("c01").ctrl.limit_kw == 0

    apply_command(model, TariffCommand("price_ct_per_kwh"), 9999, now)
    assert model.tariff.price_ct_per_kwh == 500

    apply_command(model, StorageCommand("soc_pct"), float("nan"), now)
    assert model.storage.soc_pct == 0


@pytest.mark.case("VP-CMD-004")
def test_bool_and_mode_values(model, now):
    apply_command(model, GridCommand("available"), "false", now)
    assert model.grid.available is False
    apply_command(model, GridCommand("available"), 1, now)
    assert model.grid.available is True

    apply_command(model, TariffCommand("mode"), " Manual ", now)
    assert model.tariff.mode == "manual"
    apply_command(model, TariffCommand("mode"), "whatever", now)
    assert model.tariff.mode == "auto"

    apply_command(model, DeviceCommand("generator", "ctrl.enabled"), True, now)
    apply_command(model, DeviceCommand("generator", "ctrl.power_set_kw"), "200", now)
    assert model.generator.ctrl.enabled is True
    assert model.generator.ctrl.power_set_kw == 200


@pytest.mark.case("VP-CMD-005")
def test_missing_charge_point_is_skipped(model, now):
    assert apply_command(model, ChargePointCommand("c99", "ctrl.enabled"), True, now) is False


@pytest.mark.case("VP-CMD-006")
def test_unplug_ends_session(model, now):
    cp = plug_charger(model, "c01", now, soc_pct=20)
    cp.meas.energy_kwh = 5.0
    cp.meas.power_kw = 11.0

    apply_command(model, ChargePointCommand("c01", "ctrl.plugged"), False, now)

    assert cp.ctrl.plugged is False
    assert cp.meas.energy_kwh == 0
    assert cp.meas.power_kw == 0
    assert cp.meas.status == "Available"


@pytest.mark.case("VP-CMD-007")
def test_reset_session_only_on_explicit_press(model, now):
    cp = plug_charger(model, "c02", now, soc_pct=20)
    cp.meas.energy_kwh = 7.0

    apply_command(model, ChargePointCommand("c02", "ctrl.reset_session"), False, now)
    assert cp.meas.energy_kwh == 7.0
    apply_command(model, ChargePointCommand("c02", "ctrl.reset_session"), "yes", now)
    assert cp.meas.energy_kwh == 7.0

    apply_command(model, ChargePointCommand("c02", "ctrl.reset_session"), True, now)
    assert cp.meas.energy_kwh == 0
    assert cp.meas.status == "Preparing"


@pytest.mark.case("VP-CMD-008")
def test_departure_time_recomputes_timestamp(model, now):
    cp = model.evcs.find("c03")
    apply_command(model, ChargePointCommand("c03", "vehicle.departure_time"), "17:00", now)
    assert cp.vehicle.departure_time == "17:00"
    assert cp.vehicle.departure_ts is not None and cp.vehicle.departure_ts > now

    apply_command(model, ChargePointCommand("c03", "vehicle.departure_time"), "later", now)
    assert cp.vehicle.departure_ts is None


@pytest.mark.case("VP-CMD-009")
def test_oversized_integers_land_on_bounds(model, now):
    """Test Case - Integers too large for a float.

    Description:
    -----------------
    JSON payloads can carry integers beyond float range. They are clamped
    to the bound on their side instead of raising.

    Expected Results:
    ---------------------------
    1. grid.limit_kw 10**400 -> upper bound, -(10**400) -> lower bound
    2. storage setpoint -(10**400) -> full charge rating
    3. device setpoint 10**400 -> device ceiling
    """
    apply_command(model, GridCommand("limit_kw"), 10 ** 400, now)
    assert model.grid.limit_kw == 5000
    apply_command(model, GridCommand("limit_kw"), -(10 ** 400), now)
    assert model.grid.limit_kw == 1

    apply_command(model, StorageCommand("ctrl.power_set_kw"), -(10 ** 400), now)
    assert model.storage.ctrl.power_set_kw == -model.storage.max_charge_kw

    apply_command(model, DeviceCommand("heatpump", "ctrl.power_set_kw"), 10 ** 400, now)
    assert model.heatpump.ctrl.power_set_kw == 500


@pytest.mark.case("VP-CMD-010")
def test_infinite_setpoints_land_on_rating(model, now):
    apply_command(model, StorageCommand("ctrl.power_set_kw"), float("-inf"), now)
    assert model.storage.ctrl.power_set_kw == -model.storage.max_charge_kw
    apply_command(model, StorageCommand("ctrl.power_set_kw"), "inf", now)
    assert model.storage.ctrl.power_set_kw == model.storage.max_discharge_kw

    apply_command(model, DeviceCommand("chp", "ctrl.power_set_kw"), float("-inf"), now)
    assert model.chp.ctrl.power_set_kw == 0

    # finite setpoints stay as written, the process limits them
    apply_command(model, StorageCommand("ctrl.power_set_kw"), -900, now)
    assert model.storage.ctrl.power_set_kw == -900
