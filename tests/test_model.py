"""Test Suite - Plant model construction, departure parsing and configuration."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from vplant.config import SimulatorConfig
from vplant.plant.model import build_plant_model, default_charger_specs, parse_departure
from vplant.plant.rng import DeterministicRandom


# =============================================================================
# Charge point mix
# =============================================================================

@pytest.mark.case("VP-MD-001")
def test_default_mix_for_50_points():
    specs = default_charger_specs(50)
    assert len(specs) == 50
    assert sum(1 for s in specs if s == {"type": "ac", "max_kw": 11.0}) == 25
    assert sum(1 for s in specs if s == {"type": "ac", "max_kw": 22.0}) == 15
    dc = [s["max_kw"] for s in specs if s["type"] == "dc"]
    assert dc == [50.0, 150.0, 300.0, 400.0, 50.0, 150.0, 300.0, 400.0, 50.0, 150.0]


@pytest.mark.parametrize("count, ac11, ac22, dc", [
    (1, 1, 0, 0),
    (2, 1, 1, 0),
    (3, 2, 1, 0),
    (10, 5, 3, 2),
    (7, 4, 2, 1),
])
@pytest.mark.case("VP-MD-002")
def test_default_mix_small_counts(count, ac11, ac22, dc):
    specs = default_charger_specs(count)
    assert len(specs) == count
    assert sum(1 for s in specs if s["type"] == "ac" and s["max_kw"] == 11.0) == ac11
    assert sum(1 for s in specs if s["type"] == "ac" and s["max_kw"] == 22.0) == ac22
    assert sum(1 for s in specs if s["type"] == "dc") == dc


# =============================================================================
# Departure parsing
# =============================================================================

@pytest.mark.case("VP-MD-003")
def test_departure_hhmm_rolls_to_next_day(now):
    """Test Case - HH:MM departure resolution.

    Description:
    -----------------
    A wall-clock departure resolves to its next occurrence strictly after
    the current time (local time).

    Preconditions:
    -----------------
    1. now = 2026-01-15 12:00 local

    Expected Results:
    ---------------------------
    1. "06:15" -> 2026-01-16 06:15
    2. "13:30" -> 2026-01-15 13:30
    3. "12:00" (equal to now) -> next day
    """
    base = datetime.fromtimestamp(now)
    assert parse_departure("06:15", now) == (base + timedelta(days=1)).replace(hour=6, minute=15).timestamp()
    assert parse_departure("13:30", now) == base.replace(hour=13, minute=30).timestamp()
    assert parse_departure("12:00", now) == (base + timedelta(days=1)).timestamp()


@pytest.mark.case("VP-MD-004")
def test_departure_out_of_range_fields_are_clamped(now):
    base = datetime.fromtimestamp(now)
    assert parse_departure("25:99", now) == base.replace(hour=23, minute=59).timestamp()


@pytest.mark.case("VP-MD-005")
def test_departure_iso_timestamp(now):
    expected = datetime(2026, 1, 16, 6, 15, tzinfo=timezone.utc).timestamp()
    assert parse_departure("2026-01-16T06:15:00Z", now) == expected
    assert parse_departure("2026-01-16T06:15:00+00:00", now) == expected


@pytest.mark.parametrize("value", ["", "soon", "6.15", "2026-99-99T99:99", None, 615, ["06:15"]])
@pytest.mark.case("VP-MD-006")
def test_departure_unparseable_is_none(value, now):
    assert parse_departure(value, now) is None


# =============================================================================
# Model construction
# =============================================================================

@pytest.mark.case("VP-MD-007")
def test_build_defaults(cfg, now):
    m = build_plant_model(cfg, DeterministicRandom(cfg.random_seed), {}, now)

    assert m.grid.limit_kw == 40.0
    assert m.grid.base_load_kw == 8.0
    assert m.storage.soc_pct == 55.0
    assert m.storage.ctrl.enabled is True
    assert len(m.evcs.charge_points) == 50
    assert m.evcs.charge_points[0].id == "c01"
    assert m.evcs.charge_points[-1].id == "c50"

    cp = m.evcs.charge_points[0]
    assert cp.vehicle.id == "VEH-01"
    assert cp.ctrl.plugged is False
    assert cp.meas.status == "Available"
    assert cp.ctrl.limit_kw == cp.max_kw
    assert 10.0 <= cp.vehicle.soc_pct <= 70.0
    assert 40.0 <= cp.vehicle.capacity_kwh <= 90.0
    assert cp.vehicle.departure_ts is not None


@pytest.mark.case("VP-MD-008")
def test_build_restores_persisted_values(cfg, now):
    """Test Case - Restore from persisted store values.

    Description:
    -----------------
    Values found in the store win over configuration defaults and are
    clamped like external writes. The rng stream position does not depend
    on which values were persisted.

    Steps:
    ----------
    1. Build one model without persisted values and one with
    2. Compare restored fields and the rng state of both builds

    Expected Results:
    ---------------------------
    1. Persisted session fields restored, out-of-range limit clamped to 1
    2. Both rngs end in the same state
    """
    persisted = {
        "grid.limit_kw": 0,
        "tariff.mode": "MANUAL",
        "tariff.price_ct_per_kwh": 12.5,
        "storage.soc_pct": 140,
        "evcs.c01.ctrl.plugged": True,
        "evcs.c01.ctrl.enabled": True,
        "evcs.c01.vehicle.soc_pct": 42,
        "evcs.c01.meas.energy_kwh": 12.5,
        "evcs.c01.meas.status": "Charging",
        "evcs.c02.ctrl.priority": 99,
    }
    rng_a = DeterministicRandom(cfg.random_seed)
    rng_b = DeterministicRandom(cfg.random_seed)
    build_plant_model(cfg, rng_a, {}, now)
    m = build_plant_model(cfg, rng_b, persisted, now)

    assert rng_a.state == rng_b.state
    assert m.grid.limit_kw == 1
    assert m.tariff.mode == "manual"
    assert m.tariff.price_ct_per_kwh == 12.5
    assert m.storage.soc_pct == 100

    c01 = m.evcs.find("c01")
    assert c01.ctrl.plugged is True
    assert c01.vehicle.soc_pct == 42
    assert c01.meas.energy_kwh == 12.5
    assert c01.meas.status == "Charging"
    assert m.evcs.find("c02").ctrl.priority == 10


@pytest.mark.case("VP-MD-009")
def test_auto_connect(now):
    cfg = SimulatorConfig.from_raw({"autoConnectEnabled": True, "autoConnectCount": 3, "chargersCount": 5})
    m = build_plant_model(cfg, DeterministicRandom(1), {}, now)
    plugged = [cp.id for cp in m.evcs.charge_points if cp.ctrl.plugged]
    assert plugged == ["c01", "c02", "c03"]
    assert m.evcs.find("c01").meas.status == "Preparing"


# =============================================================================
# Configuration
# =============================================================================

@pytest.mark.case("VP-CFG-001")
def test_config_defaults():
    cfg = SimulatorConfig.from_raw({})
    assert cfg == SimulatorConfig()
    assert cfg.update_interval_ms == 1000
    assert cfg.random_seed == 1337
    assert cfg.scenario_duration_s == 300
    assert cfg.auto_reset_to_baseline is True


@pytest.mark.case("VP-CFG-002")
def test_config_clamps_and_aliases():
    cfg = SimulatorConfig.from_raw({
        "updateIntervalMs": 5,
        "chargersCount": 500,
        "gridLimitKw": -3,
        "pvWeatherFactor": "bad",
        "scenario_duration_s": 10,
        "autoResetToBaseline": "false",
        "defaultDepartureTime": "  ",
        "randomSeed": None,
        "unknownOption": 1,
    })
    assert cfg.update_interval_ms == 200
    assert cfg.chargers_count == 200
    assert isinstance(cfg.chargers_count, int)
    assert cfg.grid_limit_kw == 1
    assert cfg.pv_weather_factor == 0
    assert cfg.scenario_duration_s == 30
    assert cfg.auto_reset_to_baseline is False
    assert cfg.default_departure_time == "06:15"
    assert cfg.random_seed == 1337


@pytest.mark.case("VP-CFG-003")
def test_config_from_json_file(tmp_path):
    path = tmp_path / "vplant.json"
    path.write_text(json.dumps({"chargersCount": 12, "randomSeed": 7}), encoding="utf-8")
    cfg = SimulatorConfig.from_json_file(str(path))
    assert cfg.chargers_count == 12
    assert cfg.random_seed == 7
