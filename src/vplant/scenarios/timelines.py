# scenarios/timelines.py
from __future__ import annotations

import math
from dataclasses import dataclass

from vplant.plant.state import charge_point_id, clamp
from vplant.scenarios.actions import (
    night_pv_off,
    plug_charger,
    reset_empty_site,
    reset_to_defaults,
    unplug,
    unplug_all,
)
from vplant.scenarios.base import ScenarioContext, TimelineStep, staged
from vplant.scenarios.setups import DEADLINE_0615


# ============================================================
# Per-scenario working data
# ============================================================
@dataclass
class ArrivalWaveData:
    total: int
    next_index: int = 1
    interval_s: float = 10.0
    next_at_s: float = 0.0


@dataclass
class DepartureWaveData:
    total: int
    next_unplug: int = 1
    interval_s: float = 12.0
    next_at_s: float = 20.0


@dataclass
class PvCloudData:
    max_pv_kw: float = 550.0


def _plug_sessions(ctx: ScenarioContext, count: int, soc_lo: float, soc_span: float, departure: str = DEADLINE_0615) -> None:
    m = ctx.model
    for i in range(1, min(count, len(m.evcs.charge_points)) + 1):
        plug_charger(
            m,
            charge_point_id(i),
            ctx.now,
            soc_pct=clamp(soc_lo + soc_span * ctx.rng.next(), 0, 100),
            capacity_kwh=60,
            target_soc_pct=100,
            departure_time=departure,
        )


# ============================================================
# Grid
# ============================================================
GRID_DROP_STAGES = ((60, 80.0), (180, 25.0), (240, 80.0))
GRID_14A_STAGES = ((60, 40.0), (300, 10.0), (600, 40.0))
BASE_LOAD_STAGES = ((60, 8.0), (120, 25.0), (180, 60.0), (240, 15.0), (300, 8.0))
BLACKOUT_STAGES = ((30, True), (90, False), (150, True))


def grid_limit_drop_setup(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_to_defaults(m, ctx.cfg, ctx.rng, ctx.now)
    unplug_all(m)
    m.grid.limit_kw = 80.0
    m.grid.base_load_kw = 10.0
    m.grid.available = True
    _plug_sessions(ctx, 12, 10, 60)


def grid_limit_drop_timeline(ctx: ScenarioContext, data, elapsed: float) -> TimelineStep:
    limit = staged(elapsed, GRID_DROP_STAGES)
    if limit is None:
        return TimelineStep("grid limit timeline finished", done=True)
    ctx.model.grid.limit_kw = limit
    if elapsed < 60:
        return TimelineStep("grid limit = 80 kW (normal)")
    if elapsed < 180:
        return TimelineStep("grid limit = 25 kW (drop active)")
    return TimelineStep("grid limit restored = 80 kW")


def grid_14a_setup(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)
    m.grid.limit_kw = 40.0
    m.grid.base_load_kw = 8.0
    m.grid.available = True
    _plug_sessions(ctx, 12, 10, 60)


def grid_14a_timeline(ctx: ScenarioContext, data, elapsed: float) -> TimelineStep:
    limit = staged(elapsed, GRID_14A_STAGES)
    if limit is None:
        return TimelineStep("curtailment timeline finished", done=True)
    ctx.model.grid.limit_kw = limit
    if elapsed < 60:
        return TimelineStep("curtailment inactive (limit 40 kW)")
    if elapsed < 300:
        return TimelineStep("curtailment active (limit 10 kW)")
    return TimelineStep("curtailment ended (limit 40 kW)")


def base_load_spike_setup(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)
    m.grid.limit_kw = 80.0
    m.grid.base_load_kw = 8.0
    m.grid.available = True
    _plug_sessions(ctx, 10, 10, 50)


def base_load_spike_timeline(ctx: ScenarioContext, data, elapsed: float) -> TimelineStep:
    load = staged(elapsed, BASE_LOAD_STAGES)
    if load is None:
        return TimelineStep("base load back to normal", done=True)
    ctx.model.grid.base_load_kw = load
    return TimelineStep(f"base load = {load:.0f} kW")


def blackout_setup(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_to_defaults(m, ctx.cfg, ctx.rng, ctx.now)
    unplug_all(m)
    m.grid.limit_kw = 80.0
    m.grid.base_load_kw = 10.0
    m.grid.available = True
    _plug_sessions(ctx, 8, 10, 40)


def blackout_timeline(ctx: ScenarioContext, data, elapsed: float) -> TimelineStep:
    available = staged(elapsed, BLACKOUT_STAGES)
    if available is None:
        return TimelineStep("grid recovered", done=True)
    ctx.model.grid.available = available
    if elapsed < 30:
        return TimelineStep("grid up (pre)")
    if elapsed < 90:
        return TimelineStep("grid blackout (active)")
    return TimelineStep("grid recovered")


# ============================================================
# Tariff
# ============================================================
TARIFF_PULSE_STAGES = ((60, 10.0), (120, 120.0), (180, 10.0))
TARIFF_EXTREME_STAGES = ((80, -20.0), (160, 200.0), (240, 30.0))


def tariff_pulse_setup(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_to_defaults(m, ctx.cfg, ctx.rng, ctx.now)
    unplug_all(m)
    m.grid.limit_kw = 60.0
    m.grid.base_load_kw = 8.0
    _plug_sessions(ctx, 6, 10, 40)

    m.tariff.mode = "manual"
    m.tariff.price_ct_per_kwh = 10.0


def tariff_extremes_setup(ctx: ScenarioContext) -> None:
    ctx.model.tariff.mode = "manual"
    ctx.model.tariff.price_ct_per_kwh = -20.0


def _tariff_timeline(stages):
    def timeline(ctx: ScenarioContext, data, elapsed: float) -> TimelineStep:
        price = staged(elapsed, stages)
        if price is None:
            return TimelineStep("tariff timeline finished", done=True)
        ctx.model.tariff.mode = "manual"
        ctx.model.tariff.price_ct_per_kwh = price
        return TimelineStep(f"tariff = {price:g} ct/kWh")

    return timeline


tariff_pulse_timeline = _tariff_timeline(TARIFF_PULSE_STAGES)
tariff_extremes_timeline = _tariff_timeline(TARIFF_EXTREME_STAGES)


# ============================================================
# PV clouds
# ============================================================
def pv_cloud_setup(ctx: ScenarioContext) -> PvCloudData:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)
    m.grid.limit_kw = 200.0
    m.grid.base_load_kw = 20.0

    m.pv.installed_kwp = max(600.0, m.pv.installed_kwp)
    m.pv.override.enabled = True
    m.pv.override.power_kw = 0.0

    count = min(20, len(m.evcs.charge_points))
    for i in range(1, count + 1):
        plug_charger(
            m,
            charge_point_id(i),
            ctx.now,
            soc_pct=clamp(10 + 50 * ctx.rng.next(), 0, 100),
            capacity_kwh=60,
            target_soc_pct=100,
            departure_time="17:00",
            priority=5,
        )
    return PvCloudData(max_pv_kw=550.0)


def cloud_power(max_pv_kw: float, elapsed: float) -> float:
    wave = 0.5 + 0.5 * math.sin(2 * math.pi * elapsed / 120)
    ripple = 0.85 + 0.15 * math.sin(2 * math.pi * elapsed / 37)
    # occasional deep cloud
    dip = 0.25 if math.sin(2 * math.pi * elapsed / 90) > 0.92 else 1.0
    return clamp(max_pv_kw * wave * ripple * dip, 0, 100000)


def pv_cloud_timeline(ctx: ScenarioContext, data: PvCloudData, elapsed: float) -> TimelineStep:
    if elapsed >= 600:
        return TimelineStep("PV clouds finished", done=True)
    pv = ctx.model.pv
    pv.override.enabled = True
    pv.override.power_kw = cloud_power(clamp(data.max_pv_kw, 0, 100000), elapsed)
    return TimelineStep(f"PV clouds: {pv.override.power_kw:.0f} kW (override)")


# ============================================================
# Arrival / departure waves
# ============================================================
def arrival_wave_setup(ctx: ScenarioContext) -> ArrivalWaveData:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)
    m.grid.limit_kw = 60.0
    m.grid.base_load_kw = 8.0
    m.grid.available = True
    night_pv_off(m)
    return ArrivalWaveData(total=min(20, len(m.evcs.charge_points)))


def arrival_step(ctx: ScenarioContext, data: ArrivalWaveData, elapsed: float) -> int:
    """Plug the next vehicle when due. Returns how many have arrived so far."""
    total = int(clamp(data.total, 0, len(ctx.model.evcs.charge_points)))
    if elapsed >= data.next_at_s and data.next_index <= total:
        plug_charger(
            ctx.model,
            charge_point_id(data.next_index),
            ctx.now,
            soc_pct=clamp(10 + 60 * ctx.rng.next(), 0, 100),
            capacity_kwh=clamp(45 + 55 * ctx.rng.next(), 1, 1000),
            target_soc_pct=100,
            departure_time=DEADLINE_0615,
            priority=5,
        )
        data.next_index += 1
        data.next_at_s = elapsed + data.interval_s
    return min(total, data.next_index - 1)


def arrival_wave_timeline(ctx: ScenarioContext, data: ArrivalWaveData, elapsed: float) -> TimelineStep:
    if elapsed >= 600:
        return TimelineStep("arrival wave finished", done=True)
    arrived = arrival_step(ctx, data, elapsed)
    return TimelineStep(f"arrival wave: plugged {arrived}/{data.total}")


def departure_wave_setup(ctx: ScenarioContext) -> DepartureWaveData:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)
    m.grid.limit_kw = 60.0
    m.grid.base_load_kw = 8.0
    m.grid.available = True

    total = min(20, len(m.evcs.charge_points))
    for i in range(1, total + 1):
        plug_charger(
            m,
            charge_point_id(i),
            ctx.now,
            soc_pct=clamp(10 + 60 * ctx.rng.next(), 0, 100),
            capacity_kwh=60,
            target_soc_pct=100,
            departure_time=DEADLINE_0615,
            priority=5,
        )
    return DepartureWaveData(total=total)


def departure_wave_timeline(ctx: ScenarioContext, data: DepartureWaveData, elapsed: float) -> TimelineStep:
    if elapsed >= 600:
        return TimelineStep("departure wave finished", done=True)

    if elapsed >= data.next_at_s and data.next_unplug <= data.total:
        cp = ctx.model.evcs.find(charge_point_id(data.next_unplug))
        if cp is not None:
            unplug(cp)
        data.next_unplug += 1
        data.next_at_s = elapsed + data.interval_s

    left = min(data.total, data.next_unplug - 1)
    return TimelineStep(f"departure wave: unplugged {left}/{data.total}")
