# scenarios/fuzz.py
"""
Randomised disturbances. Every draw goes through the plant rng, so a fuzz run
is replayable from randomSeed.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

from vplant.plant.state import PlantModel, charge_point_id, clamp
from vplant.plant.rng import DeterministicRandom
from vplant.scenarios.actions import clear_sim_flags, plug_charger, reset_empty_site
from vplant.scenarios.base import ScenarioContext, TimelineStep
from vplant.scenarios.setups import DEADLINE_0615

Intensity = Literal["medium", "heavy"]


@dataclass
class FuzzData:
    intensity: Intensity
    duration_s: float
    interval_s: float
    events_per_interval: int
    next_event_s: float = 0.0


def fuzz_data(intensity: Intensity, duration_s: float, start_s: float = 0.0) -> FuzzData:
    heavy = intensity == "heavy"
    return FuzzData(
        intensity=intensity,
        duration_s=duration_s,
        interval_s=1.0 if heavy else 5.0,
        events_per_interval=2 if heavy else 1,
        next_event_s=start_s,
    )


def fuzz_setup(intensity: Intensity, duration_s: float):
    def setup(ctx: ScenarioContext) -> FuzzData:
        m = ctx.model
        reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)

        m.grid.limit_kw = 120.0
        m.grid.base_load_kw = 12.0
        m.grid.available = True

        m.pv.installed_kwp = max(600.0, m.pv.installed_kwp)
        m.pv.override.enabled = False

        # 25 sessions as standing load
        for i in range(1, min(25, len(m.evcs.charge_points)) + 1):
            plug_charger(
                m,
                charge_point_id(i),
                ctx.now,
                soc_pct=clamp(5 + 70 * ctx.rng.next(), 0, 100),
                capacity_kwh=clamp(45 + 55 * ctx.rng.next(), 1, 1000),
                target_soc_pct=100,
                departure_time=DEADLINE_0615,
                priority=5,
            )
        return fuzz_data(intensity, duration_s)

    return setup


def fuzz_event(m: PlantModel, rng: DeterministicRandom, intensity: Intensity) -> str:
    """Apply one weighted random event, return its category name."""
    heavy = intensity == "heavy"
    points = m.evcs.charge_points
    if not points:
        return "none"

    r = rng.next()
    cp = points[int(math.floor(rng.next() * len(points)))]

    if r < 0.25:
        # plug / unplug storm
        do_plug = rng.next() < 0.6
        cp.ctrl.plugged = do_plug
        cp.ctrl.enabled = do_plug
        if do_plug:
            cp.ctrl.limit_kw = cp.max_kw
            cp.vehicle.soc_pct = clamp(cp.vehicle.soc_pct + rng.normal(0, 1), 0, 100)
            cp.meas.status = "Preparing"
        else:
            cp.meas.power_kw = 0.0
            cp.meas.status = "Available"
        return "plug"

    if r < 0.40:
        lo, hi = (10, 400) if heavy else (20, 200)
        m.grid.limit_kw = clamp(lo + (hi - lo) * rng.next(), 1, 5000)
        return "grid_limit"

    if r < 0.55:
        lo, hi = (0, 150) if heavy else (2, 80)
        m.grid.base_load_kw = clamp(lo + (hi - lo) * rng.next(), 0, 5000)
        return "base_load"

    if r < 0.70:
        enable = rng.next() < 0.7
        m.pv.override.enabled = enable
        if enable:
            m.pv.override.power_kw = clamp(50 + 600 * rng.next(), 0, 100000)
        return "pv_override"

    if r < 0.85:
        m.tariff.mode = "manual"
        price = (-50 + 350 * rng.next()) if heavy else (-20 + 220 * rng.next())
        m.tariff.price_ct_per_kwh = clamp(price, -500, 500)
        return "tariff"

    action = rng.next()
    if action < 0.15:
        clear_sim_flags(m)
    elif action < 0.55:
        cp.sim.clear()
        cp.sim.faulted = True
    elif action < 0.80:
        cp.sim.clear()
        cp.sim.unavailable = True
    else:
        cp.sim.clear()
        cp.sim.meter_freeze = True
        if (cp.meas.power_kw or 0.0) < 0.5:
            cp.meas.power_kw = clamp(min(cp.max_kw, 10 + 0.3 * cp.max_kw), 0, cp.max_kw)
            cp.meas.status = "Charging"
    return "fault"


def fuzz_tick(ctx: ScenarioContext, data: FuzzData, elapsed: float) -> None:
    if elapsed >= data.next_event_s:
        for _ in range(data.events_per_interval):
            fuzz_event(ctx.model, ctx.rng, data.intensity)
        data.next_event_s = elapsed + data.interval_s


def fuzz_timeline(ctx: ScenarioContext, data: FuzzData, elapsed: float) -> TimelineStep:
    if elapsed >= data.duration_s:
        return TimelineStep(f"fuzz({data.intensity}) finished", done=True)

    fuzz_tick(ctx, data, elapsed)

    m = ctx.model
    faulted = sum(1 for cp in m.evcs.charge_points if cp.sim.faulted)
    offline = sum(1 for cp in m.evcs.charge_points if cp.sim.unavailable)
    frozen = sum(1 for cp in m.evcs.charge_points if cp.sim.meter_freeze)
    return TimelineStep(
        f"fuzz({data.intensity}): gridLimit={m.grid.limit_kw:.0f} kW, "
        f"baseLoad={m.grid.base_load_kw:.0f} kW, faults={faulted}, offline={offline}, frozen={frozen}"
    )
