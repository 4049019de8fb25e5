# scenarios/staged.py
"""
Multi-stage scenarios that walk through several setups inside one timeline.
Stage setup code runs once per stage through enter_stage().
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Optional

from vplant.plant.state import clamp
from vplant.scenarios import setups
from vplant.scenarios.actions import clear_sim_flags, reset_empty_site
from vplant.scenarios.base import ScenarioContext, TimelineStep
from vplant.scenarios.fuzz import FuzzData, fuzz_data, fuzz_tick
from vplant.scenarios.timelines import (
    ArrivalWaveData,
    arrival_step,
    arrival_wave_setup,
    grid_limit_drop_setup,
    pv_cloud_setup,
    tariff_pulse_setup,
)


@dataclass
class StagedSuiteData:
    stage: str = ""
    arrival: Optional[ArrivalWaveData] = None
    fuzz: Optional[FuzzData] = None
    history: list = field(default_factory=list)

    def enter_stage(self, stage: str, fn: Callable[[], None]) -> bool:
        if self.stage == stage:
            return False
        fn()
        self.stage = stage
        self.history.append(stage)
        return True


def staged_setup(ctx: ScenarioContext) -> StagedSuiteData:
    reset_empty_site(ctx.model, ctx.cfg, ctx.rng, ctx.now)
    return StagedSuiteData(stage="baseline", history=["baseline"])


# ============================================================
# Smoke suite (420 s)
# ============================================================
def smoke_timeline(ctx: ScenarioContext, data: StagedSuiteData, elapsed: float) -> TimelineStep:
    m = ctx.model

    if elapsed < 10:
        data.enter_stage("baseline", lambda: reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now))
        return TimelineStep("suite smoke: baseline")

    if elapsed < 70:
        data.enter_stage("lm6", lambda: setups.lm_6cars_deadline(ctx))
        return TimelineStep("suite smoke: LM6 deadline")

    if elapsed < 130:
        data.enter_stage("tariff", lambda: tariff_pulse_setup(ctx))
        t = elapsed - 70
        m.tariff.mode = "manual"
        m.tariff.price_ct_per_kwh = 10.0 if t < 20 else 120.0 if t < 40 else 10.0
        return TimelineStep(f"suite smoke: tariff pulse ({m.tariff.price_ct_per_kwh:g} ct/kWh)")

    if elapsed < 190:
        data.enter_stage("grid_drop", lambda: grid_limit_drop_setup(ctx))
        t = elapsed - 130
        m.grid.limit_kw = 80.0 if t < 20 else 25.0 if t < 40 else 80.0
        return TimelineStep(f"suite smoke: grid limit {m.grid.limit_kw:g} kW")

    if elapsed < 280:
        data.enter_stage("pv_surplus", lambda: setups.pv_surplus_30cars(ctx))
        return TimelineStep("suite smoke: PV surplus (override)")

    if elapsed < 350:
        data.enter_stage("dc_rush", lambda: setups.dc_rush_10(ctx))
        return TimelineStep("suite smoke: DC rush")

    if elapsed < 410:
        data.enter_stage("faults", lambda: setups.faults_faulted(5)(ctx))
        return TimelineStep("suite smoke: fault injection (5 faulted)")

    if elapsed < 420:
        data.enter_stage("cleanup", lambda: clear_sim_flags(m))
        return TimelineStep("suite smoke: cleanup")

    return TimelineStep("suite smoke: done", done=True)


# ============================================================
# Full suite (1800 s)
# ============================================================
def _full_baseline(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)
    m.grid.limit_kw = 80.0
    m.grid.base_load_kw = 10.0
    m.pv.override.enabled = False


def _full_arrival(ctx: ScenarioContext, data: StagedSuiteData) -> None:
    arrival_wave_setup(ctx)
    data.arrival = ArrivalWaveData(total=min(30, len(ctx.model.evcs.charge_points)), next_at_s=30.0)


def full_timeline(ctx: ScenarioContext, data: StagedSuiteData, elapsed: float) -> TimelineStep:
    m = ctx.model

    if elapsed < 30:
        data.enter_stage("baseline", lambda: _full_baseline(ctx))
        return TimelineStep("suite full: baseline")

    if elapsed < 630:
        data.enter_stage("arrival", lambda: _full_arrival(ctx, data))
        arrived = arrival_step(ctx, data.arrival, elapsed)
        return TimelineStep(f"suite full: arrival wave ({arrived}/{data.arrival.total})")

    if elapsed < 1230:
        data.enter_stage("pv_clouds", lambda: pv_cloud_setup(ctx))
        t = elapsed - 630
        wave = 0.5 + 0.5 * math.sin(2 * math.pi * t / 180)
        dip = 0.3 if math.sin(2 * math.pi * t / 75) > 0.92 else 1.0
        m.pv.override.enabled = True
        m.pv.override.power_kw = clamp(550.0 * wave * dip, 0, 100000)
        return TimelineStep(f"suite full: PV clouds ({m.pv.override.power_kw:.0f} kW)")

    if elapsed < 1470:
        data.enter_stage("tariff_extremes", lambda: None)
        t = elapsed - 1230
        m.tariff.mode = "manual"
        m.tariff.price_ct_per_kwh = -20.0 if t < 80 else 200.0 if t < 160 else 30.0
        return TimelineStep(f"suite full: tariff {m.tariff.price_ct_per_kwh:g} ct/kWh")

    if elapsed < 1770:
        # sessions from the previous stages stay plugged
        if data.enter_stage("fuzz", lambda: None):
            data.fuzz = fuzz_data("medium", 1770.0, start_s=elapsed)
        fuzz_tick(ctx, data.fuzz, elapsed)
        return TimelineStep("suite full: fuzz (medium)")

    if elapsed < 1800:
        data.enter_stage("cleanup", lambda: clear_sim_flags(m))
        return TimelineStep("suite full: cleanup")

    return TimelineStep("suite full: done", done=True)
