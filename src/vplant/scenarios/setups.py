# scenarios/setups.py
"""One-shot scenario setups. Each takes a ScenarioContext and returns no data."""
from __future__ import annotations

from vplant.plant.state import charge_point_id, clamp
from vplant.scenarios.actions import (
    clear_sim_flags,
    freeze_meters,
    mark_faulted,
    mark_unavailable,
    night_pv_off,
    plug_charger,
    reset_to_defaults,
    reset_empty_site,
    unplug_all,
)
from vplant.scenarios.base import ScenarioContext

DEADLINE_0615 = "06:15"


def baseline(ctx: ScenarioContext) -> None:
    reset_to_defaults(ctx.model, ctx.cfg, ctx.rng, ctx.now)


# ============================================================
# Load management
# ============================================================
def lm_6cars_deadline(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_to_defaults(m, ctx.cfg, ctx.rng, ctx.now)
    unplug_all(m)

    # 40 kW house connection, night
    m.grid.limit_kw = 40.0
    m.grid.base_load_kw = 8.0
    m.grid.available = True
    night_pv_off(m)

    m.storage.capacity_kwh = 200.0
    m.storage.max_charge_kw = 200.0
    m.storage.max_discharge_kw = 200.0
    m.storage.soc_pct = 60.0
    m.storage.ctrl.enabled = True
    m.storage.ctrl.power_set_kw = 0.0

    socs = [20, 35, 10, 50, 25, 15]
    for i, soc in enumerate(socs):
        if i >= len(m.evcs.charge_points):
            break
        plug_charger(
            m,
            charge_point_id(i + 1),
            ctx.now,
            soc_pct=soc,
            capacity_kwh=60,
            target_soc_pct=100,
            departure_time=DEADLINE_0615,
            priority=10 if i == 0 else 5,
        )


def lm_20mix_deadline(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_to_defaults(m, ctx.cfg, ctx.rng, ctx.now)
    unplug_all(m)

    m.grid.limit_kw = 40.0
    m.grid.base_load_kw = 10.0
    m.grid.available = True
    night_pv_off(m)

    # AC11 c01.., AC22 c26.., DC c41.. (on a 50 point site)
    numbers = list(range(1, 11)) + list(range(26, 31)) + list(range(41, 46))
    count = len(m.evcs.charge_points)
    ids = [charge_point_id(n) for n in numbers if 1 <= n <= count]

    for i, cp_id in enumerate(ids):
        soc = clamp(10 + 60 * ctx.rng.next(), 0, 100)
        cap = clamp(50 + 40 * ctx.rng.next(), 1, 1000)
        plug_charger(
            m,
            cp_id,
            ctx.now,
            soc_pct=soc,
            capacity_kwh=cap,
            target_soc_pct=100,
            departure_time=DEADLINE_0615,
            priority=9 if i < 3 else 5,
        )


def lm_50ports_deadline(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)

    m.grid.limit_kw = 40.0
    m.grid.base_load_kw = 10.0
    m.grid.available = True
    night_pv_off(m)

    for cp in m.evcs.charge_points:
        soc = clamp(5 + 70 * ctx.rng.next(), 0, 100)
        cap = clamp(40 + 70 * ctx.rng.next(), 1, 1000)
        plug_charger(
            m,
            cp.id,
            ctx.now,
            soc_pct=soc,
            capacity_kwh=cap,
            target_soc_pct=100,
            departure_time=DEADLINE_0615,
            priority=5,
        )


def lm_priorities_3tiers(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)

    m.grid.limit_kw = 40.0
    m.grid.base_load_kw = 8.0
    night_pv_off(m)

    total = min(15, len(m.evcs.charge_points))
    for i in range(1, total + 1):
        pri = 10 if i <= 3 else 7 if i <= 8 else 4
        plug_charger(
            m,
            charge_point_id(i),
            ctx.now,
            soc_pct=clamp(10 + 50 * ctx.rng.next(), 0, 100),
            capacity_kwh=clamp(50 + 40 * ctx.rng.next(), 1, 1000),
            target_soc_pct=100,
            departure_time=DEADLINE_0615,
            priority=pri,
        )


# ============================================================
# PV / storage / tariff
# ============================================================
def pv_surplus_30cars(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_to_defaults(m, ctx.cfg, ctx.rng, ctx.now)
    unplug_all(m)

    m.grid.limit_kw = 200.0
    m.grid.base_load_kw = 30.0

    # forced PV so the test does not depend on the time of day
    m.pv.installed_kwp = max(600.0, m.pv.installed_kwp)
    m.pv.override.enabled = True
    m.pv.override.power_kw = 450.0

    count = min(30, len(m.evcs.charge_points))
    for i in range(1, count + 1):
        plug_charger(
            m,
            charge_point_id(i),
            ctx.now,
            soc_pct=clamp(10 + 50 * ctx.rng.next(), 0, 100),
            capacity_kwh=clamp(50 + 40 * ctx.rng.next(), 1, 1000),
            target_soc_pct=100,
            departure_time="17:00",
            priority=5,
        )

    m.tariff.mode = "manual"
    m.tariff.price_ct_per_kwh = 10.0


def storage_soc(soc_pct: float):
    def setup(ctx: ScenarioContext) -> None:
        ctx.model.storage.soc_pct = clamp(soc_pct, 0, 100)
        ctx.model.storage.ctrl.enabled = True

    return setup


def storage_power_limit_low(ctx: ScenarioContext) -> None:
    st = ctx.model.storage
    st.max_charge_kw = 20.0
    st.max_discharge_kw = 20.0
    st.ctrl.enabled = True


def tariff_flat_low_10ct(ctx: ScenarioContext) -> None:
    ctx.model.tariff.mode = "manual"
    ctx.model.tariff.price_ct_per_kwh = 10.0


# ============================================================
# DC
# ============================================================
def dc_rush_10(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)

    m.grid.limit_kw = 1000.0
    m.grid.base_load_kw = 50.0
    night_pv_off(m)

    dc = [cp for cp in m.evcs.charge_points if cp.type == "dc"][:10]
    for cp in dc:
        plug_charger(
            m,
            cp.id,
            ctx.now,
            soc_pct=clamp(5 + 25 * ctx.rng.next(), 0, 100),
            capacity_kwh=clamp(60 + 40 * ctx.rng.next(), 1, 1000),
            target_soc_pct=80,
            departure_time="08:00",
            priority=5,
        )


def dc_taper_single_400(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)

    m.grid.limit_kw = 1000.0
    m.grid.base_load_kw = 30.0
    night_pv_off(m)

    dc = [cp for cp in m.evcs.charge_points if cp.type == "dc"]
    big = [cp for cp in dc if cp.max_kw >= 390]
    target = (big or dc or [None])[0]
    if target is None:
        return

    plug_charger(
        m,
        target.id,
        ctx.now,
        soc_pct=75,
        capacity_kwh=90,
        target_soc_pct=100,
        departure_time="08:00",
        priority=5,
    )


def dc_all_ports_stress(ctx: ScenarioContext) -> None:
    m = ctx.model
    reset_empty_site(m, ctx.cfg, ctx.rng, ctx.now)

    m.grid.limit_kw = 5000.0
    m.grid.base_load_kw = 50.0
    night_pv_off(m)

    for cp in [cp for cp in m.evcs.charge_points if cp.type == "dc"]:
        plug_charger(
            m,
            cp.id,
            ctx.now,
            soc_pct=clamp(5 + 20 * ctx.rng.next(), 0, 100),
            capacity_kwh=clamp(60 + 60 * ctx.rng.next(), 1, 1000),
            target_soc_pct=80,
            departure_time="08:00",
            priority=5,
        )


# ============================================================
# Fault injection
# ============================================================
def faults_faulted(count: int):
    def setup(ctx: ScenarioContext) -> None:
        clear_sim_flags(ctx.model)
        mark_faulted(ctx.rng.sample(ctx.model.evcs.charge_points, count))

    return setup


def faults_unavailable(count: int):
    def setup(ctx: ScenarioContext) -> None:
        clear_sim_flags(ctx.model)
        mark_unavailable(ctx.rng.sample(ctx.model.evcs.charge_points, count))

    return setup


def faults_meter_freeze(count: int):
    def setup(ctx: ScenarioContext) -> None:
        clear_sim_flags(ctx.model)
        freeze_meters(ctx.rng.sample(ctx.model.evcs.charge_points, count))

    return setup


def faults_clear_all(ctx: ScenarioContext) -> None:
    clear_sim_flags(ctx.model)


# ============================================================
# External loads / generation
# ============================================================
def external_device(kind: str, power_kw: float, ceiling_kw: float):
    def setup(ctx: ScenarioContext) -> None:
        dev = ctx.model.device(kind)
        dev.ctrl.enabled = True
        dev.ctrl.power_set_kw = clamp(power_kw, 0, ceiling_kw)

    return setup
