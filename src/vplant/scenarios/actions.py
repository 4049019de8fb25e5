# scenarios/actions.py
"""Reusable model mutations shared by scenario setups and timelines."""
from __future__ import annotations

from typing import Iterable, List, Optional

from vplant.config import SimulatorConfig
from vplant.plant.model import parse_departure
from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import DEVICE_KINDS, ChargePoint, PlantModel, clamp


def reset_to_defaults(m: PlantModel, cfg: SimulatorConfig, rng: DeterministicRandom, now: float) -> None:
    # Grid
    m.grid.available = True
    m.grid.limit_kw = float(cfg.grid_limit_kw)
    m.grid.base_load_kw = float(cfg.base_load_kw)

    # Tariff (price is recomputed on the next tick)
    m.tariff.mode = "auto"

    # PV
    m.pv.installed_kwp = float(cfg.pv_installed_kwp)
    m.pv.weather_factor = float(cfg.pv_weather_factor)
    m.pv.override.enabled = False
    m.pv.override.power_kw = 0.0

    # Storage
    m.storage.capacity_kwh = float(cfg.storage_capacity_kwh)
    m.storage.max_charge_kw = float(cfg.storage_max_charge_kw)
    m.storage.max_discharge_kw = float(cfg.storage_max_discharge_kw)
    m.storage.soc_pct = float(cfg.storage_initial_soc_pct)
    m.storage.ctrl.enabled = True
    m.storage.ctrl.power_set_kw = 0.0

    # Flexible devices off
    for kind in DEVICE_KINDS:
        dev = m.device(kind)
        dev.ctrl.enabled = False
        dev.ctrl.power_set_kw = 0.0

    # EVCS
    for i, cp in enumerate(m.evcs.charge_points):
        auto_plug = bool(cfg.auto_connect_enabled and (i + 1) <= cfg.auto_connect_count)

        cp.ctrl.plugged = auto_plug
        cp.ctrl.enabled = auto_plug
        cp.ctrl.limit_kw = cp.max_kw
        cp.ctrl.priority = 5.0

        cp.vehicle.soc_pct = clamp(10 + 60 * rng.next(), 0, 100)
        cp.vehicle.capacity_kwh = clamp(40 + 50 * rng.next(), 1, 1000)
        cp.vehicle.max_charge_kw = cp.max_kw
        cp.vehicle.target_soc_pct = float(cfg.default_target_soc_pct)
        cp.vehicle.departure_time = cfg.default_departure_time
        cp.vehicle.departure_ts = parse_departure(cp.vehicle.departure_time, now)

        cp.meas.power_kw = 0.0
        cp.meas.energy_kwh = 0.0
        cp.meas.status = "Preparing" if auto_plug else "Available"

        cp.sim.clear()


def plug_charger(
    m: PlantModel,
    cp_id: str,
    now: float,
    soc_pct: Optional[float] = None,
    capacity_kwh: Optional[float] = None,
    target_soc_pct: Optional[float] = None,
    departure_time: Optional[str] = None,
    priority: Optional[float] = None,
) -> Optional[ChargePoint]:
    """Start a fresh session on cp_id. Unknown ids are skipped (returns None)."""
    cp = m.evcs.find(cp_id)
    if cp is None:
        return None

    cp.ctrl.plugged = True
    cp.ctrl.enabled = True
    cp.ctrl.limit_kw = cp.max_kw
    if priority is not None:
        cp.ctrl.priority = clamp(priority, 1, 10)

    if soc_pct is not None:
        cp.vehicle.soc_pct = clamp(soc_pct, 0, 100)
    if capacity_kwh is not None:
        cp.vehicle.capacity_kwh = clamp(capacity_kwh, 1, 1000)
    cp.vehicle.max_charge_kw = cp.max_kw
    if target_soc_pct is not None:
        cp.vehicle.target_soc_pct = clamp(target_soc_pct, 0, 100)
    if departure_time is not None:
        cp.vehicle.departure_time = str(departure_time)
    cp.vehicle.departure_ts = parse_departure(cp.vehicle.departure_time, now)

    cp.meas.power_kw = 0.0
    cp.meas.energy_kwh = 0.0
    cp.meas.status = "Preparing"

    cp.sim.clear()
    return cp


def unplug(cp: ChargePoint) -> None:
    cp.ctrl.plugged = False
    cp.ctrl.enabled = False
    cp.meas.power_kw = 0.0
    cp.meas.status = "Available"


def unplug_all(m: PlantModel) -> None:
    for cp in m.evcs.charge_points:
        unplug(cp)
        cp.meas.energy_kwh = 0.0


def clear_sim_flags(m: PlantModel) -> None:
    for cp in m.evcs.charge_points:
        cp.sim.clear()


def reset_empty_site(m: PlantModel, cfg: SimulatorConfig, rng: DeterministicRandom, now: float) -> None:
    """Defaults, nobody plugged, no injected faults."""
    reset_to_defaults(m, cfg, rng, now)
    unplug_all(m)
    clear_sim_flags(m)


def night_pv_off(m: PlantModel) -> None:
    m.pv.installed_kwp = 0.0
    m.pv.override.enabled = False


def first_n_ids(m: PlantModel, n: int) -> List[str]:
    return [cp.id for cp in m.evcs.charge_points[: max(0, int(n))]]


# ============================================================
# Fault injection
# ============================================================
def _arm_session(cp: ChargePoint) -> None:
    cp.ctrl.plugged = True
    cp.ctrl.enabled = True
    cp.ctrl.limit_kw = cp.max_kw


def mark_faulted(points: Iterable[ChargePoint]) -> None:
    for cp in points:
        cp.sim.clear()
        cp.sim.faulted = True
        _arm_session(cp)
        cp.meas.power_kw = 0.0
        cp.meas.status = "Faulted"


def mark_unavailable(points: Iterable[ChargePoint]) -> None:
    for cp in points:
        cp.sim.clear()
        cp.sim.unavailable = True
        _arm_session(cp)
        cp.meas.power_kw = 0.0
        cp.meas.status = "Unavailable"


def freeze_meters(points: Iterable[ChargePoint]) -> None:
    for cp in points:
        cp.sim.clear()
        cp.sim.meter_freeze = True
        _arm_session(cp)

        # stuck "charging" snapshot
        cp.meas.power_kw = clamp(min(cp.max_kw, 0.6 * cp.max_kw + 5), 1, cp.max_kw)
        cp.meas.status = "Charging"
        cp.meas.energy_kwh = clamp(cp.meas.energy_kwh + 0.1, 0, 1000000)
        cp.vehicle.soc_pct = clamp(cp.vehicle.soc_pct, 5, 95)
