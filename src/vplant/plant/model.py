# plant/model.py
from __future__ import annotations

import math
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from vplant.config import SimulatorConfig
from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import (
    DEVICE_KINDS,
    ChargePoint,
    ChargePointControl,
    ChargePointMeas,
    DeviceState,
    EvcsFleet,
    GridState,
    PlantModel,
    PowerControl,
    PvOverride,
    PvState,
    StorageState,
    TariffState,
    VehicleState,
    as_bool,
    as_number,
    charge_point_id,
    clamp,
    clamp_input,
    pad2,
)

DC_PATTERN_KW = (50, 150, 300, 400)

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def default_charger_specs(count: int) -> List[Dict[str, Any]]:
    """~50% AC 11 kW, ~30% AC 22 kW, the rest DC cycling 50/150/300/400 kW."""
    count = max(0, int(count))
    ac11 = max(1, _round_half_up(count * 0.5))
    ac22 = max(0, _round_half_up(count * 0.3))
    remaining = max(0, count - ac11 - ac22)

    specs: List[Dict[str, Any]] = []
    specs += [{"type": "ac", "max_kw": 11.0} for _ in range(ac11)]
    specs += [{"type": "ac", "max_kw": 22.0} for _ in range(ac22)]
    for i in range(remaining):
        specs.append({"type": "dc", "max_kw": float(DC_PATTERN_KW[i % len(DC_PATTERN_KW)])})

    # rounding may overshoot for tiny counts
    return specs[:count]


def parse_departure(value: Any, now: float) -> Optional[float]:
    """
    "HH:MM" -> next occurrence after now (local time), ISO timestamp -> as is.
    Returns epoch seconds or None when the value cannot be parsed.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()

    if "T" in text:
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            dt = None
        if dt is not None:
            return dt.timestamp()

    m = _HHMM.match(text)
    if not m:
        return None
    hh = int(clamp(int(m.group(1)), 0, 23))
    mm = int(clamp(int(m.group(2)), 0, 59))

    now_dt = datetime.fromtimestamp(now)
    candidate = now_dt.replace(hour=hh, minute=mm, second=0, microsecond=0)
    if candidate <= now_dt:
        candidate += timedelta(days=1)
    return candidate.timestamp()


def build_plant_model(
    cfg: SimulatorConfig,
    rng: DeterministicRandom,
    persisted: Optional[Mapping[str, Any]],
    now: float,
) -> PlantModel:
    """
    Build the model once at startup. Persisted store values win over config
    defaults; everything is clamped the same way external writes are.
    """
    persisted = persisted or {}

    def get(key: str, default: Any) -> Any:
        v = persisted.get(key)
        return default if v is None else v

    grid = GridState(
        available=as_bool(get("grid.available", True)),
        limit_kw=clamp_input(get("grid.limit_kw", cfg.grid_limit_kw), 1, 5000),
        base_load_kw=clamp_input(get("grid.base_load_kw", cfg.base_load_kw), 0, 5000),
    )

    mode = str(get("tariff.mode", "auto")).strip().lower()
    tariff = TariffState(
        mode="manual" if mode == "manual" else "auto",
        price_ct_per_kwh=clamp_input(get("tariff.price_ct_per_kwh", 30), -500, 500),
    )

    pv = PvState(
        installed_kwp=clamp_input(get("pv.installed_kwp", cfg.pv_installed_kwp), 0, 5000),
        weather_factor=clamp_input(get("pv.weather_factor", cfg.pv_weather_factor), 0, 1),
        override=PvOverride(
            enabled=as_bool(get("pv.override.enabled", False)),
            power_kw=clamp_input(get("pv.override.power_kw", 0), 0, 100000),
        ),
    )

    storage = StorageState(
        capacity_kwh=clamp_input(get("storage.capacity_kwh", cfg.storage_capacity_kwh), 1, 50000),
        max_charge_kw=clamp_input(get("storage.max_charge_kw", cfg.storage_max_charge_kw), 0, 50000),
        max_discharge_kw=clamp_input(get("storage.max_discharge_kw", cfg.storage_max_discharge_kw), 0, 50000),
        soc_pct=clamp_input(get("storage.soc_pct", cfg.storage_initial_soc_pct), 0, 100),
        ctrl=PowerControl(
            enabled=as_bool(get("storage.ctrl.enabled", True)),
            power_set_kw=as_number(get("storage.ctrl.power_set_kw", 0)),
        ),
    )

    devices: Dict[str, DeviceState] = {}
    for kind in DEVICE_KINDS:
        devices[kind] = DeviceState(
            ctrl=PowerControl(
                enabled=as_bool(get(f"{kind}.ctrl.enabled", False)),
                power_set_kw=as_number(get(f"{kind}.ctrl.power_set_kw", 0)),
            )
        )

    charge_points: List[ChargePoint] = []
    specs = default_charger_specs(cfg.chargers_count)
    for i, spec in enumerate(specs, start=1):
        cp_id = charge_point_id(i)
        base = f"evcs.{cp_id}"
        max_kw = spec["max_kw"]
        plugged_default = cfg.auto_connect_enabled and i <= cfg.auto_connect_count

        # random defaults are drawn even when a persisted value exists,
        # so the stream position does not depend on store contents
        soc_default = clamp(10 + 60 * rng.next(), 0, 100)
        cap_default = clamp(40 + 50 * rng.next(), 1, 1000)

        plugged = as_bool(get(f"{base}.ctrl.plugged", plugged_default))
        departure_time = str(get(f"{base}.vehicle.departure_time", cfg.default_departure_time))

        charge_points.append(
            ChargePoint(
                id=cp_id,
                type=spec["type"],
                max_kw=max_kw,
                ctrl=ChargePointControl(
                    enabled=as_bool(get(f"{base}.ctrl.enabled", False)),
                    limit_kw=clamp_input(get(f"{base}.ctrl.limit_kw", max_kw), 0, 10000),
                    plugged=plugged,
                    priority=clamp_input(get(f"{base}.ctrl.priority", 5), 1, 10),
                ),
                vehicle=VehicleState(
                    id=str(get(f"{base}.vehicle.id", f"VEH-{pad2(i)}")),
                    soc_pct=clamp_input(get(f"{base}.vehicle.soc_pct", soc_default), 0, 100),
                    capacity_kwh=clamp_input(get(f"{base}.vehicle.capacity_kwh", cap_default), 1, 1000),
                    max_charge_kw=clamp_input(get(f"{base}.vehicle.max_charge_kw", max_kw), 0, 2000),
                    target_soc_pct=clamp_input(
                        get(f"{base}.vehicle.target_soc_pct", cfg.default_target_soc_pct), 0, 100
                    ),
                    departure_time=departure_time,
                    departure_ts=parse_departure(departure_time, now),
                ),
                meas=ChargePointMeas(
                    status=str(get(f"{base}.meas.status", "Preparing" if plugged else "Available")),
                    power_kw=0.0,
                    energy_kwh=clamp_input(get(f"{base}.meas.energy_kwh", 0), 0, 100000),
                ),
            )
        )

    return PlantModel(
        grid=grid,
        tariff=tariff,
        pv=pv,
        storage=storage,
        heatpump=devices["heatpump"],
        chp=devices["chp"],
        generator=devices["generator"],
        evcs=EvcsFleet(charge_points=charge_points),
    )
