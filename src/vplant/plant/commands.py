# plant/commands.py
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from vplant.plant.model import parse_departure
from vplant.plant.process.devices import CHP_MAX_KW, GENERATOR_MAX_KW, HEATPUMP_MAX_KW
from vplant.plant.state import (
    DEVICE_KINDS,
    PlantModel,
    as_bool,
    as_number,
    clamp,
    clamp_input,
    is_pressed,
)


# ============================================================
# Typed commands
# ============================================================
@dataclass(frozen=True)
class GridCommand:
    field: str


@dataclass(frozen=True)
class TariffCommand:
    field: str


@dataclass(frozen=True)
class PvCommand:
    field: str


@dataclass(frozen=True)
class StorageCommand:
    field: str


@dataclass(frozen=True)
class DeviceCommand:
    kind: str
    field: str


@dataclass(frozen=True)
class ChargePointCommand:
    cp_id: str
    field: str


@dataclass(frozen=True)
class ScenarioCommand:
    action: str            # select / apply / start / stop / reset / button / other
    scenario_id: str = ""


@dataclass(frozen=True)
class SuiteCommand:
    action: str            # start / stop / queue / other


PlantCommand = Union[GridCommand, TariffCommand, PvCommand, StorageCommand, DeviceCommand, ChargePointCommand]
Command = Union[PlantCommand, ScenarioCommand, SuiteCommand]


GRID_FIELDS = frozenset({"limit_kw", "base_load_kw", "available"})
TARIFF_FIELDS = frozenset({"mode", "price_ct_per_kwh"})
PV_FIELDS = frozenset({"installed_kwp", "weather_factor", "override.enabled", "override.power_kw"})
STORAGE_FIELDS = frozenset(
    {"capacity_kwh", "max_charge_kw", "max_discharge_kw", "soc_pct", "ctrl.enabled", "ctrl.power_set_kw"}
)
DEVICE_FIELDS = frozenset({"ctrl.enabled", "ctrl.power_set_kw"})
CHARGE_POINT_FIELDS = frozenset(
    {
        "ctrl.enabled",
        "ctrl.limit_kw",
        "ctrl.plugged",
        "ctrl.priority",
        "ctrl.reset_session",
        "vehicle.id",
        "vehicle.soc_pct",
        "vehicle.capacity_kwh",
        "vehicle.max_charge_kw",
        "vehicle.target_soc_pct",
        "vehicle.departure_time",
    }
)

_CP_KEY = re.compile(r"^evcs\.(c\d{2,3})\.(.+)$")

DEVICE_CEILINGS_KW = {"heatpump": HEATPUMP_MAX_KW, "chp": CHP_MAX_KW, "generator": GENERATOR_MAX_KW}


def parse_command(key: str) -> Optional[Command]:
    """Map a store key to a typed command, None when the key is not writable."""
    if not isinstance(key, str) or "." not in key:
        return None

    head, tail = key.split(".", 1)

    if head == "grid" and tail in GRID_FIELDS:
        return GridCommand(tail)
    if head == "tariff" and tail in TARIFF_FIELDS:
        return TariffCommand(tail)
    if head == "pv" and tail in PV_FIELDS:
        return PvCommand(tail)
    if head == "storage" and tail in STORAGE_FIELDS:
        return StorageCommand(tail)
    if head in DEVICE_KINDS and tail in DEVICE_FIELDS:
        return DeviceCommand(head, tail)

    if head == "evcs":
        m = _CP_KEY.match(key)
        if m and m.group(2) in CHARGE_POINT_FIELDS:
            return ChargePointCommand(m.group(1), m.group(2))
        return None

    if head == "scenario":
        if tail == "selected":
            return ScenarioCommand("select")
        if tail.startswith("buttons."):
            return ScenarioCommand("button", tail[len("buttons."):])
        if tail.startswith("ctrl."):
            action = tail[len("ctrl."):]
            if action in ("apply", "start", "stop", "reset"):
                return ScenarioCommand(action)
            return ScenarioCommand("other")
        return None

    if head == "suite":
        if tail in ("ctrl.start", "ctrl.stop"):
            return SuiteCommand(tail[len("ctrl."):])
        if tail == "queue":
            return SuiteCommand("queue")
        return None

    return None


# ============================================================
# Apply
# ============================================================
def apply_command(model: PlantModel, cmd: PlantCommand, value: Any, now: float) -> bool:
    """
    Clamp and apply one external write. Returns False when the command does
    not map to anything in the model (e.g. an unknown charge point).
    """
    match cmd:
        case GridCommand(field="limit_kw"):
            model.grid.limit_kw = clamp_input(value, 1, 5000)
        case GridCommand(field="base_load_kw"):
            model.grid.base_load_kw = clamp_input(value, 0, 5000)
        case GridCommand(field="available"):
            model.grid.available = as_bool(value)

        case TariffCommand(field="mode"):
            model.tariff.mode = "manual" if str(value or "").strip().lower() == "manual" else "auto"
        case TariffCommand(field="price_ct_per_kwh"):
            model.tariff.price_ct_per_kwh = clamp_input(value, -500, 500)

        case PvCommand(field="installed_kwp"):
            model.pv.installed_kwp = clamp_input(value, 0, 5000)
        case PvCommand(field="weather_factor"):
            model.pv.weather_factor = clamp_input(value, 0, 1)
        case PvCommand(field="override.enabled"):
            model.pv.override.enabled = as_bool(value)
        case PvCommand(field="override.power_kw"):
            model.pv.override.power_kw = clamp_input(value, 0, 100000)

        case StorageCommand(field="capacity_kwh"):
            model.storage.capacity_kwh = clamp_input(value, 1, 50000)
        case StorageCommand(field="max_charge_kw"):
            model.storage.max_charge_kw = clamp_input(value, 0, 50000)
        case StorageCommand(field="max_discharge_kw"):
            model.storage.max_discharge_kw = clamp_input(value, 0, 50000)
        case StorageCommand(field="soc_pct"):
            model.storage.soc_pct = clamp_input(value, 0, 100)
        case StorageCommand(field="ctrl.enabled"):
            model.storage.ctrl.enabled = as_bool(value)
        case StorageCommand(field="ctrl.power_set_kw"):
            s = model.storage
            s.ctrl.power_set_kw = _setpoint(value, -s.max_charge_kw, s.max_discharge_kw)

        case DeviceCommand(kind=kind, field="ctrl.enabled"):
            model.device(kind).ctrl.enabled = as_bool(value)
        case DeviceCommand(kind=kind, field="ctrl.power_set_kw"):
            model.device(kind).ctrl.power_set_kw = _setpoint(value, 0.0, DEVICE_CEILINGS_KW[kind])

        case ChargePointCommand(cp_id=cp_id, field=field):
            return _apply_charge_point(model, cp_id, field, value, now)

        case _:
            return False

    return True


def _setpoint(value: Any, lo: float, hi: float) -> float:
    # finite setpoints are kept as written and limited by the process;
    # infinite ones land on the rating
    v = as_number(value)
    return v if math.isfinite(v) else clamp(v, lo, hi)


def _apply_charge_point(model: PlantModel, cp_id: str, field: str, value: Any, now: float) -> bool:
    cp = model.evcs.find(cp_id)
    if cp is None:
        return False

    if field == "ctrl.enabled":
        cp.ctrl.enabled = as_bool(value)
    elif field == "ctrl.limit_kw":
        cp.ctrl.limit_kw = clamp_input(value, 0, 10000)
    elif field == "ctrl.plugged":
        cp.ctrl.plugged = as_bool(value)
        if not cp.ctrl.plugged:
            # unplug ends the session
            cp.meas.power_kw = 0.0
            cp.meas.energy_kwh = 0.0
            cp.meas.status = "Available"
    elif field == "ctrl.priority":
        cp.ctrl.priority = clamp_input(value, 1, 10)
    elif field == "ctrl.reset_session":
        if is_pressed(value):
            cp.meas.energy_kwh = 0.0
            cp.meas.status = "Preparing" if cp.ctrl.plugged else "Available"
    elif field == "vehicle.id":
        cp.vehicle.id = str(value or "").strip()
    elif field == "vehicle.soc_pct":
        cp.vehicle.soc_pct = clamp_input(value, 0, 100)
    elif field == "vehicle.capacity_kwh":
        cp.vehicle.capacity_kwh = clamp_input(value, 1, 1000)
    elif field == "vehicle.max_charge_kw":
        cp.vehicle.max_charge_kw = clamp_input(value, 0, 2000)
    elif field == "vehicle.target_soc_pct":
        cp.vehicle.target_soc_pct = clamp_input(value, 0, 100)
    elif field == "vehicle.departure_time":
        cp.vehicle.departure_time = str(value or "").strip()
        cp.vehicle.departure_ts = parse_departure(cp.vehicle.departure_time, now)
    else:
        return False
    return True
