from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional


TariffMode = Literal["auto", "manual"]
ChargePointType = Literal["ac", "dc"]
ChargePointStatus = Literal[
    "Available", "Preparing", "Charging", "Suspended", "Finished", "Faulted", "Unavailable"
]
DeviceKind = Literal["heatpump", "chp", "generator"]

DEVICE_KINDS: tuple = ("heatpump", "chp", "generator")


# default clamp function
def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def clamp_input(value: Any, lo: float, hi: float) -> float:
    """Clamp an external value; anything non-numeric lands on the lower bound."""
    if isinstance(value, bool):
        v = 1.0 if value else 0.0
    else:
        try:
            v = float(value)
        except (TypeError, ValueError):
            return lo
        except OverflowError:
            # ints too large for a float sit past the matching bound
            return hi if value > 0 else lo
    if math.isnan(v):
        return lo
    return clamp(v, lo, hi)


def as_number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    except OverflowError:
        return math.inf if value > 0 else -math.inf
    if math.isnan(v):
        return default
    return v


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def is_pressed(value: Any) -> bool:
    # momentary buttons only react to an explicit true
    return value is True or value == 1 or value == "true"


def pad2(n: int) -> str:
    return f"{int(n):02d}"


def charge_point_id(n: int) -> str:
    return f"c{pad2(n)}"


@dataclass
class GridState:
    available: bool = True
    limit_kw: float = 40.0
    base_load_kw: float = 8.0
    power_kw: float = 0.0          # + import / - export
    over_limit: bool = False


@dataclass
class TariffState:
    mode: TariffMode = "auto"
    price_ct_per_kwh: float = 30.0
    forward_curve_24h: List[float] = field(default_factory=list)


@dataclass
class PvOverride:
    enabled: bool = False
    power_kw: float = 0.0


@dataclass
class PvState:
    installed_kwp: float = 200.0
    weather_factor: float = 0.85
    power_kw: float = 0.0
    override: PvOverride = field(default_factory=PvOverride)


@dataclass
class PowerControl:
    enabled: bool = False
    power_set_kw: float = 0.0


@dataclass
class StorageState:
    capacity_kwh: float = 200.0
    max_charge_kw: float = 200.0
    max_discharge_kw: float = 200.0
    soc_pct: float = 55.0
    power_kw: float = 0.0          # + discharge / - charge
    ctrl: PowerControl = field(default_factory=lambda: PowerControl(enabled=True))


@dataclass
class DeviceState:
    power_kw: float = 0.0
    ctrl: PowerControl = field(default_factory=PowerControl)


@dataclass
class SimFlags:
    faulted: bool = False
    unavailable: bool = False
    meter_freeze: bool = False

    def clear(self) -> None:
        self.faulted = False
        self.unavailable = False
        self.meter_freeze = False


@dataclass
class ChargePointControl:
    enabled: bool = False
    limit_kw: float = 11.0
    plugged: bool = False
    priority: float = 5.0


@dataclass
class VehicleState:
    id: str = ""
    soc_pct: float = 20.0
    capacity_kwh: float = 60.0
    max_charge_kw: float = 11.0
    target_soc_pct: float = 100.0
    departure_time: str = "06:15"
    departure_ts: Optional[float] = None


@dataclass
class ChargePointMeas:
    status: ChargePointStatus = "Available"
    power_kw: float = 0.0
    energy_kwh: float = 0.0


@dataclass
class ChargePoint:
    id: str
    type: ChargePointType
    max_kw: float
    sim: SimFlags = field(default_factory=SimFlags)
    ctrl: ChargePointControl = field(default_factory=ChargePointControl)
    vehicle: VehicleState = field(default_factory=VehicleState)
    meas: ChargePointMeas = field(default_factory=ChargePointMeas)


@dataclass
class EvcsFleet:
    charge_points: List[ChargePoint] = field(default_factory=list)
    total_power_kw: float = 0.0
    total_energy_kwh: float = 0.0

    def find(self, cp_id: str) -> Optional[ChargePoint]:
        for cp in self.charge_points:
            if cp.id == cp_id:
                return cp
        return None


@dataclass
class PlantModel:
    grid: GridState = field(default_factory=GridState)
    tariff: TariffState = field(default_factory=TariffState)
    pv: PvState = field(default_factory=PvState)
    storage: StorageState = field(default_factory=StorageState)

    heatpump: DeviceState = field(default_factory=DeviceState)
    chp: DeviceState = field(default_factory=DeviceState)
    generator: DeviceState = field(default_factory=DeviceState)

    evcs: EvcsFleet = field(default_factory=EvcsFleet)

    def device(self, kind: str) -> DeviceState:
        if kind not in DEVICE_KINDS:
            raise KeyError(kind)
        return getattr(self, kind)
