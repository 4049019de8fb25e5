# config.py
from __future__ import annotations

import json
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

from vplant.plant.state import as_bool, clamp_input


# (lo, hi) per numeric option, applied by from_raw
_RANGES: Dict[str, tuple] = {
    "update_interval_ms": (200, 60000),
    "random_seed": (0, 999999),
    "grid_limit_kw": (1, 2000),
    "base_load_kw": (0, 500),
    "pv_installed_kwp": (0, 2000),
    "pv_weather_factor": (0, 1),
    "storage_capacity_kwh": (1, 5000),
    "storage_max_charge_kw": (0, 5000),
    "storage_max_discharge_kw": (0, 5000),
    "storage_initial_soc_pct": (0, 100),
    "chargers_count": (1, 200),
    "auto_connect_count": (0, 200),
    "default_target_soc_pct": (0, 100),
    "scenario_duration_s": (30, 86400),
    "scenario_reset_pause_s": (0, 600),
}

_INT_FIELDS = {"update_interval_ms", "random_seed", "chargers_count", "auto_connect_count"}

# external (camelCase) option names
_ALIASES: Dict[str, str] = {
    "updateIntervalMs": "update_interval_ms",
    "randomSeed": "random_seed",
    "gridLimitKw": "grid_limit_kw",
    "baseLoadKw": "base_load_kw",
    "pvInstalledKwp": "pv_installed_kwp",
    "pvWeatherFactor": "pv_weather_factor",
    "storageCapacityKwh": "storage_capacity_kwh",
    "storageMaxChargeKw": "storage_max_charge_kw",
    "storageMaxDischargeKw": "storage_max_discharge_kw",
    "storageInitialSocPct": "storage_initial_soc_pct",
    "chargersCount": "chargers_count",
    "autoConnectEnabled": "auto_connect_enabled",
    "autoConnectCount": "auto_connect_count",
    "defaultDepartureTime": "default_departure_time",
    "defaultTargetSocPct": "default_target_soc_pct",
    "scenarioDurationSec": "scenario_duration_s",
    "scenarioResetPauseSec": "scenario_reset_pause_s",
    "autoResetToBaseline": "auto_reset_to_baseline",
}


@dataclass
class SimulatorConfig:
    # Timing
    update_interval_ms: int = 1000
    random_seed: int = 1337

    # Grid
    grid_limit_kw: float = 40.0
    base_load_kw: float = 8.0

    # PV
    pv_installed_kwp: float = 200.0
    pv_weather_factor: float = 0.85

    # Storage
    storage_capacity_kwh: float = 200.0
    storage_max_charge_kw: float = 200.0
    storage_max_discharge_kw: float = 200.0
    storage_initial_soc_pct: float = 55.0

    # EVCS
    chargers_count: int = 50
    auto_connect_enabled: bool = False
    auto_connect_count: int = 0
    default_departure_time: str = "06:15"
    default_target_soc_pct: float = 100.0

    # Scenarios / suite
    scenario_duration_s: float = 300.0
    scenario_reset_pause_s: float = 10.0
    auto_reset_to_baseline: bool = True

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]] = None) -> "SimulatorConfig":
        """
        Normalize a raw option mapping. Unknown keys are ignored, missing keys
        take the defaults and every numeric option is clamped into its range.
        """
        defaults = cls()
        values: Dict[str, Any] = {}
        raw = raw or {}

        for key, value in raw.items():
            name = _ALIASES.get(key, key)
            if value is not None:
                values[name] = value

        out: Dict[str, Any] = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            value = values.get(f.name, default)

            if f.name in _RANGES:
                lo, hi = _RANGES[f.name]
                v = clamp_input(value, lo, hi)
                out[f.name] = int(v) if f.name in _INT_FIELDS else v
            elif isinstance(default, bool):
                out[f.name] = as_bool(value)
            else:
                out[f.name] = str(value).strip() or default

        return cls(**out)

    @classmethod
    def from_json_file(cls, path: str) -> "SimulatorConfig":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_raw(json.load(f))
