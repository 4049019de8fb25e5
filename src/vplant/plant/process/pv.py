# plant/process/pv.py
from __future__ import annotations

import math

from vplant.plant.process.tariff import hour_of_day
from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import PlantModel, clamp

SUNRISE_H = 6.0
SUNSET_H = 20.0


def solar_profile(hour: float) -> float:
    """Day curve 0..1, zero outside sunrise/sunset."""
    if hour <= SUNRISE_H or hour >= SUNSET_H:
        return 0.0
    x = (hour - SUNRISE_H) / (SUNSET_H - SUNRISE_H)
    return math.sin(math.pi * x)


class PvProcess:
    def __init__(self, rng: DeterministicRandom):
        self.rng = rng

    def step(self, m: PlantModel, now: float) -> None:
        pv = m.pv
        if pv.override.enabled:
            pv.power_kw = clamp(float(pv.override.power_kw), 0.0, 100000.0)
            return

        profile = solar_profile(hour_of_day(now))
        noise = clamp(self.rng.normal(0.0, 0.02), -0.05, 0.05)
        pv.power_kw = clamp(
            pv.installed_kwp * pv.weather_factor * profile * (1.0 + noise),
            0.0,
            max(0.0, float(pv.installed_kwp)),
        )
