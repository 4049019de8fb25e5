# plant/process/tariff.py
from __future__ import annotations

import math
from datetime import datetime

from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import PlantModel, clamp


def hour_of_day(ts: float) -> float:
    d = datetime.fromtimestamp(ts)
    return d.hour + d.minute / 60.0


def daily_price(base: float, amp: float, hour: float) -> float:
    return base + amp * math.sin(2.0 * math.pi * (hour - 7.0) / 24.0)


class TariffProcess:
    base_ct: float = 32.0
    amp_ct: float = 10.0
    noise_sigma: float = 0.4

    def __init__(self, rng: DeterministicRandom):
        self.rng = rng

    def step(self, m: PlantModel, now: float) -> None:
        base = self.base_ct
        amp = self.amp_ct

        if m.tariff.mode == "auto":
            price = daily_price(base, amp, hour_of_day(now)) + self.rng.normal(0.0, self.noise_sigma)
            m.tariff.price_ct_per_kwh = clamp(price, -500.0, 500.0)
        else:
            # manual: flat curve at the current price
            base = clamp(float(m.tariff.price_ct_per_kwh), -500.0, 500.0)
            amp = 0.0
            m.tariff.price_ct_per_kwh = base

        m.tariff.forward_curve_24h = [
            round(clamp(daily_price(base, amp, hour_of_day(now + h * 3600.0)), -500.0, 500.0), 2)
            for h in range(24)
        ]
