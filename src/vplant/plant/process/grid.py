# plant/process/grid.py
from __future__ import annotations

from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import PlantModel, clamp


class GridProcess:
    def __init__(self, rng: DeterministicRandom):
        self.rng = rng

    def step(self, m: PlantModel) -> None:
        noise = clamp(self.rng.normal(0.0, 0.3), -1.0, 1.0)
        base_load = clamp(m.grid.base_load_kw + noise, 0.0, 5000.0)

        # + import / - export
        power = (
            base_load
            + m.heatpump.power_kw
            + m.evcs.total_power_kw
            - m.pv.power_kw
            - m.chp.power_kw
            - m.generator.power_kw
            - m.storage.power_kw
        )

        if not m.grid.available:
            power = 0.0

        m.grid.power_kw = power
        m.grid.over_limit = bool(m.grid.available and power > m.grid.limit_kw + 1e-6)
