from __future__ import annotations

import math

from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import PlantModel, clamp
from vplant.plant.process.tariff import TariffProcess
from vplant.plant.process.pv import PvProcess
from vplant.plant.process.devices import DeviceProcess
from vplant.plant.process.storage import StorageProcess
from vplant.plant.process.evcs import EvcsProcess
from vplant.plant.process.grid import GridProcess

MIN_DT_S = 0.2
MAX_DT_S = 60.0


class PlantProcess:
    """
    One physics step over the whole plant. Subsystem order is fixed because
    the rng stream (tariff, pv, grid noise) must be consumed the same way
    on every run.
    """

    def __init__(self, rng: DeterministicRandom):
        self.tariff = TariffProcess(rng)
        self.pv = PvProcess(rng)
        self.devices = DeviceProcess()
        self.storage = StorageProcess()
        self.evcs = EvcsProcess()
        self.grid = GridProcess(rng)

    def step(self, m: PlantModel, dt_s: float, now: float) -> float:
        dt_s = float(dt_s)
        dt_s = MIN_DT_S if math.isnan(dt_s) else clamp(dt_s, MIN_DT_S, MAX_DT_S)
        dt_h = dt_s / 3600.0

        self.tariff.step(m, now)
        self.pv.step(m, now)
        self.devices.step(m)
        self.storage.step(m, dt_h)
        self.evcs.step(m, dt_h)
        self.grid.step(m)
        return dt_s
