# plant/process/devices.py
from __future__ import annotations

from vplant.plant.state import DeviceState, PlantModel, as_number, clamp

CHP_MAX_KW = 5000.0
GENERATOR_MAX_KW = 5000.0
HEATPUMP_MAX_KW = 500.0


def _follow_setpoint(dev: DeviceState, ceiling_kw: float) -> None:
    if dev.ctrl.enabled:
        dev.power_kw = clamp(as_number(dev.ctrl.power_set_kw), 0.0, ceiling_kw)
    else:
        dev.power_kw = 0.0


class DeviceProcess:
    def step(self, m: PlantModel) -> None:
        # chp / generator produce, heatpump consumes
        _follow_setpoint(m.chp, CHP_MAX_KW)
        _follow_setpoint(m.generator, GENERATOR_MAX_KW)
        _follow_setpoint(m.heatpump, HEATPUMP_MAX_KW)
