# plant/process/evcs.py
from __future__ import annotations

from vplant.plant.state import ChargePoint, PlantModel, as_number, clamp

CHARGE_EFFICIENCY = 0.96
TAPER_START_SOC = 80.0
TAPER_FLOOR = 0.2


def dc_taper_factor(soc_pct: float) -> float:
    """Full power up to 80% SoC, then linear down to 20% at 100%."""
    soc = clamp(as_number(soc_pct), 0.0, 100.0)
    if soc <= TAPER_START_SOC:
        return 1.0
    x = (soc - TAPER_START_SOC) / (100.0 - TAPER_START_SOC)
    return clamp(1.0 - (1.0 - TAPER_FLOOR) * x, TAPER_FLOOR, 1.0)


class EvcsProcess:
    def step(self, m: PlantModel, dt_h: float) -> None:
        total_power = 0.0
        total_energy = 0.0

        for cp in m.evcs.charge_points:
            total_power += self._step_point(cp, dt_h)
            total_energy += cp.meas.energy_kwh

        m.evcs.total_power_kw = total_power
        m.evcs.total_energy_kwh = total_energy

    def _step_point(self, cp: ChargePoint, dt_h: float) -> float:
        """Advance one charge point, return the power it contributes to totals."""
        # fault injection wins over everything else
        if cp.sim.unavailable:
            return self._idle(cp, "Unavailable")
        if cp.sim.faulted:
            return self._idle(cp, "Faulted")
        if cp.sim.meter_freeze:
            # frozen meter: measurements and vehicle stay as they are
            return as_number(cp.meas.power_kw)

        if not cp.ctrl.plugged:
            return self._idle(cp, "Available")

        target = clamp(as_number(cp.vehicle.target_soc_pct), 0.0, 100.0)
        if cp.vehicle.soc_pct >= target - 0.01:
            cp.vehicle.soc_pct = clamp(cp.vehicle.soc_pct, 0.0, 100.0)
            return self._idle(cp, "Finished")

        if not cp.ctrl.enabled:
            return self._idle(cp, "Preparing")

        limit = clamp(as_number(cp.ctrl.limit_kw), 0.0, 10000.0)
        p = min(limit, cp.max_kw, as_number(cp.vehicle.max_charge_kw))
        if cp.type == "dc":
            p *= dc_taper_factor(cp.vehicle.soc_pct)

        # never overshoot the target within one step
        cap_kwh = max(0.1, as_number(cp.vehicle.capacity_kwh, 0.1))
        need_kwh = max(0.0, (target - cp.vehicle.soc_pct) / 100.0 * cap_kwh)
        if dt_h > 0 and max(0.0, p * dt_h) > need_kwh:
            p = need_kwh / dt_h

        p = clamp(p, 0.0, cp.max_kw)

        cp.meas.power_kw = p
        cp.meas.status = "Charging" if p > 0.01 else "Suspended"

        delivered_kwh = p * dt_h * CHARGE_EFFICIENCY
        cp.meas.energy_kwh = clamp(cp.meas.energy_kwh + delivered_kwh, 0.0, 1000000.0)
        cp.vehicle.soc_pct = clamp(cp.vehicle.soc_pct + delivered_kwh / cap_kwh * 100.0, 0.0, 100.0)

        return p

    @staticmethod
    def _idle(cp: ChargePoint, status: str) -> float:
        cp.meas.power_kw = 0.0
        cp.meas.status = status
        return 0.0
