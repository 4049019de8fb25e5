# plant/process/storage.py
from __future__ import annotations

from vplant.plant.state import PlantModel, as_number, clamp


class StorageProcess:
    def step(self, m: PlantModel, dt_h: float) -> None:
        st = m.storage
        power = 0.0

        if st.ctrl.enabled:
            # + discharge / - charge
            req = as_number(st.ctrl.power_set_kw)
            power = clamp(req, -float(st.max_charge_kw), float(st.max_discharge_kw))

            if st.soc_pct <= 0.0 and power > 0.0:
                power = 0.0
            if st.soc_pct >= 100.0 and power < 0.0:
                power = 0.0

            cap = max(1e-6, float(st.capacity_kwh))
            delta_soc = (-power * dt_h / cap) * 100.0
            st.soc_pct = clamp(st.soc_pct + delta_soc, 0.0, 100.0)

        st.power_kw = power
