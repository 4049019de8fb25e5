# scenarios/catalog.py
from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Optional

from vplant.plant.process.devices import CHP_MAX_KW, GENERATOR_MAX_KW, HEATPUMP_MAX_KW
from vplant.scenarios import setups, staged, timelines
from vplant.scenarios.base import ScenarioSpec
from vplant.scenarios.fuzz import fuzz_setup, fuzz_timeline

BASELINE_ID = "baseline"

_WS = re.compile(r"\s+")


class ScenarioCatalog:
    """Ordered registry: scenario id -> ScenarioSpec."""

    def __init__(self, specs: Iterable[ScenarioSpec] = ()):
        self._specs: Dict[str, ScenarioSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ScenarioSpec) -> None:
        if spec.id in self._specs:
            raise ValueError(f"duplicate scenario id: {spec.id}")
        self._specs[spec.id] = spec

    def get(self, scenario_id: str) -> Optional[ScenarioSpec]:
        return self._specs.get(scenario_id)

    def __contains__(self, scenario_id: object) -> bool:
        return scenario_id in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def ids(self) -> List[str]:
        return list(self._specs)

    def normalize_id(self, value: Any) -> str:
        raw = str(value if value is not None else "").strip()
        if not raw:
            return BASELINE_ID
        sid = _WS.sub("_", raw)
        return sid if sid in self._specs else BASELINE_ID

    def default_suite_queue(self) -> List[str]:
        return [s.id for s in self._specs.values() if s.id != BASELINE_ID and s.kind != "suite"]

    def export(self) -> List[Dict[str, Any]]:
        return [s.export() for s in self._specs.values()]

    def export_json(self) -> str:
        return json.dumps(self.export(), indent=2)


def default_catalog() -> ScenarioCatalog:
    c = ScenarioCatalog()

    # --- Suites ---
    c.register(ScenarioSpec(
        "suite_smoke_all", "Suite: Smoke Test (Quick)", "suite",
        "Compact end-to-end run: baseline, LM6 deadline, tariff pulse, grid limit drop, "
        "PV surplus, DC rush, fault injection.",
        staged.staged_setup, staged.smoke_timeline, 420,
    ))
    c.register(ScenarioSpec(
        "suite_full_all", "Suite: Full Test (Long)", "suite",
        "Longer run with arrival wave, PV clouds, tariff extremes and random disturbances.",
        staged.staged_setup, staged.full_timeline, 1800,
    ))

    # --- Baseline ---
    c.register(ScenarioSpec(
        BASELINE_ID, "Baseline / Reset", "oneshot",
        "Resets grid/PV/storage to configured defaults and clears EV sessions and fault flags.",
        setups.baseline,
    ))

    # --- Load management ---
    c.register(ScenarioSpec(
        "lm_6cars_deadline_0615", "Load Mgmt: 6 Cars, Deadline 06:15", "oneshot",
        "40 kW grid, 6 sessions with different SoC, target 100%, departure 06:15. PV off.",
        setups.lm_6cars_deadline,
    ))
    c.register(ScenarioSpec(
        "lm_20mix_deadline_0615", "Load Mgmt: 20 Mixed Chargers, Deadline 06:15", "oneshot",
        "40 kW grid, 20 sessions across AC 11/22 kW and DC, target 100%, departure 06:15. PV off.",
        setups.lm_20mix_deadline,
    ))
    c.register(ScenarioSpec(
        "lm_50ports_deadline_0615", "Load Mgmt: Full Site, Deadline 06:15", "oneshot",
        "40 kW grid, every charge point plugged with random SoC/capacity. PV off.",
        setups.lm_50ports_deadline,
    ))
    c.register(ScenarioSpec(
        "lm_priorities_3tiers", "Load Mgmt: Priorities 3 Tiers", "oneshot",
        "15 sessions in three priority tiers (10/7/4).",
        setups.lm_priorities_3tiers,
    ))
    c.register(ScenarioSpec(
        "lm_arrival_wave_timeline", "Timeline: Arrival Wave", "timeline",
        "Starts empty and plugs one vehicle every 10 s (up to 20).",
        timelines.arrival_wave_setup, timelines.arrival_wave_timeline, 600,
    ))
    c.register(ScenarioSpec(
        "lm_departure_wave_timeline", "Timeline: Departure Wave", "timeline",
        "Starts with 20 sessions and unplugs one every 12 s.",
        timelines.departure_wave_setup, timelines.departure_wave_timeline, 600,
    ))

    # --- PV / storage ---
    c.register(ScenarioSpec(
        "pv_surplus_30cars", "PV Surplus: 30 Cars + Forced PV Power", "oneshot",
        "PV override 450 kW, 30 sessions, departure 17:00, manual tariff 10 ct/kWh.",
        setups.pv_surplus_30cars,
    ))
    c.register(ScenarioSpec(
        "pv_cloud_ramp_timeline", "Timeline: PV Clouds / Ramp", "timeline",
        "PV override modulated by a cloud pattern, 20 sessions.",
        timelines.pv_cloud_setup, timelines.pv_cloud_timeline, 600,
    ))
    c.register(ScenarioSpec(
        "storage_soc0", "Storage Edge: SoC = 0%", "oneshot",
        "Empty storage; discharge requests must be refused.",
        setups.storage_soc(0),
    ))
    c.register(ScenarioSpec(
        "storage_soc100", "Storage Edge: SoC = 100%", "oneshot",
        "Full storage; charge requests must be refused.",
        setups.storage_soc(100),
    ))
    c.register(ScenarioSpec(
        "storage_power_limit_low", "Storage Limit: Low Power (20 kW)", "oneshot",
        "Storage charge/discharge limited to 20 kW.",
        setups.storage_power_limit_low,
    ))

    # --- Tariff ---
    c.register(ScenarioSpec(
        "tariff_flat_low_10ct", "Tariff: Manual Flat 10 ct/kWh", "oneshot",
        "Manual tariff with a flat price of 10 ct/kWh.",
        setups.tariff_flat_low_10ct,
    ))
    c.register(ScenarioSpec(
        "tariff_pulse_timeline", "Timeline: Tariff Pulse", "timeline",
        "Manual price 10 / 120 / 10 ct/kWh in 60 s steps.",
        timelines.tariff_pulse_setup, timelines.tariff_pulse_timeline, 180,
    ))
    c.register(ScenarioSpec(
        "tariff_extremes_timeline", "Timeline: Tariff Extremes", "timeline",
        "Manual price -20 / 200 / 30 ct/kWh in 80 s steps.",
        timelines.tariff_extremes_setup, timelines.tariff_extremes_timeline, 240,
    ))

    # --- Grid ---
    c.register(ScenarioSpec(
        "grid_limit_drop_timeline", "Timeline: Grid Limit Drop (80 -> 25 kW)", "timeline",
        "80 kW, after 60 s 25 kW for 120 s, then 80 kW again.",
        timelines.grid_limit_drop_setup, timelines.grid_limit_drop_timeline, 240,
    ))
    c.register(ScenarioSpec(
        "grid_14a_limit_timeline", "Timeline: Grid Curtailment", "timeline",
        "40 kW, curtailed to 10 kW between 60 s and 300 s, then recovered.",
        timelines.grid_14a_setup, timelines.grid_14a_timeline, 600,
    ))
    c.register(ScenarioSpec(
        "base_load_spike_timeline", "Timeline: Base Load Spikes", "timeline",
        "Base load 8 / 25 / 60 / 15 / 8 kW in 60 s steps.",
        timelines.base_load_spike_setup, timelines.base_load_spike_timeline, 300,
    ))
    c.register(ScenarioSpec(
        "grid_blackout_60s_timeline", "Timeline: Grid Blackout 60s", "timeline",
        "Grid unavailable from 30 s to 90 s, then recovers.",
        timelines.blackout_setup, timelines.blackout_timeline, 150,
    ))

    # --- DC ---
    c.register(ScenarioSpec(
        "dc_rush_10", "DC Stress: 10 DC Sessions", "oneshot",
        "Up to 10 DC points at low SoC, target 80%, 1000 kW grid.",
        setups.dc_rush_10,
    ))
    c.register(ScenarioSpec(
        "dc_taper_single_400", "DC Taper Test: Single 400 kW", "oneshot",
        "One 400 kW DC point at 75% SoC to observe tapering past 80%.",
        setups.dc_taper_single_400,
    ))
    c.register(ScenarioSpec(
        "dc_all_ports_stress", "DC Stress: All DC Ports", "oneshot",
        "Every DC point at low SoC, target 80%, 5000 kW grid.",
        setups.dc_all_ports_stress,
    ))

    # --- Faults ---
    c.register(ScenarioSpec(
        "faults_evcs_faulted_5", "Faults: 5 EVCS Faulted", "oneshot",
        "5 random charge points faulted (power 0).",
        setups.faults_faulted(5),
    ))
    c.register(ScenarioSpec(
        "faults_evcs_unavailable_5", "Faults: 5 EVCS Unavailable", "oneshot",
        "5 random charge points offline (power 0).",
        setups.faults_unavailable(5),
    ))
    c.register(ScenarioSpec(
        "faults_evcs_meter_freeze_3", "Faults: 3 EVCS Meter Freeze", "oneshot",
        "Meters and vehicle SoC of 3 random charge points stop updating.",
        setups.faults_meter_freeze(3),
    ))
    c.register(ScenarioSpec(
        "faults_clear_all", "Faults: Clear All", "oneshot",
        "Clears all fault, offline and meter-freeze flags.",
        setups.faults_clear_all,
    ))

    # --- Fuzz ---
    c.register(ScenarioSpec(
        "fuzz_10min_medium", "Fuzz: 10 min Medium Disturbance", "timeline",
        "Random plug/unplug, PV/tariff/grid changes and occasional faults. Replayable via randomSeed.",
        fuzz_setup("medium", 600), fuzz_timeline, 600,
    ))
    c.register(ScenarioSpec(
        "fuzz_30min_heavy", "Fuzz: 30 min Heavy Disturbance", "timeline",
        "Two random events per second, wider ranges.",
        fuzz_setup("heavy", 1800), fuzz_timeline, 1800,
    ))

    # --- External loads / generation ---
    c.register(ScenarioSpec(
        "ext_heatpump_30kw", "External Load: Heatpump 30 kW", "oneshot",
        "Heatpump enabled at 30 kW.",
        setups.external_device("heatpump", 30, HEATPUMP_MAX_KW),
    ))
    c.register(ScenarioSpec(
        "ext_chp_80kw", "External Generation: CHP 80 kW", "oneshot",
        "CHP enabled at 80 kW.",
        setups.external_device("chp", 80, CHP_MAX_KW),
    ))
    c.register(ScenarioSpec(
        "ext_generator_200kw", "External Generation: Generator 200 kW", "oneshot",
        "Generator enabled at 200 kW.",
        setups.external_device("generator", 200, GENERATOR_MAX_KW),
    ))

    return c
