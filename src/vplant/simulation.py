# simulation.py
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterator, List, Optional, Tuple

from vplant.config import SimulatorConfig
from vplant.plant.commands import (
    PlantCommand,
    ScenarioCommand,
    SuiteCommand,
    apply_command,
    parse_command,
)
from vplant.plant.model import build_plant_model
from vplant.plant.process.plant_process import PlantProcess
from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import DEVICE_KINDS, PlantModel, is_pressed
from vplant.publisher import ChangePublisher, normalize
from vplant.report import ReportBuilder
from vplant.scenarios.catalog import BASELINE_ID, ScenarioCatalog, default_catalog
from vplant.scenarios.engine import ScenarioEngine
from vplant.scenarios.suite import SuiteRunner
from vplant.store import StateStore, StoreError

log = logging.getLogger(__name__)

Point = Tuple[str, Any]

SCENARIO_CTRL_KEYS = ("scenario.ctrl.apply", "scenario.ctrl.start", "scenario.ctrl.stop", "scenario.ctrl.reset")
SUITE_CTRL_KEYS = ("suite.ctrl.start", "suite.ctrl.stop")


def _kw(x: float) -> float:
    return round(float(x), 3)


def _kwh(x: float) -> float:
    return round(float(x), 6)


def _dumps(obj: Any) -> str:
    return "" if obj is None else json.dumps(obj)


def parse_queue(value: Any) -> List[str]:
    """Accepts a JSON list or a comma separated string."""
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    text = str(value or "").strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            data = json.loads(text)
        except ValueError:
            return []
        if isinstance(data, list):
            return [str(v).strip() for v in data if str(v).strip()]
        return []
    return [p.strip() for p in text.split(",") if p.strip()]


# ============================================================
# Published points
# ============================================================
def plant_points(m: PlantModel) -> Iterator[Point]:
    g = m.grid
    yield "grid.available", g.available
    yield "grid.limit_kw", _kw(g.limit_kw)
    yield "grid.base_load_kw", _kw(g.base_load_kw)
    yield "grid.power_kw", _kw(g.power_kw)
    yield "grid.over_limit", g.over_limit

    t = m.tariff
    yield "tariff.mode", t.mode
    yield "tariff.price_ct_per_kwh", round(t.price_ct_per_kwh, 2)
    yield "tariff.price_next_24h_json", json.dumps(t.forward_curve_24h)

    pv = m.pv
    yield "pv.installed_kwp", _kw(pv.installed_kwp)
    yield "pv.weather_factor", round(pv.weather_factor, 3)
    yield "pv.power_kw", _kw(pv.power_kw)
    yield "pv.override.enabled", pv.override.enabled
    yield "pv.override.power_kw", _kw(pv.override.power_kw)

    s = m.storage
    yield "storage.capacity_kwh", _kw(s.capacity_kwh)
    yield "storage.max_charge_kw", _kw(s.max_charge_kw)
    yield "storage.max_discharge_kw", _kw(s.max_discharge_kw)
    yield "storage.soc_pct", round(s.soc_pct, 3)
    yield "storage.power_kw", _kw(s.power_kw)
    yield "storage.ctrl.enabled", s.ctrl.enabled
    yield "storage.ctrl.power_set_kw", _kw(s.ctrl.power_set_kw)

    for kind in DEVICE_KINDS:
        dev = m.device(kind)
        yield f"{kind}.power_kw", _kw(dev.power_kw)
        yield f"{kind}.ctrl.enabled", dev.ctrl.enabled
        yield f"{kind}.ctrl.power_set_kw", _kw(dev.ctrl.power_set_kw)

    ev = m.evcs
    yield "evcs.count", len(ev.charge_points)
    yield "evcs.total_power_kw", _kw(ev.total_power_kw)
    yield "evcs.total_energy_kwh", _kwh(ev.total_energy_kwh)

    for cp in ev.charge_points:
        base = f"evcs.{cp.id}"
        yield f"{base}.type", cp.type
        yield f"{base}.max_kw", _kw(cp.max_kw)
        yield f"{base}.sim.faulted", cp.sim.faulted
        yield f"{base}.sim.unavailable", cp.sim.unavailable
        yield f"{base}.sim.meter_freeze", cp.sim.meter_freeze
        yield f"{base}.ctrl.enabled", cp.ctrl.enabled
        yield f"{base}.ctrl.limit_kw", _kw(cp.ctrl.limit_kw)
        yield f"{base}.ctrl.plugged", cp.ctrl.plugged
        yield f"{base}.ctrl.priority", cp.ctrl.priority
        yield f"{base}.vehicle.id", cp.vehicle.id
        yield f"{base}.vehicle.soc_pct", round(cp.vehicle.soc_pct, 3)
        yield f"{base}.vehicle.capacity_kwh", _kw(cp.vehicle.capacity_kwh)
        yield f"{base}.vehicle.max_charge_kw", _kw(cp.vehicle.max_charge_kw)
        yield f"{base}.vehicle.target_soc_pct", round(cp.vehicle.target_soc_pct, 3)
        yield f"{base}.vehicle.departure_time", cp.vehicle.departure_time
        yield f"{base}.meas.status", cp.meas.status
        yield f"{base}.meas.power_kw", _kw(cp.meas.power_kw)
        yield f"{base}.meas.energy_kwh", _kwh(cp.meas.energy_kwh)


class PlantSimulator:
    """
    Owns the plant model and everything that drives it. The runtime calls
    init() once, then tick() on a timer and handle_command() for every
    inbound store notification.
    """

    def __init__(
        self,
        cfg: SimulatorConfig,
        store: StateStore,
        catalog: Optional[ScenarioCatalog] = None,
    ):
        self.cfg = cfg
        self.store = store
        self.catalog = catalog or default_catalog()
        self.rng = DeterministicRandom(cfg.random_seed)
        self.process = PlantProcess(self.rng)
        self.report = ReportBuilder()
        self.publisher = ChangePublisher(store)

        self.model: Optional[PlantModel] = None
        self.engine: Optional[ScenarioEngine] = None
        self.suite: Optional[SuiteRunner] = None
        self.suite_queue: List[str] = []

        self.last_tick: Optional[float] = None
        self.skipped_ticks = 0
        self._busy = False

    @property
    def ready(self) -> bool:
        return self.model is not None

    def attach_store(self, store: StateStore) -> None:
        """Switch to a new store (after a reconnect); everything is republished."""
        self.store = store
        self.publisher = ChangePublisher(store)

    # ============================================================
    # Startup
    # ============================================================
    async def init(self, now: Optional[float] = None) -> PlantModel:
        now = time.time() if now is None else now
        persisted = self.store.snapshot()

        self.model = build_plant_model(self.cfg, self.rng, persisted, now)
        self.engine = ScenarioEngine(self.model, self.cfg, self.rng, self.catalog)
        self.suite = SuiteRunner(self.engine, self.report)

        if persisted.get("scenario.selected") is not None:
            self.engine.select(persisted["scenario.selected"])
        self.suite_queue = parse_queue(persisted.get("suite.queue"))

        log.info(
            f"[SIM] model ready: {len(self.model.evcs.charge_points)} charge points, "
            f"interval {self.cfg.update_interval_ms} ms, seed {self.cfg.random_seed}"
        )

        await self.publisher.publish("scenario.catalog_json", self.catalog.export_json())
        await self.publisher.publish("scenario.selected", self.engine.state.selected)
        await self.publisher.publish("suite.queue", json.dumps(self.suite_queue))
        for key in SCENARIO_CTRL_KEYS + SUITE_CTRL_KEYS:
            await self.publisher.publish(key, False)
        for sid in self.catalog.ids():
            await self.publisher.publish(f"scenario.buttons.{sid}", False)
        await self.publisher.publish("info.connection", True)
        await self.publish_all(now)
        return self.model

    # ============================================================
    # Tick
    # ============================================================
    async def tick(self, now: Optional[float] = None) -> bool:
        if self.model is None:
            return False
        if self._busy:
            self.skipped_ticks += 1
            log.debug("[SIM] tick skipped, previous tick still running")
            return False

        now = time.time() if now is None else now
        self._busy = True
        try:
            if self.last_tick is None:
                dt_s = self.cfg.update_interval_ms / 1000.0
            else:
                dt_s = now - self.last_tick
            self.last_tick = now

            self.suite.step(now)
            self.engine.check_pending_reset(now)
            self.engine.run_timeline(now)
            self.process.step(self.model, dt_s, now)
            self._handle_finished(now)

            await self.publish_all(now)
        finally:
            self._busy = False
        return True

    def _handle_finished(self, now: float) -> None:
        sig = self.engine.consume_finished()
        if sig is None:
            return
        summary = self.report.finish_scenario(sig.reason, now)
        if self.suite.on_scenario_finished(sig, summary, now):
            return
        if self.cfg.auto_reset_to_baseline:
            self.engine.schedule_reset(now)

    def points(self, now: float) -> Iterator[Point]:
        yield from plant_points(self.model)

        st = self.engine.state
        yield "scenario.selected", st.selected
        yield "scenario.active", st.active
        yield "scenario.running", st.running
        yield "scenario.phase", st.phase
        yield "scenario.status", st.status
        yield "scenario.elapsed_s", round(self.engine.elapsed(now), 1)
        yield "scenario.duration_s", st.duration_s
        yield "scenario.last_applied", st.last_applied

        su = self.suite.state
        yield "suite.running", su.running
        yield "suite.stage", su.stage
        yield "suite.index", su.index
        yield "suite.total", len(su.queue)
        yield "suite.current_id", su.current_id
        yield "suite.report_json", _dumps(self.report.last_suite_summary)
        yield "report.last_json", _dumps(self.report.last_scenario_summary)

    def point_value(self, key: str, now: float) -> Any:
        for k, v in self.points(now):
            if k == key:
                return v
        return None

    async def publish_all(self, now: float) -> int:
        return await self.publisher.publish_many(self.points(now))

    # ============================================================
    # Commands
    # ============================================================
    async def handle_command(self, key: str, value: Any, ack: bool = False, now: Optional[float] = None) -> None:
        # our own writes come back with ack=true
        if ack:
            return
        now = time.time() if now is None else now

        if self.model is None:
            log.debug(f"[CMD] {key} before model init, acknowledged only")
            await self._ack(key, value)
            return

        cmd = parse_command(key)
        match cmd:
            case ScenarioCommand():
                value = self._scenario_command(cmd, value, now)
            case SuiteCommand():
                value = self._suite_command(cmd, value, now)
            case None:
                log.debug(f"[CMD] {key} is not writable")
            case _:
                if apply_command(self.model, cmd, value, now):
                    self.report.record_write(key, value, cmd, now)
                    current = self.point_value(key, now)
                    if current is not None:
                        value = current
                else:
                    log.debug(f"[CMD] {key} skipped, no such target")

        await self._ack(key, value)

    async def _ack(self, key: str, value: Any) -> None:
        try:
            await self.store.write(key, value, ack=True)
        except StoreError as e:
            log.warning(f"[CMD] ack {key} failed: {e!r}")
            return
        self.publisher.cache[key] = normalize(value)

    def _start_manual(self, scenario_id: str, start: bool, now: float) -> str:
        if self.suite.state.running:
            self.suite.stop(now, reason="preempted")
        if self.engine.state.running:
            self.engine.stop("replaced")
            self.report.finish_scenario("replaced", now)

        sid = self.engine.apply(scenario_id, start=start, now=now)
        if self.engine.state.running:
            spec = self.catalog.get(sid)
            self.report.begin_scenario(sid, spec.title, self.engine.state.duration_s, now)
        return sid

    def _stop_manual(self, now: float, reason: str = "user") -> None:
        if self.suite.state.running:
            self.suite.stop(now, reason=reason)
            return
        if self.engine.stop(reason):
            self.report.finish_scenario("stopped", now)
            if self.cfg.auto_reset_to_baseline:
                self.engine.schedule_reset(now)

    def _scenario_command(self, cmd: ScenarioCommand, value: Any, now: float) -> Any:
        match cmd.action:
            case "select":
                return self.engine.select(value)
            case "button":
                if is_pressed(value) and cmd.scenario_id in self.catalog:
                    kind = self.engine.kind_of(cmd.scenario_id)
                    self._start_manual(cmd.scenario_id, kind in ("timeline", "suite"), now)
                return False
            case "apply":
                if is_pressed(value):
                    self._start_manual(self.engine.state.selected, False, now)
                return False
            case "start":
                if is_pressed(value):
                    self._start_manual(self.engine.state.selected, True, now)
                return False
            case "stop":
                if is_pressed(value):
                    self._stop_manual(now)
                return False
            case "reset":
                if is_pressed(value):
                    self._stop_manual(now, reason="reset")
                    self.engine.apply(BASELINE_ID, start=False, now=now)
                return False
            case _:
                return value

    def _suite_command(self, cmd: SuiteCommand, value: Any, now: float) -> Any:
        match cmd.action:
            case "start":
                if is_pressed(value):
                    self.suite.start(now, self.suite_queue or None)
                return False
            case "stop":
                if is_pressed(value):
                    self.suite.stop(now, reason="user")
                return False
            case "queue":
                requested = parse_queue(value)
                self.suite_queue = self.suite.resolve_queue(requested) if requested else []
                if requested and not self.suite_queue:
                    log.warning(f"[SUITE] no known scenario in queue {requested}, start will use the default queue")
                return json.dumps(self.suite_queue)
            case _:
                return value
