# scenarios/engine.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from vplant.config import SimulatorConfig
from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import PlantModel
from vplant.scenarios.base import ScenarioContext
from vplant.scenarios.catalog import BASELINE_ID, ScenarioCatalog, default_catalog

log = logging.getLogger(__name__)

ScenarioPhase = Literal["idle", "applying", "applied", "running", "stopped", "done"]


@dataclass
class FinishSignal:
    id: str
    reason: str


@dataclass
class ScenarioRunState:
    selected: str = BASELINE_ID
    active: str = BASELINE_ID
    running: bool = False
    started_at: float = 0.0
    duration_s: float = 0.0
    phase: ScenarioPhase = "idle"
    status: str = "idle"
    data: Any = None
    timeline_done: bool = False     # natural end reached, holding last state
    finished: Optional[FinishSignal] = None
    pending_reset_at: Optional[float] = None
    last_applied: str = ""


class ScenarioEngine:
    def __init__(
        self,
        model: PlantModel,
        cfg: SimulatorConfig,
        rng: DeterministicRandom,
        catalog: Optional[ScenarioCatalog] = None,
    ):
        self.model = model
        self.cfg = cfg
        self.rng = rng
        self.catalog = catalog or default_catalog()
        self.state = ScenarioRunState()

    def _ctx(self, now: float) -> ScenarioContext:
        return ScenarioContext(self.model, self.cfg, self.rng, now)

    def elapsed(self, now: float) -> float:
        if not self.state.running or not self.state.started_at:
            return 0.0
        return max(0.0, now - self.state.started_at)

    def kind_of(self, scenario_id: str) -> Optional[str]:
        spec = self.catalog.get(scenario_id)
        return spec.kind if spec else None

    # ============================================================
    # Operations
    # ============================================================
    def select(self, value: Any) -> str:
        sid = self.catalog.normalize_id(value)
        self.state.selected = sid
        self.state.status = f"selected={sid}"
        return sid

    def apply(self, scenario_id: Any, start: bool, now: float) -> str:
        st = self.state
        sid = self.catalog.normalize_id(scenario_id)
        spec = self.catalog.get(sid)

        st.selected = sid
        st.running = False
        st.started_at = 0.0
        st.phase = "applying"
        st.status = f"applying {sid}"
        st.timeline_done = False
        st.finished = None
        st.pending_reset_at = None

        st.data = spec.setup(self._ctx(now))

        st.active = sid
        st.last_applied = datetime.fromtimestamp(now, tz=timezone.utc).isoformat()

        # baseline is a reset, it never runs
        if start and sid != BASELINE_ID:
            st.running = True
            st.started_at = now
            st.duration_s = float(self.cfg.scenario_duration_s)
            st.phase = "running"
            st.status = f"running {sid}"
            log.info(f"[SCN] start {sid} for {st.duration_s:.0f}s")
        else:
            st.duration_s = 0.0
            st.phase = "applied"
            st.status = f"applied {sid}"
            log.info(f"[SCN] applied {sid}")
        return sid

    def stop(self, reason: str = "user") -> bool:
        st = self.state
        was_running = st.running
        st.running = False
        st.started_at = 0.0
        st.phase = "stopped"
        st.status = f"stopped ({reason})"
        if was_running:
            log.info(f"[SCN] stopped {st.active} ({reason})")
        return was_running

    def run_timeline(self, now: float) -> None:
        st = self.state
        if not st.running or not st.started_at:
            return

        elapsed = now - st.started_at
        spec = self.catalog.get(st.active)

        if spec is not None and spec.timeline is not None and not st.timeline_done:
            step = spec.timeline(self._ctx(now), st.data, elapsed)
            if step.done:
                st.timeline_done = True
                st.status = f"stabilized {st.active} ({step.status})"
            else:
                st.status = step.status
        elif spec is not None and spec.timeline is None:
            st.status = f"running {st.active}"

        if elapsed >= st.duration_s:
            st.running = False
            st.started_at = 0.0
            st.phase = "done"
            st.status = f"done {st.active}"
            st.finished = FinishSignal(st.active, "completed")
            log.info(f"[SCN] done {st.active} after {elapsed:.0f}s")

    def consume_finished(self) -> Optional[FinishSignal]:
        sig = self.state.finished
        self.state.finished = None
        return sig

    # ============================================================
    # Delayed reset to baseline
    # ============================================================
    def schedule_reset(self, now: float) -> None:
        self.state.pending_reset_at = now + float(self.cfg.scenario_reset_pause_s)

    def check_pending_reset(self, now: float) -> bool:
        due = self.state.pending_reset_at
        if due is None or now < due:
            return False
        self.apply(BASELINE_ID, start=False, now=now)
        return True
