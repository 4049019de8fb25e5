# scenarios/suite.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional

from vplant.report import ReportBuilder
from vplant.scenarios.catalog import BASELINE_ID
from vplant.scenarios.engine import FinishSignal, ScenarioEngine

log = logging.getLogger(__name__)

SuiteStage = Literal["idle", "pause", "scenario", "done", "stopped"]


@dataclass
class SuiteRunState:
    running: bool = False
    queue: List[str] = field(default_factory=list)
    index: int = 0
    current_id: str = ""
    stage: SuiteStage = "idle"
    results: List[Dict[str, Any]] = field(default_factory=list)
    pause_until: float = 0.0
    started_at: Optional[float] = None


class SuiteRunner:
    """
    Runs a queue of scenarios one after another:
    pause -> scenario -> pause -> ... -> done, with a baseline reset in between.
    """

    def __init__(self, engine: ScenarioEngine, report: ReportBuilder):
        self.engine = engine
        self.report = report
        self.state = SuiteRunState()

    @property
    def pause_s(self) -> float:
        return float(self.engine.cfg.scenario_reset_pause_s)

    def resolve_queue(self, queue: Optional[Iterable[str]] = None) -> List[str]:
        catalog = self.engine.catalog
        if not queue:
            return catalog.default_suite_queue()
        out = []
        for sid in queue:
            spec = catalog.get(str(sid).strip())
            if spec is not None and spec.id != BASELINE_ID and spec.kind != "suite":
                out.append(spec.id)
        return out

    def start(self, now: float, queue: Optional[Iterable[str]] = None) -> None:
        if self.state.running:
            self.stop(now, reason="restart")

        # a manual scenario gives way to the suite
        if self.engine.state.running:
            self.engine.stop("suite")
            self.report.finish_scenario("preempted", now)

        resolved = self.resolve_queue(queue)
        self.state = SuiteRunState(
            running=True,
            queue=resolved,
            stage="pause",
            pause_until=now + self.pause_s,
            started_at=now,
        )
        self.engine.apply(BASELINE_ID, start=False, now=now)
        self.report.begin_suite(len(resolved), now)
        log.info(f"[SUITE] start with {len(resolved)} scenarios")

    def step(self, now: float) -> None:
        st = self.state
        if not st.running or st.stage != "pause" or now < st.pause_until:
            return

        if st.index >= len(st.queue):
            self._finish(now, "completed")
            return

        sid = st.queue[st.index]
        self.engine.apply(sid, start=True, now=now)
        spec = self.engine.catalog.get(sid)
        self.report.begin_scenario(
            sid,
            spec.title if spec else sid,
            self.engine.state.duration_s,
            now,
            suite_index=st.index + 1,
            suite_total=len(st.queue),
        )
        st.stage = "scenario"
        st.current_id = sid
        log.info(f"[SUITE] {st.index + 1}/{len(st.queue)} {sid}")

    def on_scenario_finished(self, signal: FinishSignal, summary: Optional[Dict[str, Any]], now: float) -> bool:
        st = self.state
        if not st.running or st.stage != "scenario" or signal.id != st.current_id:
            return False

        if summary is not None:
            st.results.append(summary)
        st.index += 1
        st.current_id = ""
        self.engine.apply(BASELINE_ID, start=False, now=now)
        st.stage = "pause"
        st.pause_until = now + self.pause_s
        return True

    def stop(self, now: float, reason: str = "user") -> Optional[Dict[str, Any]]:
        st = self.state
        if not st.running:
            return None

        if st.stage == "scenario" and self.engine.state.running:
            self.engine.stop(f"suite {reason}")
            summary = self.report.finish_scenario("stopped", now)
            if summary is not None:
                st.results.append(summary)

        st.running = False
        st.stage = "stopped"
        st.current_id = ""
        self.engine.apply(BASELINE_ID, start=False, now=now)
        log.info(f"[SUITE] stopped ({reason})")
        return self.report.finish_suite(reason, now)

    def _finish(self, now: float, reason: str) -> Optional[Dict[str, Any]]:
        st = self.state
        self.engine.apply(BASELINE_ID, start=False, now=now)
        st.running = False
        st.stage = "done"
        st.current_id = ""
        log.info(f"[SUITE] done, {len(st.results)} scenarios")
        return self.report.finish_suite(reason, now)
