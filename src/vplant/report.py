# report.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from vplant.plant.commands import (
    ChargePointCommand,
    Command,
    DeviceCommand,
    GridCommand,
    PvCommand,
    StorageCommand,
    TariffCommand,
)

CATEGORIES = (
    "evcs_limit",
    "evcs_enable",
    "evcs_plug",
    "storage_power",
    "storage_enable",
    "heatpump",
    "chp",
    "generator",
    "grid_limit",
    "tariff",
    "pv_override",
    "other",
)


def iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def categorize(cmd: Optional[Command]) -> str:
    match cmd:
        case ChargePointCommand(field="ctrl.limit_kw"):
            return "evcs_limit"
        case ChargePointCommand(field="ctrl.enabled"):
            return "evcs_enable"
        case ChargePointCommand(field="ctrl.plugged"):
            return "evcs_plug"
        case StorageCommand(field="ctrl.power_set_kw"):
            return "storage_power"
        case StorageCommand(field="ctrl.enabled"):
            return "storage_enable"
        case DeviceCommand(kind=kind):
            return kind
        case GridCommand(field="limit_kw"):
            return "grid_limit"
        case TariffCommand():
            return "tariff"
        case PvCommand(field="override.enabled") | PvCommand(field="override.power_kw"):
            return "pv_override"
        case _:
            return "other"


@dataclass
class WriteCounters:
    total: int = 0
    by_category: Dict[str, int] = field(default_factory=lambda: {c: 0 for c in CATEGORIES})
    last: Optional[Dict[str, Any]] = None

    def add(self, key: str, value: Any, category: str, now: float) -> None:
        self.total += 1
        self.by_category[category] = self.by_category.get(category, 0) + 1
        self.last = {"id": key, "value": value, "ts": iso(now)}

    def as_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "by_category": dict(self.by_category), "last": self.last}


@dataclass
class _ScenarioRecord:
    id: str
    title: str
    started_at: float
    duration_s: float
    suite_index: Optional[int] = None
    suite_total: Optional[int] = None
    writes: WriteCounters = field(default_factory=WriteCounters)


@dataclass
class _SuiteRecord:
    started_at: float
    total: int
    scenarios: List[Dict[str, Any]] = field(default_factory=list)
    writes: WriteCounters = field(default_factory=WriteCounters)


class ReportBuilder:
    """
    Counts external command writes while a scenario or suite runs and turns
    them into per-scenario and per-suite summaries.
    """

    def __init__(self):
        self.scenario: Optional[_ScenarioRecord] = None
        self.suite: Optional[_SuiteRecord] = None
        self.last_scenario_summary: Optional[Dict[str, Any]] = None
        self.last_suite_summary: Optional[Dict[str, Any]] = None

    @property
    def recording(self) -> bool:
        return self.scenario is not None or self.suite is not None

    def record_write(self, key: str, value: Any, cmd: Optional[Command], now: float) -> bool:
        if not self.recording:
            return False
        category = categorize(cmd)
        if self.scenario is not None:
            self.scenario.writes.add(key, value, category, now)
        if self.suite is not None:
            self.suite.writes.add(key, value, category, now)
        return True

    # ============================================================
    # Scenario
    # ============================================================
    def begin_scenario(
        self,
        scenario_id: str,
        title: str,
        duration_s: float,
        now: float,
        suite_index: Optional[int] = None,
        suite_total: Optional[int] = None,
    ) -> None:
        self.scenario = _ScenarioRecord(
            id=scenario_id,
            title=title,
            started_at=now,
            duration_s=float(duration_s),
            suite_index=suite_index,
            suite_total=suite_total,
        )

    def finish_scenario(self, reason: str, now: float) -> Optional[Dict[str, Any]]:
        rec = self.scenario
        if rec is None:
            return None
        self.scenario = None

        suite = None
        if rec.suite_index is not None:
            suite = {"index": rec.suite_index, "total": rec.suite_total}

        summary = {
            "id": rec.id,
            "title": rec.title,
            "started": iso(rec.started_at),
            "ended": iso(now),
            "elapsed_s": round(max(0.0, now - rec.started_at), 1),
            "duration_s": rec.duration_s,
            "reason": reason,
            "writes": rec.writes.as_dict(),
            "suite": suite,
        }
        self.last_scenario_summary = summary
        if self.suite is not None and suite is not None:
            self.suite.scenarios.append(summary)
        return summary

    # ============================================================
    # Suite
    # ============================================================
    def begin_suite(self, total: int, now: float) -> None:
        self.suite = _SuiteRecord(started_at=now, total=int(total))

    def finish_suite(self, reason: str, now: float) -> Optional[Dict[str, Any]]:
        rec = self.suite
        if rec is None:
            return None
        self.suite = None

        # interrupted scenarios are listed but do not count as progress
        completed = sum(1 for s in rec.scenarios if s.get("reason") == "completed")
        summary = {
            "started": iso(rec.started_at),
            "ended": iso(now),
            "reason": reason,
            "scenarios": list(rec.scenarios),
            "writes": rec.writes.as_dict(),
            "progress": {"completed": completed, "total": rec.total},
        }
        self.last_suite_summary = summary
        return summary
