# scenarios/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from vplant.config import SimulatorConfig
from vplant.plant.rng import DeterministicRandom
from vplant.plant.state import PlantModel

ScenarioKind = Literal["oneshot", "timeline", "suite"]


@dataclass
class ScenarioContext:
    model: PlantModel
    cfg: SimulatorConfig
    rng: DeterministicRandom
    now: float


@dataclass
class TimelineStep:
    status: str
    done: bool = False


# setup(ctx) -> per-scenario data (or None)
SetupFn = Callable[[ScenarioContext], Any]
# timeline(ctx, data, elapsed_s) -> TimelineStep
TimelineFn = Callable[[ScenarioContext, Any, float], TimelineStep]


@dataclass(frozen=True)
class ScenarioSpec:
    id: str
    title: str
    kind: ScenarioKind
    description: str
    setup: SetupFn
    timeline: Optional[TimelineFn] = None
    duration_s: Optional[float] = None     # natural length of the timeline

    def export(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "duration_s": self.duration_s,
            "description": self.description,
        }


def staged(elapsed: float, stages) -> Optional[Any]:
    """
    Pick the value of the first (end_s, value) stage with elapsed < end_s.
    None once elapsed is past the last stage.
    """
    for end_s, value in stages:
        if elapsed < end_s:
            return value
    return None
