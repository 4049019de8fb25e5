"""Pytest configuration and fixtures for vplant."""

import asyncio
from datetime import datetime

import pytest

from vplant.config import SimulatorConfig
from vplant.plant.model import build_plant_model
from vplant.plant.rng import DeterministicRandom
from vplant.report import ReportBuilder
from vplant.scenarios.engine import ScenarioEngine
from vplant.scenarios.suite import SuiteRunner
from vplant.simulation import PlantSimulator
from vplant.store import MemoryStateStore


# =============================================================================
# Pytest configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "case(id): Test case identifier (e.g., VP-TS-001)")


# =============================================================================
# Time fixtures
# =============================================================================

# local noon and local night, tariff and PV work on local hours
NOON = datetime(2026, 1, 15, 12, 0).timestamp()
NIGHT = datetime(2026, 1, 15, 2, 0).timestamp()


@pytest.fixture
def now():
    """Fixed wall clock: local noon."""
    return NOON


@pytest.fixture
def night():
    """Fixed wall clock: 02:00 local, no sun."""
    return NIGHT


# =============================================================================
# Plant fixtures
# =============================================================================

@pytest.fixture
def cfg():
    """Default configuration, 50 charge points."""
    return SimulatorConfig()


@pytest.fixture
def small_cfg():
    """Short scenarios and pauses so suites finish in a few dozen ticks."""
    return SimulatorConfig.from_raw({
        "chargersCount": 10,
        "scenarioDurationSec": 30,
        "scenarioResetPauseSec": 5,
    })


@pytest.fixture
def rng(cfg):
    return DeterministicRandom(cfg.random_seed)


@pytest.fixture
def model(cfg, rng, now):
    return build_plant_model(cfg, rng, {}, now)


@pytest.fixture
def engine(model, cfg, rng):
    return ScenarioEngine(model, cfg, rng)


@pytest.fixture
def report():
    return ReportBuilder()


@pytest.fixture
def suite(engine, report):
    return SuiteRunner(engine, report)


# =============================================================================
# Store / simulator fixtures
# =============================================================================

@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def simulator(small_cfg, store, now):
    """Initialised simulator on an in-memory store."""
    sim = PlantSimulator(small_cfg, store)
    asyncio.run(sim.init(now))
    return sim
