"""Shared fixtures: in-memory store and health source, fixed clock."""

import pytest

from fitledger.shell.engine import CalorieBalanceEngine, EngineConfig
from fitledger.shell.events import EventBus
from fitledger.shell.tracker import FitnessTracker
from tests.fakes import NOW, TODAY, FakeHealthSource, InMemoryStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def source():
    return FakeHealthSource()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def engine(store, source, bus):
    return CalorieBalanceEngine(
        store,
        source,
        bus,
        EngineConfig(refresh_interval_seconds=0.05, source_timeout_seconds=0.2),
        today=lambda: TODAY,
    )


@pytest.fixture
def tracker(store, source, bus, engine):
    return FitnessTracker(store, engine, bus, source, source_timeout_seconds=0.2, now=lambda: NOW)
