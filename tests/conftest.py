"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from studyengine.activity import ActivityTracker
from studyengine.card import Card
from studyengine.clock import FixedClock
from studyengine.engine import StudyEngine
from studyengine.repository import InMemoryStore
from studyengine.review_log import ReviewLog
from studyengine.state_store import StateStore

# Fixed-offset zone so calendar-day tests do not depend on the tz database
EASTERN = timezone(timedelta(hours=-5), "EST")


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite state file)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Clock frozen at 2024-03-10 09:00 UTC."""
    return FixedClock(datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def eastern_clock():
    """Clock frozen at 2024-03-10 09:00 in a UTC-5 zone."""
    return FixedClock(datetime(2024, 3, 10, 9, 0, tzinfo=EASTERN))


@pytest.fixture
def store():
    """Empty in-memory repository."""
    return InMemoryStore()


@pytest.fixture
def state_store(tmp_path):
    """SQLite store in a temporary file."""
    db = StateStore(tmp_path / "state.db")
    yield db
    db.close()


@pytest.fixture
def make_card(clock):
    """Factory for cards created at the fixture clock's current time."""

    def _make(front="What is SM-2?", back="A spaced repetition algorithm", **fields):
        card = Card.create(front, back, now=clock.now(), scope=fields.pop("scope", None))
        for name, value in fields.items():
            setattr(card, name, value)
        return card

    return _make


@pytest.fixture
def engine(store, clock):
    """Engine wired to the in-memory store for every port."""
    return StudyEngine(
        repository=store,
        activity=ActivityTracker(store, clock),
        review_log=ReviewLog(store),
        history=store,
        clock=clock,
    )
