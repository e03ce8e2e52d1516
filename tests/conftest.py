"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from src.adaptive.learning_engine import LearningEngine  # noqa: E402
from src.core.clock import FixedClock  # noqa: E402
from src.delivery.scheduler import MemoryItemScheduler  # noqa: E402

# Monday morning, so the ISO week is unambiguous
START = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full engine, in memory)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
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
    """Manually advanced clock starting at START."""
    return FixedClock(START)


@pytest.fixture
def settings():
    """Default settings, isolated from any local .env."""
    return Settings(_env_file=None, random_seed=7)


@pytest.fixture
def scheduler():
    return MemoryItemScheduler()


@pytest.fixture
def curriculum():
    """A hundred content ids in teaching order."""
    return [f"word-{i:03d}" for i in range(100)]


@pytest.fixture
def engine(settings, clock, curriculum):
    """Engine over an in-memory curriculum with a deterministic clock."""
    return LearningEngine(
        settings=settings,
        clock=clock,
        rng=random.Random(7),
        curriculum=curriculum,
    )
