"""
Pytest configuration and fixtures for testing.
"""

import os
import random
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["ADVISORY_ENABLED"] = "false"

from config.test_settings import test_settings
from honeytrack.core.advisory import AdvisoryConsultant, AdvisoryService
from honeytrack.core.engine import ConversationEngine
from honeytrack.core.registry import TrackerRegistry
from fakes import FakeClock


@pytest.fixture
def settings():
    """Test application settings."""
    return test_settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    """Seeded random source for deterministic thresholds."""
    return random.Random(1234)


@pytest.fixture
def registry(settings, clock, rng):
    return TrackerRegistry(settings.engagement, settings.registry, clock=clock, rng=rng)


@pytest.fixture
def engine(registry, settings, clock):
    """Engine with the advisory service disabled."""
    return ConversationEngine(registry, settings, clock=clock)


@pytest.fixture
def make_engine(registry, settings, clock):
    """Factory for engines wired to a given advisory service."""

    def _make(service: AdvisoryService, timeout_seconds: float = 0.5) -> ConversationEngine:
        consultant = AdvisoryConsultant(service, timeout_seconds=timeout_seconds)
        return ConversationEngine(registry, settings, consultant=consultant, clock=clock)

    return _make


@pytest.fixture
def client(engine):
    """Test client serving the given engine."""
    from honeytrack.main import app

    app.state.engine = engine
    with TestClient(app) as test_client:
        yield test_client
    app.state.engine = None
