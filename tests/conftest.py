"""Pytest configuration and shared fixtures."""

import pytest

from rail import Rail
from rail.testing import RecordingRail


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def rail():
    """Fresh bus with cloning on."""
    return Rail(name="test-rail")


@pytest.fixture
def recording_rail():
    """Bus that records every emission."""
    return RecordingRail(name="recording-rail")


@pytest.fixture
def errors(rail):
    """Payloads of every ``rail.error`` emitted on the ``rail`` fixture."""
    seen = []
    rail.on("rail.error", seen.append, "error-collector")
    return seen
