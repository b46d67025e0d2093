"""Test configuration and fixtures for job_monitor.

This module provides:
- Pytest configuration (markers)
- Config fixture pointing at a fake backend
- Monitor fixture wired to in-memory channels
"""

import pytest

from fakes import ChannelRecorder
from helpers import BASE_URL
from job_monitor import JobMonitor, MonitorConfig


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "requires_mqtt: requires an MQTT broker on localhost:1883",
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config() -> MonitorConfig:
    return MonitorConfig(base_url=BASE_URL, poll_interval=0.01, poll_max_duration=5.0)


@pytest.fixture
def recorder() -> ChannelRecorder:
    return ChannelRecorder()


@pytest.fixture
def monitor(recorder: ChannelRecorder):
    monitor = JobMonitor(push_factory=recorder.push, poll_factory=recorder.poll)
    yield monitor
    monitor.cancel()
