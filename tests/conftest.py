"""Pytest configuration and shared fixtures."""

import random

import pytest

from restock.monitoring.logger import StructuredLogger
from tests.fixtures.factories import FakeClock, SleepRecorder


@pytest.fixture(scope="session")
def deterministic_seed():
    """Set a fixed random seed for deterministic test results."""
    random.seed(42)
    return 42


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def logger():
    return StructuredLogger("restock.test", level="DEBUG")
