"""Pytest configuration and shared fixtures."""

import os

# Set test environment variables before any imports
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("DATABASE_URL", None)

from datetime import datetime, timedelta, timezone

import pytest


class ManualClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest.fixture
def clock():
    return ManualClock()
