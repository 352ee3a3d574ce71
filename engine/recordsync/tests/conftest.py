"""
Record sync kernel test configuration.

Kernel tests are synchronous and use MemoryDocumentStore; nothing here
needs a database or an event loop.
"""

from datetime import UTC, datetime, timedelta

import pytest

from engine.recordsync.transport import MemoryDocumentStore
from engine.recordsync.types import Record

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class StepClock:
    """Deterministic clock: each call advances one second."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(clock):
    return MemoryDocumentStore(clock=clock)


@pytest.fixture
def incidents():
    """The three incident records used across the scenario tests."""
    return (
        Record(id="i1", fields={"status": "Open", "aoc": "Garuda"}, created_at=T0),
        Record(id="i2", fields={"status": "Closed", "aoc": "Lion"}, created_at=T0 + timedelta(minutes=1)),
        Record(id="i3", fields={"status": "Open", "aoc": "Lion"}, created_at=T0 + timedelta(minutes=2)),
    )
