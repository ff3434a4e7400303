"""Shared test fixtures for Reco."""

import tempfile
from pathlib import Path

import pytest

from src.memory.store import MemoryStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def db_path(tmp_dir):
    """Provide a temporary database path."""
    return tmp_dir / "test_reco.db"


@pytest.fixture
def store(db_path):
    """An opened SQLite store, closed after the test."""
    s = MemoryStore(db_path=db_path)
    s.open()
    yield s
    s.close()


@pytest.fixture
def clock():
    return FakeClock()
