"""Pytest configuration and fixtures for Conflict Arbiter tests"""
import logging

import pytest

from conflict_arbiter.arbitration.engine import ArbitrationEngine
from conflict_arbiter.core.config import ArbiterConfig


class ManualClock:
    """Monotonic clock that only moves when a test advances it"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Create a manual clock starting at t=1000s"""
    return ManualClock()


@pytest.fixture
def engine(clock):
    """Create an engine with default configuration driven by the manual clock"""
    return ArbitrationEngine(ArbiterConfig(), clock=clock)


@pytest.fixture
def make_engine(clock):
    """Factory for engines with custom configuration sharing the manual clock"""

    def _make(**overrides) -> ArbitrationEngine:
        return ArbitrationEngine(ArbiterConfig(**overrides), clock=clock)

    return _make


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo root logger changes made by setup_logging"""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            handler.close()
            root.removeHandler(handler)
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)
