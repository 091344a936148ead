"""
Pytest configuration and fixtures for the marketdash tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to Python path so imports work
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


class FakeClock:
    """
    Manually driven clock.

    ``sleep`` advances time instantly (and yields to the event loop once),
    recording every requested delay.
    """

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    """A FakeClock starting at t=0."""
    return FakeClock()


@pytest.fixture(scope="session")
def project_root_path():
    """Return the project root path."""
    return project_root


@pytest.fixture(scope="session")
def test_symbols():
    """Return the symbols shown on the dashboard."""
    return ["^GSPC", "^TNX", "GC=F", "^VIX"]
