"""
Pytest configuration and shared fixtures.
"""

from datetime import UTC, datetime, timedelta

import pytest

from aipha_trader.config import Settings
from aipha_trader.services.session import SessionManager
from aipha_trader.services.session_store import InMemorySessionStore

ADDRESS = "0x5290b7A6D8b3a9f6C2e1d4F7a8B9c0D1e2F3a4b5"


class FakeClock:
    """Manually advanced clock; call it to read the current time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    """Create a clock frozen at 2026-01-01T00:00:00Z."""
    return FakeClock()


@pytest.fixture
def address() -> str:
    """A valid, mixed-case chain address."""
    return ADDRESS


@pytest.fixture
def store() -> InMemorySessionStore:
    """Create an empty session store."""
    return InMemorySessionStore(stripes=8)


@pytest.fixture
def manager(store: InMemorySessionStore, clock: FakeClock) -> SessionManager:
    """Create a session manager with a one hour TTL on the fake clock."""
    return SessionManager(store, ttl_seconds=3600, clock=clock)


@pytest.fixture
def settings() -> Settings:
    """Create test settings with fast upstream retries and no cron secret."""
    return Settings(
        upstream_retry_delay=0.01,
        upstream_max_retries=2,
        cron_secret=None,
        debug=False,
        session_cleanup_interval=300,
    )
