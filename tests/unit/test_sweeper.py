"""
Unit tests for the background expiry sweeper.

Tests cover:
- Single sweep runs
- Store failures are logged and do not stop the loop
- Start/stop lifecycle
"""

import asyncio
from unittest.mock import Mock

import pytest

from aipha_trader.services.session import SessionManager
from aipha_trader.services.sweeper import ExpirySweeper
from aipha_trader.utils.exceptions import StoreUnavailableError


class TestExpirySweeper:
    """Test ExpirySweeper class."""

    @pytest.mark.asyncio
    async def test_run_once_removes_expired(self, manager, clock, address) -> None:
        """Test a single run purges expired sessions and reports the count."""
        manager.create(address, ttl_seconds=10)
        manager.create(address, ttl_seconds=10)
        manager.create(address, ttl_seconds=1000)
        clock.advance(10)

        sweeper = ExpirySweeper(manager, interval_seconds=60)
        removed = await sweeper.run_once()

        assert removed == 2
        assert manager.session_count() == 1

    @pytest.mark.asyncio
    async def test_run_once_store_unavailable(self) -> None:
        """Test a store outage is tolerated and reported as None."""
        manager = Mock(spec=SessionManager)
        manager.sweep_expired.side_effect = StoreUnavailableError()

        sweeper = ExpirySweeper(manager, interval_seconds=60)

        assert await sweeper.run_once() is None

    @pytest.mark.asyncio
    async def test_run_once_unexpected_error(self) -> None:
        """Test an unexpected error is logged, not raised."""
        manager = Mock(spec=SessionManager)
        manager.sweep_expired.side_effect = RuntimeError("boom")

        sweeper = ExpirySweeper(manager, interval_seconds=60)

        assert await sweeper.run_once() is None

    @pytest.mark.asyncio
    async def test_loop_survives_failures(self) -> None:
        """Test the loop keeps sweeping after a failed run."""
        manager = Mock(spec=SessionManager)
        manager.sweep_expired.side_effect = [StoreUnavailableError(), 3] + [0] * 1000

        sweeper = ExpirySweeper(manager, interval_seconds=0.01)
        sweeper.start()
        await asyncio.sleep(0.2)
        await sweeper.stop()

        assert manager.sweep_expired.call_count >= 2

    @pytest.mark.asyncio
    async def test_start_and_stop(self, manager, clock, address) -> None:
        """Test the sweeper runs on its interval and stops cleanly."""
        manager.create(address, ttl_seconds=1)
        clock.advance(5)

        sweeper = ExpirySweeper(manager, interval_seconds=0.01)
        sweeper.start()
        assert sweeper.running

        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert not sweeper.running
        assert manager.session_count() == 0

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, manager) -> None:
        """Test starting twice keeps a single loop."""
        sweeper = ExpirySweeper(manager, interval_seconds=60)
        sweeper.start()
        task = sweeper._task  # type: ignore
        sweeper.start()

        assert sweeper._task is task  # type: ignore
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, manager) -> None:
        """Test stopping a sweeper that never started."""
        sweeper = ExpirySweeper(manager, interval_seconds=60)

        await sweeper.stop()

        assert not sweeper.running
