"""
Background expiry sweeper.

Periodically purges expired sessions so the store stays bounded even for
sessions nobody reads again.
"""

import asyncio
import logging

from ..utils.exceptions import StoreUnavailableError
from .session import SessionManager

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Runs SessionManager.sweep_expired on a fixed interval.

    The sweep itself runs in a worker thread so a large store never stalls
    the event loop serving requests.
    """

    def __init__(self, manager: SessionManager, interval_seconds: float) -> None:
        self._manager = manager
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._shutdown_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int | None:
        """
        Run a single sweep.

        Returns:
            Number of sessions removed, or None if the sweep failed
        """
        try:
            removed = await asyncio.to_thread(self._manager.sweep_expired)
        except StoreUnavailableError as e:
            logger.warning(f"Session sweep skipped, store unavailable: {e.message}")
            return None
        except Exception:
            logger.exception("Session sweep failed, retrying next interval")
            return None

        if removed > 0:
            logger.info(f"Cleaned up {removed} expired sessions")
        return removed

    async def _loop(self) -> None:
        assert self._shutdown_event is not None
        while not self._shutdown_event.is_set():
            try:
                # Wait for the interval or a shutdown signal
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._interval)
                break
            except TimeoutError:
                await self.run_once()

    def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if self.running:
            return
        self._shutdown_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="session-sweeper")
        logger.info(f"Session sweeper started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        if self._task is not None:
            await self._task
            self._task = None
            logger.info("Session sweeper stopped")
