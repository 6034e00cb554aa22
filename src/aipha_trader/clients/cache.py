"""
Market data cache.

Holds the last-known-good snapshot per query key. Unlike a TTL cache, entries
never disappear on their own: an old snapshot is still the best fallback
when the upstream is down, so age is judged by the aggregator, not here.
"""

from threading import RLock
from typing import Protocol

from ..models.market import MarketSnapshot


class CacheInterface(Protocol):
    """
    Protocol for snapshot cache implementations.

    All cache implementations should provide these methods to ensure
    compatibility with the rest of the application.
    """

    def get(self, key: str) -> MarketSnapshot | None:
        """
        Retrieve the snapshot for a query key.

        Args:
            key: Query key to retrieve

        Returns:
            The cached snapshot, or None if never fetched
        """
        ...

    def put(self, snapshot: MarketSnapshot) -> None:
        """
        Replace the snapshot stored under snapshot.key.

        Args:
            snapshot: Immutable snapshot to store
        """
        ...

    def delete(self, key: str) -> bool:
        """
        Remove a key from the cache.

        Args:
            key: Query key to remove

        Returns:
            True if the key existed and was removed, False otherwise
        """
        ...

    def clear(self) -> None:
        """Remove all snapshots."""
        ...

    def keys(self) -> list[str]:
        """Query keys that currently hold a snapshot."""
        ...


class MarketDataCache:
    """
    Thread-safe in-memory snapshot cache.

    Snapshots are frozen models, so replacing the dict entry under the lock
    is the whole update: readers get either the old or the new snapshot.

    Example:
        >>> cache = MarketDataCache()
        >>> cache.put(MarketSnapshot(key="indices", payload={...}, fetched_at=now))
        >>> cache.get("indices").key
        'indices'
    """

    def __init__(self) -> None:
        self._store: dict[str, MarketSnapshot] = {}
        self._lock = RLock()

    def get(self, key: str) -> MarketSnapshot | None:
        with self._lock:
            return self._store.get(key)

    def put(self, snapshot: MarketSnapshot) -> None:
        with self._lock:
            self._store[snapshot.key] = snapshot

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._store)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
