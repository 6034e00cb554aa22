"""
Session persistence layer.

Stores session records keyed by session id. Mutations on one id are mutually
exclusive; different ids hash to independent locks so there is no global
lock on the request path.
"""

import threading
from collections.abc import Callable, Iterator
from typing import Protocol

from ..models.session import Session


class SessionStore(Protocol):
    """
    Protocol for session store implementations.

    Implementations raise StoreUnavailableError when the backing storage
    cannot be reached.
    """

    def get(self, session_id: str) -> Session | None:
        """Return the record for session_id, or None if absent."""
        ...

    def put(self, session: Session) -> None:
        """Insert or replace a record."""
        ...

    def delete(self, session_id: str) -> bool:
        """Remove a record. Returns True if it existed."""
        ...

    def delete_if(self, session_id: str, predicate: Callable[[Session], bool]) -> bool:
        """Atomically remove a record when predicate(record) holds."""
        ...

    def scan(self) -> Iterator[Session]:
        """Iterate over a point-in-time copy of all records."""
        ...

    def count(self) -> int:
        """Number of stored records."""
        ...


class InMemorySessionStore:
    """
    Thread-safe in-memory session store using lock striping.

    Attributes:
        stripes: Number of locks ids are spread across

    Example:
        >>> store = InMemorySessionStore()
        >>> store.put(session)
        >>> store.get(session.session_id) is session
        True
    """

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._sessions: dict[str, Session] = {}
        self._locks = [threading.Lock() for _ in range(stripes)]

    def _lock_for(self, session_id: str) -> threading.Lock:
        return self._locks[hash(session_id) % len(self._locks)]

    def get(self, session_id: str) -> Session | None:
        with self._lock_for(session_id):
            return self._sessions.get(session_id)

    def put(self, session: Session) -> None:
        with self._lock_for(session.session_id):
            self._sessions[session.session_id] = session

    def delete(self, session_id: str) -> bool:
        with self._lock_for(session_id):
            return self._sessions.pop(session_id, None) is not None

    def delete_if(self, session_id: str, predicate: Callable[[Session], bool]) -> bool:
        """
        Remove a record only if it still satisfies predicate.

        Args:
            session_id: Session identifier
            predicate: Condition re-checked under the id's lock

        Returns:
            True if the record was removed
        """
        with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None or not predicate(session):
                return False
            del self._sessions[session_id]
            return True

    def scan(self) -> Iterator[Session]:
        # dict.copy() is atomic under the GIL, so concurrent writers are safe
        return iter(list(self._sessions.copy().values()))

    def count(self) -> int:
        return len(self._sessions)
