"""
Session management service.

Sole authority over session validity: creation, verification, invalidation
and expiry sweeping. Expired sessions are removed both lazily (when a
verification reads them) and in bulk (by the sweeper).
"""

import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from ..models.session import AuthResult, InvalidReason, Session, is_valid_address
from ..utils.exceptions import InvalidAddressError, StoreUnavailableError
from ..utils.logging_setup import mask
from .session_store import SessionStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class SessionManager:
    """
    Session lifecycle service on top of a SessionStore.

    Attributes:
        _store: Backing session store
        _ttl_seconds: Default session lifetime in seconds
        _clock: Source of the current time
    """

    def __init__(
        self,
        store: SessionStore,
        ttl_seconds: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize session manager.

        Args:
            store: Session store to persist records in
            ttl_seconds: Fixed session lifetime in seconds
            clock: Returns the current tz-aware time
        """
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def create(
        self,
        user_address: str,
        ttl_seconds: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Session:
        """
        Create a session bound to an authenticated address.

        Args:
            user_address: Chain address proven by the caller
            ttl_seconds: Lifetime override; defaults to the configured TTL
            metadata: Optional login metadata stored with the session

        Returns:
            The persisted Session; its session_id is the new token

        Raises:
            InvalidAddressError: If the address is malformed
            StoreUnavailableError: If the record cannot be persisted
        """
        if not is_valid_address(user_address):
            raise InvalidAddressError()

        now = self._clock()
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl_seconds
        session = Session(
            session_id=secrets.token_urlsafe(32),
            user_address=user_address.lower(),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
            last_seen_at=now,
            metadata=metadata or {},
        )
        self._call_store("create", self._store.put, session)

        logger.info(
            f"Session created for {mask(session.user_address)} "
            f"(id={mask(session.session_id)}, expires_at={session.expires_at.isoformat()})"
        )
        return session

    def verify(self, session_id: str) -> AuthResult:
        """
        Check a session id.

        Args:
            session_id: Session identifier presented by the client

        Returns:
            Valid AuthResult with the bound address, or an invalid one
            carrying NOT_FOUND or EXPIRED

        Raises:
            StoreUnavailableError: If the store cannot be read

        Note:
            An expired record is deleted here, so an expired session is
            never reported valid even if the sweeper has not run yet.
        """
        session = self._call_store("verify", self._store.get, session_id)
        if session is None:
            return AuthResult.rejected(InvalidReason.NOT_FOUND)

        now = self._clock()
        if session.is_expired(now):
            self._call_store(
                "verify", self._store.delete_if, session_id, lambda s: s.is_expired(now)
            )
            logger.info(f"Session {mask(session_id)} expired, removed on read")
            return AuthResult.rejected(InvalidReason.EXPIRED)

        session.touch(now)
        return AuthResult.ok(session)

    def invalidate(self, session_id: str) -> None:
        """
        Delete a session. Idempotent.

        Args:
            session_id: Session identifier

        Raises:
            StoreUnavailableError: If the store cannot be written
        """
        if self._call_store("invalidate", self._store.delete, session_id):
            logger.info(f"Session {mask(session_id)} invalidated")

    def invalidate_user(self, user_address: str) -> int:
        """
        Delete every session bound to an address.

        Returns:
            Number of sessions removed
        """
        address = user_address.lower()
        removed = 0
        for session in self._call_store("invalidate_user", self._store.scan):
            if self._call_store(
                "invalidate_user",
                self._store.delete_if,
                session.session_id,
                lambda s: s.user_address == address,
            ):
                removed += 1
        logger.info(f"Invalidated {removed} sessions for {mask(address)}")
        return removed

    def list_user_sessions(self, user_address: str) -> list[Session]:
        """
        Unexpired sessions of an address, most recently seen first.
        """
        address = user_address.lower()
        now = self._clock()
        sessions = [
            s
            for s in self._call_store("list_user_sessions", self._store.scan)
            if s.user_address == address and not s.is_expired(now)
        ]
        return sorted(sessions, key=lambda s: s.last_seen_at, reverse=True)

    def sweep_expired(self) -> int:
        """
        Remove all sessions with expires_at <= now.

        Returns:
            Number of sessions removed

        Note:
            Each deletion re-checks expiry under the record's lock, so a
            concurrent create/verify/invalidate is never undone.
        """
        now = self._clock()
        removed = 0
        for session in self._call_store("sweep", self._store.scan):
            if not session.is_expired(now):
                continue
            if self._call_store(
                "sweep", self._store.delete_if, session.session_id, lambda s: s.is_expired(now)
            ):
                removed += 1
        return removed

    def session_count(self) -> int:
        """
        Get current number of stored sessions.

        Returns:
            Number of sessions in the store, expired ones included
        """
        return self._call_store("count", self._store.count)

    def _call_store(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except StoreUnavailableError:
            raise
        except (OSError, ConnectionError, TimeoutError) as e:
            logger.error(f"Session store failure during {operation}: {e}")
            raise StoreUnavailableError() from e
