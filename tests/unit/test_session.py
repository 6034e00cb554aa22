"""
Unit tests for session manager.

Tests cover:
- Session creation with unique ID generation and address normalization
- Verification with NOT_FOUND and EXPIRED reasons
- Fixed TTL: verification records activity but never extends expiry
- Lazy removal of expired sessions on read
- Idempotent invalidation and per-user invalidation
- Expiry sweeping
- Store failures surfaced as StoreUnavailableError
- Concurrent create/verify/invalidate against a sweep
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from aipha_trader.models.session import InvalidReason, Session, is_valid_address
from aipha_trader.services.session import SessionManager
from aipha_trader.services.session_store import InMemorySessionStore
from aipha_trader.utils.exceptions import InvalidAddressError, StoreUnavailableError

OTHER_ADDRESS = "0x1111111111111111111111111111111111111111"


class BrokenStore(InMemorySessionStore):
    """Store whose backend has gone away."""

    def get(self, session_id):
        raise ConnectionError("connection refused")

    def put(self, session):
        raise ConnectionError("connection refused")

    def scan(self):
        raise TimeoutError("scan timed out")


class TestAddressValidation:
    """Test chain address validation."""

    def test_valid_addresses(self, address) -> None:
        """Test 0x-prefixed 40 hex digit addresses are accepted."""
        assert is_valid_address(address)
        assert is_valid_address(address.lower())

    @pytest.mark.parametrize(
        "value",
        ["", "0xABC", "5290b7a6d8b3a9f6c2e1d4f7a8b9c0d1e2f3a4b5aa", "0x" + "g" * 40, "0x" + "a" * 41],
    )
    def test_invalid_addresses(self, value) -> None:
        """Test malformed addresses are rejected."""
        assert not is_valid_address(value)


class TestSessionCreate:
    """Test SessionManager.create."""

    def test_create_session(self, manager, store, clock, address) -> None:
        """Test session creation persists a record with a fixed expiry."""
        session = manager.create(address)

        assert len(session.session_id) >= 32
        assert session.user_address == address.lower()
        assert session.created_at == clock.now
        assert session.expires_at == clock.now + timedelta(seconds=3600)
        assert session.last_seen_at == clock.now
        assert store.get(session.session_id) is session
        assert manager.session_count() == 1

    def test_create_session_generates_unique_ids(self, manager, address) -> None:
        """Test that multiple sessions get unique IDs."""
        ids = {manager.create(address).session_id for _ in range(50)}

        assert len(ids) == 50
        assert manager.session_count() == 50

    def test_create_with_ttl_override(self, manager, clock, address) -> None:
        """Test a per-session lifetime overrides the default TTL."""
        session = manager.create(address, ttl_seconds=60)

        assert session.expires_at == clock.now + timedelta(seconds=60)

    def test_create_stores_metadata(self, manager, address) -> None:
        """Test login metadata is kept on the record."""
        session = manager.create(address, metadata={"wallet": "privy"})

        assert session.metadata == {"wallet": "privy"}

    def test_create_rejects_invalid_address(self, manager) -> None:
        """Test a malformed address raises and stores nothing."""
        with pytest.raises(InvalidAddressError):
            manager.create("0xABC")

        assert manager.session_count() == 0


class TestSessionVerify:
    """Test SessionManager.verify."""

    def test_verify_valid_session(self, manager, address) -> None:
        """Test a live session verifies with its bound address."""
        session = manager.create(address)

        result = manager.verify(session.session_id)

        assert result.valid
        assert result.user_address == address.lower()
        assert result.reason is None

    def test_verify_unknown_session(self, manager) -> None:
        """Test an unknown id is rejected as NOT_FOUND."""
        result = manager.verify("does-not-exist")

        assert not result.valid
        assert result.user_address is None
        assert result.reason is InvalidReason.NOT_FOUND

    def test_verify_updates_last_seen_only(self, manager, clock, address) -> None:
        """Test verification records activity without extending expiry."""
        session = manager.create(address)
        expires_at = session.expires_at

        clock.advance(1200)
        result = manager.verify(session.session_id)

        assert result.session.last_seen_at == clock.now
        assert result.session.expires_at == expires_at

    def test_verify_at_expiry_boundary(self, manager, store, clock, address) -> None:
        """Test a session is expired at exactly expires_at and removed on read."""
        session = manager.create(address)

        clock.advance(3599)
        assert manager.verify(session.session_id).valid

        clock.advance(1)
        result = manager.verify(session.session_id)

        assert not result.valid
        assert result.reason is InvalidReason.EXPIRED
        assert store.get(session.session_id) is None

    def test_expired_session_reported_not_found_afterwards(self, manager, clock, address) -> None:
        """Test the second read of an expired session finds nothing."""
        session = manager.create(address)
        clock.advance(7200)

        assert manager.verify(session.session_id).reason is InvalidReason.EXPIRED
        assert manager.verify(session.session_id).reason is InvalidReason.NOT_FOUND

    def test_activity_does_not_keep_session_alive(self, manager, clock, address) -> None:
        """Test frequent verification still ends at the fixed expiry."""
        session = manager.create(address)

        for _ in range(5):
            clock.advance(700)
            assert manager.verify(session.session_id).valid

        clock.advance(100)
        assert not manager.verify(session.session_id).valid

    def test_login_verify_logout_timeline(self, manager, clock, address) -> None:
        """Test create at t=0, verify at t=1800, invalidate, verify at t=1801."""
        session = manager.create(address)

        clock.advance(1800)
        result = manager.verify(session.session_id)
        assert result.valid
        assert result.user_address == address.lower()

        manager.invalidate(session.session_id)

        clock.advance(1)
        result = manager.verify(session.session_id)
        assert not result.valid
        assert result.reason is InvalidReason.NOT_FOUND


class TestSessionInvalidate:
    """Test invalidation."""

    def test_invalidate_is_idempotent(self, manager, address) -> None:
        """Test invalidating twice, or an unknown id, does not raise."""
        session = manager.create(address)

        manager.invalidate(session.session_id)
        manager.invalidate(session.session_id)
        manager.invalidate("never-existed")

        assert manager.session_count() == 0

    def test_invalidate_user(self, manager, address) -> None:
        """Test every session of an address is removed, others are kept."""
        manager.create(address)
        manager.create(address.lower())
        other = manager.create(OTHER_ADDRESS)

        removed = manager.invalidate_user(address.upper().replace("0X", "0x"))

        assert removed == 2
        assert manager.session_count() == 1
        assert manager.verify(other.session_id).valid

    def test_list_user_sessions(self, manager, clock, address) -> None:
        """Test listing returns unexpired sessions, most recently seen first."""
        older = manager.create(address)
        clock.advance(10)
        newer = manager.create(address)
        short = manager.create(address, ttl_seconds=5)
        manager.create(OTHER_ADDRESS)

        clock.advance(10)
        manager.verify(older.session_id)

        sessions = manager.list_user_sessions(address)

        assert [s.session_id for s in sessions] == [older.session_id, newer.session_id]
        assert short.session_id not in {s.session_id for s in sessions}


class TestSessionSweep:
    """Test SessionManager.sweep_expired."""

    def test_sweep_removes_exactly_expired(self, manager, clock, address) -> None:
        """Test sweep removes sessions past expiry and keeps the rest."""
        expired = [manager.create(address, ttl_seconds=60) for _ in range(3)]
        live = [manager.create(address, ttl_seconds=3600) for _ in range(2)]

        clock.advance(60)
        removed = manager.sweep_expired()

        assert removed == 3
        assert manager.session_count() == 2
        for session in expired:
            assert manager.verify(session.session_id).reason is InvalidReason.NOT_FOUND
        for session in live:
            assert manager.verify(session.session_id).valid

    def test_sweep_is_idempotent(self, manager, clock, address) -> None:
        """Test a second sweep with no time passing removes nothing."""
        manager.create(address, ttl_seconds=1)
        clock.advance(2)

        assert manager.sweep_expired() == 1
        assert manager.sweep_expired() == 0

    def test_sweep_empty_store(self, manager) -> None:
        """Test sweeping an empty store."""
        assert manager.sweep_expired() == 0


class TestStoreFailures:
    """Test store errors are reported as StoreUnavailableError."""

    def test_create_store_failure(self, clock, address) -> None:
        """Test a failing put raises StoreUnavailableError."""
        manager = SessionManager(BrokenStore(), ttl_seconds=3600, clock=clock)

        with pytest.raises(StoreUnavailableError):
            manager.create(address)

    def test_verify_store_failure(self, clock) -> None:
        """Test a failing read is an error, not an invalid session."""
        manager = SessionManager(BrokenStore(), ttl_seconds=3600, clock=clock)

        with pytest.raises(StoreUnavailableError):
            manager.verify("any")

    def test_sweep_store_failure(self, clock) -> None:
        """Test a failing scan raises StoreUnavailableError."""
        manager = SessionManager(BrokenStore(), ttl_seconds=3600, clock=clock)

        with pytest.raises(StoreUnavailableError):
            manager.sweep_expired()


class TestSessionConcurrency:
    """Test thread safety of the manager over the striped store."""

    def test_concurrent_operations_with_sweep(self, clock, address) -> None:
        """Test creates, verifies and invalidates racing a sweep stay consistent."""
        store = InMemorySessionStore(stripes=4)
        manager = SessionManager(store, ttl_seconds=3600, clock=clock)
        expired = [manager.create(address, ttl_seconds=1) for _ in range(100)]
        clock.advance(2)

        created: list[Session] = []
        lock = threading.Lock()

        def worker(i: int) -> None:
            session = manager.create(address)
            assert manager.verify(session.session_id).valid
            if i % 2:
                manager.invalidate(session.session_id)
            else:
                with lock:
                    created.append(session)

        with ThreadPoolExecutor(max_workers=8) as executor:
            sweep = executor.submit(manager.sweep_expired)
            list(executor.map(worker, range(200)))
            sweep.result()

        manager.sweep_expired()

        assert manager.session_count() == len(created) == 100
        for session in created:
            assert manager.verify(session.session_id).valid
        for session in expired:
            assert store.get(session.session_id) is None
