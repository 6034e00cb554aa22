"""
Session models for address-bound authentication.

A session binds an opaque token to an authenticated chain address for a
fixed lifetime.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_address(address: str) -> bool:
    """Check for a 0x-prefixed, 40 hex digit Ethereum address."""
    return bool(ADDRESS_PATTERN.match(address))


class Session(BaseModel):
    """
    Server-side session record.

    Attributes:
        session_id: Opaque lookup token
        user_address: Authenticated chain address (lower case)
        created_at: Creation timestamp (UTC)
        expires_at: Hard expiry, fixed at creation
        last_seen_at: Last successful verification
        metadata: Client-supplied login metadata
    """

    model_config = ConfigDict(validate_assignment=True)

    session_id: str = Field(description="Opaque session identifier")
    user_address: str = Field(description="Authenticated chain address")
    created_at: datetime = Field(description="Session creation timestamp")
    expires_at: datetime = Field(description="Session expiry timestamp")
    last_seen_at: datetime = Field(description="Last successful verification")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Login metadata")

    def is_expired(self, now: datetime) -> bool:
        """
        Check whether the session has reached its expiry.

        Args:
            now: Current time

        Returns:
            True once now >= expires_at
        """
        return now >= self.expires_at

    def touch(self, now: datetime) -> None:
        """Record activity. Does not move expires_at."""
        self.last_seen_at = now


class InvalidReason(str, Enum):
    """Why a session id failed verification. For logging only."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class AuthResult(BaseModel):
    """Outcome of verifying a session id."""

    valid: bool
    user_address: str | None = None
    session: Session | None = None
    reason: InvalidReason | None = None

    @classmethod
    def ok(cls, session: Session) -> "AuthResult":
        return cls(valid=True, user_address=session.user_address, session=session)

    @classmethod
    def rejected(cls, reason: InvalidReason) -> "AuthResult":
        return cls(valid=False, reason=reason)


class AuthenticatedUser(BaseModel):
    """Identity handed to protected routes once the session checks out."""

    user_address: str
    expires_at: datetime
