"""
API request and response schemas.

These Pydantic models define the contract between the API and clients.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format.

    Attributes:
        error: Human-readable error message
        code: Machine-readable error code (SNAKE_CASE)
        details: Optional additional context
        timestamp: When the error occurred (upstream failures only)
    """

    error: str = Field(description="Human-readable error message")
    code: str = Field(description="Machine-readable error code")
    details: dict[str, str] | None = Field(
        default=None, description="Optional additional error context"
    )
    timestamp: datetime | None = Field(default=None, description="Error timestamp")


class HealthCheckResponse(BaseModel):
    """
    Health check endpoint response.

    Attributes:
        status: Current service status
        version: API version
    """

    status: str = Field(description="Service status", examples=["healthy"])
    version: str = Field(description="API version", examples=["0.1.0"])


class LoginRequest(BaseModel):
    """
    Request to open a session for an address proven by the wallet provider.

    Attributes:
        user_address: 0x-prefixed chain address
        expires_in_hours: Optional session lifetime override
        metadata: Optional client metadata stored with the session
    """

    user_address: str = Field(
        description="Chain address",
        examples=["0x52908400098527886e0f7030069857d2e4169ee7"],
        min_length=1,
    )
    expires_in_hours: int | None = Field(
        default=None, ge=1, le=24 * 30, description="Session lifetime in hours"
    )
    metadata: dict[str, Any] = Field(default_factory=dict)


class LoginResponse(BaseModel):
    session_id: str = Field(description="Opaque session token")
    user_address: str = Field(description="Normalized chain address")
    expires_at: datetime = Field(description="Session expiry")


class LogoutResponse(BaseModel):
    success: bool = True


class VerifyResponse(BaseModel):
    valid: bool = True
    user_address: str
    expires_at: datetime


class SessionInfo(BaseModel):
    """Session listing entry. Carries no session token."""

    created_at: datetime
    expires_at: datetime
    last_seen_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionListResponse(BaseModel):
    user_address: str
    sessions: list[SessionInfo]


class CleanupResponse(BaseModel):
    success: bool
    message: str
    removed: int
    remaining: int
    timestamp: datetime


class SyncResult(BaseModel):
    key: str
    success: bool
    error: str | None = None


class SyncResponse(BaseModel):
    success: bool
    timestamp: datetime
    results: list[SyncResult]
