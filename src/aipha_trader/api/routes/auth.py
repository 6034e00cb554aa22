"""
Session endpoints.

Login opens a session for an address already proven by the wallet provider;
logout invalidates it. Both manage the session cookie.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from ...config import Settings
from ...services.session import SessionManager
from ...utils.exceptions import ValidationError
from ..auth import CurrentUser, extract_session_id
from ..dependencies import get_app_settings, get_session_manager
from ..schemas import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    SessionInfo,
    SessionListResponse,
    VerifyResponse,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    response: Response,
    settings: Annotated[Settings, Depends(get_app_settings)],
    manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> LoginResponse:
    """
    Create a session for an authenticated address.

    Args:
        body: Address, optional lifetime and metadata
        response: FastAPI response for setting cookies
        settings: Application settings
        manager: Session manager dependency

    Returns:
        The new session id, normalized address and expiry

    Raises:
        400: Malformed address
        503: Session store unavailable

    Example:
        POST /api/auth/login
        Body: {"user_address": "0x5290...9ee7"}
        Response: {
            "session_id": "Zk3...",
            "user_address": "0x5290...9ee7",
            "expires_at": "2026-10-20T12:00:00Z"
        }
    """
    ttl = body.expires_in_hours * 3600 if body.expires_in_hours else None
    session = manager.create(body.user_address, ttl_seconds=ttl, metadata=body.metadata)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.session_id,
        max_age=ttl or manager.ttl_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )
    return LoginResponse(
        session_id=session.session_id,
        user_address=session.user_address,
        expires_at=session.expires_at,
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    response: Response,
    settings: Annotated[Settings, Depends(get_app_settings)],
    manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> LogoutResponse:
    """
    Invalidate the caller's session and clear the cookie.

    Logging out an unknown or already expired session still succeeds.

    Raises:
        400: No session id on the request
    """
    session_id = extract_session_id(request, settings)
    if session_id is None:
        raise ValidationError("No session ID provided", code="NO_SESSION_ID")

    manager.invalidate(session_id)
    response.delete_cookie(settings.session_cookie_name, path="/")
    return LogoutResponse(success=True)


@router.get("/verify", response_model=VerifyResponse)
async def verify(user: CurrentUser) -> VerifyResponse:
    """
    Check that the current session is valid.

    Raises:
        401: Missing, unknown or expired session
    """
    return VerifyResponse(valid=True, user_address=user.user_address, expires_at=user.expires_at)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    user: CurrentUser,
    manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionListResponse:
    """List the caller's active sessions, most recently used first."""
    sessions = manager.list_user_sessions(user.user_address)
    return SessionListResponse(
        user_address=user.user_address,
        sessions=[
            SessionInfo(
                created_at=s.created_at,
                expires_at=s.expires_at,
                last_seen_at=s.last_seen_at,
                metadata=s.metadata,
            )
            for s in sessions
        ],
    )


@router.post("/logout-all", response_model=LogoutResponse)
async def logout_all(
    user: CurrentUser,
    response: Response,
    settings: Annotated[Settings, Depends(get_app_settings)],
    manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> LogoutResponse:
    """Invalidate every session bound to the caller's address."""
    manager.invalidate_user(user.user_address)
    response.delete_cookie(settings.session_cookie_name, path="/")
    return LogoutResponse(success=True)
