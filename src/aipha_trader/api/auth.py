"""
Authentication dependencies.

``get_current_user`` is the single choke point for protected routes: it
pulls the session id from the request, verifies it with the SessionManager
and hands the route an AuthenticatedUser. Routes never see the raw id.
"""

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Request

from ..config import Settings
from ..models.session import AuthenticatedUser
from ..services.session import SessionManager
from ..utils.exceptions import UnauthorizedError
from ..utils.logging_setup import mask
from .dependencies import get_app_settings, get_session_manager

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if header and header.startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip() or None
    return None


def extract_session_id(request: Request, settings: Settings) -> str | None:
    """
    Find the session id carried by a request.

    Checked in order:
        1. Authorization: Bearer <session_id>
        2. session cookie
        3. ?session_id= query parameter, only when settings.debug is on

    Returns:
        The session id, or None if no carrier holds one
    """
    token = _bearer_token(request)
    if token:
        return token

    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        return cookie

    if settings.debug:
        return request.query_params.get("session_id") or None

    return None


def get_current_user(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
    manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> AuthenticatedUser:
    """
    Resolve the authenticated user for a protected route.

    Raises:
        UnauthorizedError: If the session is missing, unknown or expired
        StoreUnavailableError: If the session store cannot be read

    Note:
        The failure reason is logged but never returned to the client.
    """
    session_id = extract_session_id(request, settings)
    if session_id is None:
        logger.warning(
            f"No session id on {request.url.path} "
            f"(cookie={settings.session_cookie_name in request.cookies}, "
            f"auth_header={'authorization' in request.headers})"
        )
        raise UnauthorizedError(reason="missing")

    result = manager.verify(session_id)
    if not result.valid:
        logger.warning(
            f"Session {mask(session_id)} rejected on {request.url.path}: {result.reason.value}"
        )
        raise UnauthorizedError(reason=result.reason.value)

    request.state.user_address = result.user_address
    return AuthenticatedUser(
        user_address=result.user_address,
        expires_at=result.session.expires_at,
    )


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]


def require_cron_secret(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> None:
    """
    Guard scheduled maintenance endpoints.

    When cron_secret is configured the caller must send it as a bearer
    token; otherwise the endpoint is open.

    Raises:
        UnauthorizedError: If a secret is configured and does not match
    """
    if not settings.cron_secret:
        return
    token = _bearer_token(request) or ""
    if not secrets.compare_digest(token.encode(), settings.cron_secret.encode()):
        logger.warning(f"Rejected cron call to {request.url.path}: bad credential")
        raise UnauthorizedError(reason="cron_secret")


def verify_address_match(session_address: str, request_address: str | None) -> bool:
    """
    Compare an address named in a request with the session's address.

    A request that names no address passes.
    """
    if not request_address:
        return True
    return session_address.lower() == request_address.lower()
