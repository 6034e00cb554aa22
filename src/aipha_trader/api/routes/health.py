"""
Health check endpoint.

Provides a simple endpoint to verify the API is running.
"""

from fastapi import APIRouter

from ... import __version__
from ..schemas import HealthCheckResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """
    Health check endpoint.

    Unauthenticated, so it reports nothing about users or sessions.

    Returns:
        Service status and version

    Example:
        GET /health
        Response: {"status": "healthy", "version": "0.1.0"}
    """
    return HealthCheckResponse(status="healthy", version=__version__)
