"""
FastAPI middleware for error handling and request processing.

Converts domain exceptions into appropriate HTTP responses.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..utils.exceptions import (
    AddressMismatchError,
    AIphaTraderError,
    RateLimitedError,
    StoreUnavailableError,
    SymbolNotFoundError,
    UnauthorizedError,
    UpstreamAPIError,
    UpstreamUnavailableError,
    ValidationError,
)
from .schemas import ErrorResponse

logger = logging.getLogger(__name__)


def _error(status_code: int, error: AIphaTraderError, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error.message, code=error.code, **extra).model_dump(
            mode="json", exclude_none=True
        ),
    )


async def error_handler_middleware(request: Request, call_next):
    """
    Catch domain exceptions and convert them to HTTP error responses.

    Args:
        request: FastAPI request
        call_next: Next middleware/handler in chain

    Returns:
        Response or JSONResponse with error details

    Exception Mapping:
        - UnauthorizedError → 401 Unauthorized (generic message only)
        - AddressMismatchError → 403 Forbidden
        - SymbolNotFoundError → 404 Not Found
        - ValidationError subclasses → 400 Bad Request
        - RateLimitedError → 429 Too Many Requests
        - UpstreamAPIError → 502 Bad Gateway
        - UpstreamUnavailableError → 503 Service Unavailable (with timestamp)
        - StoreUnavailableError → 503 Service Unavailable
        - Other AIphaTraderError → 500 Internal Server Error
    """
    try:
        response = await call_next(request)
        return response
    except UnauthorizedError as e:
        return _error(status.HTTP_401_UNAUTHORIZED, e)
    except AddressMismatchError as e:
        return _error(status.HTTP_403_FORBIDDEN, e)
    except SymbolNotFoundError as e:
        return _error(status.HTTP_404_NOT_FOUND, e)
    except ValidationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, e)
    except RateLimitedError as e:
        return _error(status.HTTP_429_TOO_MANY_REQUESTS, e)
    except UpstreamAPIError as e:
        return _error(status.HTTP_502_BAD_GATEWAY, e)
    except UpstreamUnavailableError as e:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, e, timestamp=e.timestamp)
    except StoreUnavailableError as e:
        logger.error(f"{request.method} {request.url.path}: {e.message}")
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, e)
    except AIphaTraderError as e:
        # Catch-all for other custom exceptions
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, e)
    except Exception:
        # Unexpected errors - don't expose internals
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="An unexpected error occurred",
                code="INTERNAL_SERVER_ERROR",
            ).model_dump(exclude_none=True),
        )
