"""
Custom exceptions for the AIpha Trader gateway.

These exceptions provide structured error handling for different failure scenarios.
"""

from datetime import UTC, datetime


class AIphaTraderError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR") -> None:
        """
        Initialize exception with message and error code.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (SNAKE_CASE)
        """
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(AIphaTraderError):
    """Raised when request data validation fails."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message, code=code)


class InvalidAddressError(ValidationError):
    """Raised when a chain address is not a well-formed 0x-prefixed hex address."""

    def __init__(self, message: str = "Invalid Ethereum address format") -> None:
        super().__init__(message, code="INVALID_ADDRESS")


class UnauthorizedError(AIphaTraderError):
    """
    Raised when a request has no usable session.

    The client-facing message is always the same, whatever the underlying
    reason (missing, unknown or expired).
    """

    GENERIC_MESSAGE = "Invalid or missing session"

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(self.GENERIC_MESSAGE, code="UNAUTHORIZED")


class AddressMismatchError(AIphaTraderError):
    """Raised when a request names an address other than the session's."""

    def __init__(self, message: str = "Address does not match the authenticated session") -> None:
        super().__init__(message, code="ADDRESS_MISMATCH")


class StoreUnavailableError(AIphaTraderError):
    """Raised when the session store cannot be reached."""

    def __init__(self, message: str = "Session store unavailable") -> None:
        super().__init__(message, code="STORE_UNAVAILABLE")


class UpstreamUnavailableError(AIphaTraderError):
    """Raised when a market data provider fails and no cached data exists."""

    def __init__(self, message: str = "Market data provider unavailable") -> None:
        self.timestamp = datetime.now(UTC)
        super().__init__(message, code="UPSTREAM_UNAVAILABLE")


class UpstreamAPIError(AIphaTraderError):
    """Raised when a provider rejects a request or returns malformed data."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="UPSTREAM_API_ERROR")


class SymbolNotFoundError(AIphaTraderError):
    """Raised when a trading symbol is not listed by the exchange."""

    def __init__(self, symbol: str) -> None:
        message = f"Symbol '{symbol}' not found"
        super().__init__(message, code="SYMBOL_NOT_FOUND")


class RateLimitedError(AIphaTraderError):
    """Raised when a provider keeps rate limiting after all retries."""

    def __init__(self, message: str = "Too many requests to market data provider") -> None:
        super().__init__(message, code="RATE_LIMITED")
