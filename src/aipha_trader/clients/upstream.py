"""Shared async HTTP client for market data providers."""

import asyncio
import logging
import types
from typing import Any

import httpx

from aipha_trader.utils.exceptions import (
    RateLimitedError,
    UpstreamAPIError,
    UpstreamUnavailableError,
)
from aipha_trader.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class UpstreamClient:
    """Async HTTP client with retry, exponential backoff and rate limiting."""

    name = "upstream"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        rate_limiter: RateLimiter,
        max_retries: int = 3,
        retry_delay: float = 0.1,
        headers: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize a httpx.AsyncClient for one provider and take the
        rate limiter by reference.
        """
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json", **(headers or {})},
        )
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._rate_limiter = rate_limiter

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(
            self,
            exc_type: type[BaseException] | None,
            exc_val: BaseException | None,
            exc_tb: types.TracebackType | None
    ) -> None:
        await self.aclose()

    async def _request(
            self,
            method: str,
            endpoint: str,
            **kwargs: Any # must correspond to httpx.AsyncClient.request parameters
    ) -> Any:
        for attempt in range(self.max_retries + 1):
            try:
                await self._rate_limiter.acquire()
                response = await self.client.request(method=method, url=endpoint, **kwargs)
                response.raise_for_status()
                if "application/json" not in response.headers.get("content-type", ""):
                    raise UpstreamAPIError(f"{self.name}: expected json response")
                return response.json()
            except httpx.HTTPStatusError as e:
                await self._handle_status_error(e, attempt)
                continue
            except (httpx.TimeoutException, httpx.RequestError) as e:
                if attempt < self.max_retries:
                    logger.warning(
                        f"{self.name}: connection error - retry attempt {attempt + 1}/{self.max_retries}"
                    )
                    await asyncio.sleep(self._calculate_backoff(attempt))
                    continue
                raise UpstreamUnavailableError(f"{self.name} unreachable") from e
        raise UpstreamUnavailableError(f"{self.name}: maximum retries reached before response")

    def _calculate_backoff(self, attempt_count: int) -> float:
        return self.retry_delay * 2.0**attempt_count

    async def _handle_status_error(self, error: httpx.HTTPStatusError, attempt: int) -> None:
        status_code = error.response.status_code
        if status_code == 429:
            if attempt < self.max_retries:
                logger.warning(
                    f"{self.name}: rate limited - retry attempt {attempt + 1}/{self.max_retries}"
                )
                await asyncio.sleep(self._calculate_backoff(attempt))
            else:
                raise RateLimitedError() from error
        elif status_code >= 500:
            if attempt < self.max_retries:
                logger.warning(
                    f"{self.name}: server error {status_code} - "
                    f"retry attempt {attempt + 1}/{self.max_retries}"
                )
                await asyncio.sleep(self._calculate_backoff(attempt))
            else:
                raise UpstreamUnavailableError(
                    f"{self.name} returned status {status_code}"
                ) from error
        else:
            raise UpstreamAPIError(
                f"{self.name}: error with status code {status_code}: {error.response.text}"
            ) from error

    async def get_request(self, endpoint: str, **kwargs: Any) -> Any:
        """Send get request"""
        return await self._request("GET", endpoint, **kwargs)

    async def post_request(self, endpoint: str, **kwargs: Any) -> Any:
        """Send post request"""
        return await self._request("POST", endpoint, **kwargs)

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def aclose(self) -> None:
        await self.client.aclose()
