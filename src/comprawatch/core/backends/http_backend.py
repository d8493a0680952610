"""
HTTP Backend implementation using httpx.

Provides async HTTP fetching with:
- Persistent connection pooling
- Automatic retry with exponential backoff
- Status classification (not found / rate limited / transient)
- JSON decoding with orjson
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import orjson

from ..fetch.retries import RetryConfig, retry_async
from ..logging import get_logger
from .base import (
    Backend,
    FetchError,
    FetchResult,
    NotFoundError,
    RateLimitError,
    RequestSpec,
    TransientFetchError,
)

logger = get_logger("backends.http")


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; CompraWatchBot/1.0)"

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (TransientFetchError, RateLimitError)


class HttpBackend(Backend):
    """HTTP backend using httpx for async requests.

    Features:
    - Persistent connection pooling
    - Automatic redirect following
    - Retry with exponential backoff on transient failures
    - 404 surfaced as NotFoundError without retry
    """

    def __init__(
        self,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
        user_agent: str | None = None,
        default_headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HTTP backend.

        Args:
            timeout: Default request timeout in seconds
            retry_config: Retry behaviour for transient failures
            user_agent: Custom user agent
            default_headers: Default headers for all requests
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout
        self.retry_config = (retry_config or RetryConfig()).with_exceptions(RETRYABLE_ERRORS)
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.default_headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json, application/rss+xml, application/xml;q=0.9, */*;q=0.8",
            "Accept-Language": "es-UY,es;q=0.9,en;q=0.8",
            **(default_headers or {}),
        }
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, feed_config: Any, **kwargs: Any) -> "HttpBackend":
        """Build a backend from the feed section of AppConfig."""
        return cls(
            timeout=feed_config.timeout_seconds,
            retry_config=RetryConfig.from_feed_config(feed_config),
            user_agent=feed_config.user_agent,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "http"

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers=self.default_headers,
                limits=httpx.Limits(
                    max_connections=40,
                    max_keepalive_connections=20,
                ),
                transport=self._transport,
            )
        return self._client

    def _check_status(self, response: httpx.Response, url: str) -> None:
        """Translate non-2xx responses into typed errors."""
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 404:
            raise NotFoundError(f"Not found: {url}", url=url)
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            retry_seconds = None
            if retry_after:
                try:
                    retry_seconds = float(retry_after)
                except ValueError:
                    retry_seconds = None
            raise RateLimitError("Rate limit exceeded", url=url, retry_after=retry_seconds)
        raise TransientFetchError(
            f"HTTP {status} for {url}",
            url=url,
            status_code=status,
        )

    async def _fetch_once(self, request: RequestSpec, attempt: list[int]) -> FetchResult:
        client = await self._ensure_client()
        attempt[0] += 1
        start = time.perf_counter()

        try:
            response = await client.request(
                request.method.upper(),
                request.url,
                headers=request.headers or None,
                params=request.params or None,
                timeout=request.timeout if request.timeout is not None else httpx.USE_CLIENT_DEFAULT,
                follow_redirects=request.follow_redirects,
            )
        except httpx.TransportError as e:
            raise TransientFetchError(
                f"Transport error: {e}",
                url=request.url,
                cause=e,
            ) from e

        self._check_status(response, request.url)

        return FetchResult(
            url=request.url,
            final_url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            elapsed_ms=(time.perf_counter() - start) * 1000,
            retry_count=attempt[0] - 1,
        )

    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Fetch a URL with automatic retry.

        Args:
            request: Request specification

        Returns:
            FetchResult with response data

        Raises:
            NotFoundError: On 404 (not retried)
            TransientFetchError: When every attempt failed
            RateLimitError: When every attempt was rate limited
        """
        attempt = [0]
        try:
            return await retry_async(self._fetch_once, request, attempt, config=self.retry_config)
        except (TransientFetchError, RateLimitError) as e:
            logger.warning(f"Giving up on {request.url} after {attempt[0]} attempts: {e}")
            raise

    async def get_text(self, url: str, timeout: float | None = None) -> str:
        """Fetch a URL and return the body as text."""
        result = await self.fetch(RequestSpec(url=url, timeout=timeout))
        return result.text

    async def get_json(self, url: str, timeout: float | None = None) -> Any:
        """Fetch a URL and decode the body as JSON.

        Raises:
            FetchError: If the body is not valid JSON
        """
        result = await self.fetch(RequestSpec(url=url, timeout=timeout))
        try:
            return orjson.loads(result.text)
        except orjson.JSONDecodeError as e:
            raise FetchError(
                f"Invalid JSON from {url}: {e}",
                url=url,
                status_code=result.status_code,
                cause=e,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
