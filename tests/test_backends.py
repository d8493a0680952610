"""
Tests for the HTTP backend and retry behaviour.
"""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from comprawatch.core.backends.base import (
    FetchError,
    NotFoundError,
    RateLimitError,
    TransientFetchError,
)
from comprawatch.core.backends.http_backend import HttpBackend
from comprawatch.core.fetch.retries import RetryConfig

URL = "https://docs.test/ocds/release/adjudicacion-1"


class _Counter:
    """MockTransport handler returning a scripted sequence of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        item = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item


def _backend(handler, attempts: int = 3) -> HttpBackend:
    return HttpBackend(
        retry_config=RetryConfig(max_attempts=attempts, min_wait=0, max_wait=0, multiplier=1),
        transport=httpx.MockTransport(handler),
    )


class TestHttpBackend:
    """Status classification and retries."""

    async def test_transient_failure_is_retried(self):
        handler = _Counter(httpx.Response(503), httpx.Response(200, json={"ok": True}))
        backend = _backend(handler)

        assert await backend.get_json(URL) == {"ok": True}
        assert handler.calls == 2
        await backend.close()

    async def test_not_found_is_not_retried(self):
        handler = _Counter(httpx.Response(404))
        backend = _backend(handler)

        with pytest.raises(NotFoundError) as exc_info:
            await backend.get_text(URL)

        assert exc_info.value.status_code == 404
        assert handler.calls == 1
        await backend.close()

    async def test_gives_up_after_max_attempts(self):
        handler = _Counter(httpx.Response(500))
        backend = _backend(handler, attempts=3)

        with pytest.raises(TransientFetchError) as exc_info:
            await backend.get_json(URL)

        assert exc_info.value.status_code == 500
        assert handler.calls == 3
        await backend.close()

    async def test_rate_limit_carries_retry_after(self):
        handler = _Counter(httpx.Response(429, headers={"Retry-After": "7"}))
        backend = _backend(handler, attempts=2)

        with pytest.raises(RateLimitError) as exc_info:
            await backend.get_text(URL)

        assert exc_info.value.retry_after == 7.0
        assert handler.calls == 2
        await backend.close()

    async def test_transport_error_is_transient(self):
        handler = _Counter(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, text="<rss/>"),
        )
        backend = _backend(handler)

        assert await backend.get_text(URL) == "<rss/>"
        assert handler.calls == 2
        await backend.close()

    async def test_invalid_json(self):
        handler = _Counter(httpx.Response(200, text="not json"))
        backend = _backend(handler)

        with pytest.raises(FetchError):
            await backend.get_json(URL)
        assert handler.calls == 1
        await backend.close()

    async def test_sends_user_agent(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["User-Agent"])
            return httpx.Response(200, text="ok")

        backend = HttpBackend(user_agent="comprawatch-tests", transport=httpx.MockTransport(handler))
        await backend.get_text(URL)

        assert seen == ["comprawatch-tests"]
        await backend.close()

    def test_retry_config_from_feed_config(self, app_config):
        config = RetryConfig.from_feed_config(app_config.feed)

        assert config.max_attempts == app_config.feed.max_retries
        assert config.min_wait == 0
        assert config.max_wait == 0

    def test_backend_does_not_mutate_retry_config(self):
        config = RetryConfig(max_attempts=2, retry_exceptions=(KeyError,))

        backend = HttpBackend(retry_config=config)

        assert config.retry_exceptions == (KeyError,)
        assert RateLimitError in backend.retry_config.retry_exceptions
        assert backend.retry_config.max_attempts == 2


def _retry_state(error: Exception, attempt_number: int = 1) -> SimpleNamespace:
    return SimpleNamespace(
        attempt_number=attempt_number,
        outcome=SimpleNamespace(exception=lambda: error),
    )


class TestRetryWait:
    """Backoff and server-provided Retry-After hints."""

    def test_retry_after_is_honoured(self):
        wait = RetryConfig(min_wait=1, max_wait=30, multiplier=1).wait_strategy()

        assert wait(_retry_state(RateLimitError("slow down", retry_after=7.0))) == 7.0

    def test_retry_after_is_capped_by_max_wait(self):
        wait = RetryConfig(min_wait=1, max_wait=5, multiplier=1).wait_strategy()

        assert wait(_retry_state(RateLimitError("slow down", retry_after=120.0))) == 5

    def test_exponential_backoff_without_hint(self):
        wait = RetryConfig(min_wait=1, max_wait=30, multiplier=1).wait_strategy()

        assert wait(_retry_state(TransientFetchError("HTTP 503"), attempt_number=1)) == 1
        assert wait(_retry_state(TransientFetchError("HTTP 503"), attempt_number=3)) == 4
