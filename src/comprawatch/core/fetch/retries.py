"""
Retry utilities with tenacity.

Provides configurable retry helpers for handling
transient failures in feed and document requests.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 1  # seconds
DEFAULT_MAX_WAIT = 30  # seconds
DEFAULT_MULTIPLIER = 2


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_wait: float = DEFAULT_MIN_WAIT,
        max_wait: float = DEFAULT_MAX_WAIT,
        multiplier: float = DEFAULT_MULTIPLIER,
        retry_exceptions: tuple[type[Exception], ...] | None = None,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts
            min_wait: Minimum wait time in seconds
            max_wait: Maximum wait time in seconds
            multiplier: Exponential backoff multiplier
            retry_exceptions: Exception types to retry on
        """
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.multiplier = multiplier
        self.retry_exceptions = retry_exceptions or (Exception,)

    def wait_strategy(self) -> Callable[[RetryCallState], float]:
        """Build the tenacity wait strategy for this config.

        Exponential backoff, except when the failure carries a server hint
        (``retry_after``), which is honoured up to ``max_wait``.
        """
        backoff = wait_exponential(
            multiplier=self.multiplier,
            min=self.min_wait,
            max=self.max_wait,
        )

        def wait(retry_state: RetryCallState) -> float:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            retry_after = getattr(error, "retry_after", None)
            if retry_after is not None:
                return min(max(float(retry_after), self.min_wait), self.max_wait)
            return backoff(retry_state)

        return wait

    def with_exceptions(self, retry_exceptions: tuple[type[Exception], ...]) -> "RetryConfig":
        """Copy of this config retrying on ``retry_exceptions``."""
        return RetryConfig(
            max_attempts=self.max_attempts,
            min_wait=self.min_wait,
            max_wait=self.max_wait,
            multiplier=self.multiplier,
            retry_exceptions=retry_exceptions,
        )

    @classmethod
    def from_feed_config(
        cls,
        feed_config: Any,
        retry_exceptions: tuple[type[Exception], ...] | None = None,
    ) -> "RetryConfig":
        """Build a retry config from the feed section of AppConfig."""
        return cls(
            max_attempts=feed_config.max_retries,
            min_wait=feed_config.retry_min_wait,
            max_wait=feed_config.retry_max_wait,
            multiplier=feed_config.retry_backoff_factor,
            retry_exceptions=retry_exceptions,
        )


async def retry_async(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """Execute an async function with retry logic.

    Only exceptions listed in ``config.retry_exceptions`` are retried; the
    last one is re-raised when attempts run out.

    Args:
        coro_func: Async function to call
        *args: Positional arguments
        config: Retry configuration
        **kwargs: Keyword arguments

    Returns:
        Function result
    """
    if config is None:
        config = RetryConfig()

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=config.wait_strategy(),
        retry=retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await coro_func(*args, **kwargs)

    raise AssertionError("unreachable")  # pragma: no cover
