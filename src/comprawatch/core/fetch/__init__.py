"""Fetch utilities - concurrency limiting and retries."""

from .throttling import FetchLimiter
from .retries import RetryConfig, retry_async

__all__ = [
    "FetchLimiter",
    "RetryConfig",
    "retry_async",
]
