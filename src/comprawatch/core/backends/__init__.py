"""Backend implementations for fetching feeds and documents."""

from .base import (
    Backend,
    BackendError,
    FetchError,
    FetchResult,
    NotFoundError,
    RateLimitError,
    RequestSpec,
    TransientFetchError,
)
from .http_backend import HttpBackend

__all__ = [
    # Base classes
    "Backend",
    "RequestSpec",
    "FetchResult",
    # Errors
    "BackendError",
    "FetchError",
    "TransientFetchError",
    "NotFoundError",
    "RateLimitError",
    # HTTP backend
    "HttpBackend",
]
