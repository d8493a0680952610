"""
Concurrency limiting for document fetches.

Provides a semaphore-backed limiter that never admits more than a fixed
number of in-flight fetches and keeps counters for inspection.
"""

from __future__ import annotations

import asyncio
from typing import Any


class FetchLimiter:
    """Bound the number of concurrent fetches.

    Usage:
        limiter = FetchLimiter(20)
        async with limiter:
            await backend.get_json(url)
    """

    def __init__(self, max_concurrency: int):
        """Initialize the limiter.

        Args:
            max_concurrency: Maximum fetches allowed in flight
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self.in_flight = 0
        self.peak_in_flight = 0
        self.total_acquired = 0

    async def acquire(self) -> None:
        """Wait for a free slot."""
        await self._semaphore.acquire()
        self.in_flight += 1
        self.total_acquired += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def release(self) -> None:
        """Return a slot. Call after the fetch completes."""
        self.in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "FetchLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def stats(self) -> dict[str, Any]:
        """Get limiter statistics."""
        return {
            "max_concurrency": self.max_concurrency,
            "in_flight": self.in_flight,
            "peak_in_flight": self.peak_in_flight,
            "total_acquired": self.total_acquired,
        }
