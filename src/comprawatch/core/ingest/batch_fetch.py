"""
Concurrent, batched fetching of release documents.

Descriptors are split into batches; inside a batch they are fetched in
groups gathered in parallel behind a FetchLimiter. Delays between groups and
between batches keep the load on the portal polite. Every descriptor yields
exactly one FetchOutcome, successful or not.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

from ..backends.base import BackendError
from ..backends.http_backend import HttpBackend
from ..feed.discovery import ReleaseDescriptor
from ..fetch.throttling import FetchLimiter
from ..logging import get_logger

logger = get_logger("ingest.batch_fetch")


DEFAULT_BATCH_SIZE = 200
DEFAULT_CONCURRENCY = 20


@dataclass
class FetchOutcome:
    """Result of fetching one release document."""

    descriptor: ReleaseDescriptor
    document: Any = None
    error: str | None = None
    fetched_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.document is not None and self.error is None


def _chunks(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchFetchOrchestrator:
    """Fetch release documents in bounded-concurrency batches."""

    def __init__(
        self,
        backend: HttpBackend,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        group_delay: float = 1.0,
        batch_delay: float = 2.0,
        limiter: FetchLimiter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            backend: Backend used for document GETs
            batch_size: Descriptors per batch
            concurrency: Fetches gathered together (and in flight at most)
            group_delay: Seconds between groups inside a batch
            batch_delay: Seconds between batches
            limiter: Shared limiter (created from ``concurrency`` if omitted)
            sleep: Awaitable sleep, replaceable in tests
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.backend = backend
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.group_delay = group_delay
        self.batch_delay = batch_delay
        self.limiter = limiter or FetchLimiter(concurrency)
        self._sleep = sleep

    async def fetch_one(self, descriptor: ReleaseDescriptor) -> FetchOutcome:
        """Fetch one document; failures are recorded, not raised."""
        async with self.limiter:
            try:
                document = await self.backend.get_json(descriptor.source_link)
            except BackendError as e:
                logger.warning(
                    f"Error fetching release {descriptor.id}: {e}",
                    extra={"release_id": descriptor.id, "url": descriptor.source_link},
                )
                return FetchOutcome(descriptor, error=str(e))
            except Exception as e:
                logger.exception(f"Unexpected error fetching release {descriptor.id}")
                return FetchOutcome(descriptor, error=f"{e.__class__.__name__}: {e}")

        if not isinstance(document, dict):
            return FetchOutcome(descriptor, error="Response is not a JSON object")

        return FetchOutcome(
            descriptor,
            document=document,
            fetched_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )

    async def fetch_batch(self, descriptors: Sequence[ReleaseDescriptor]) -> list[FetchOutcome]:
        """Fetch one batch group by group, preserving input order."""
        outcomes: list[FetchOutcome] = []
        groups = _chunks(descriptors, self.concurrency)

        for index, group in enumerate(groups):
            outcomes.extend(await asyncio.gather(*(self.fetch_one(d) for d in group)))
            if index < len(groups) - 1 and self.group_delay > 0:
                await self._sleep(self.group_delay)

        return outcomes

    async def iter_batches(
        self,
        descriptors: Sequence[ReleaseDescriptor],
    ) -> AsyncIterator[list[FetchOutcome]]:
        """Yield outcomes batch by batch.

        The next batch is not fetched until the consumer asks for it, so a
        caller that persists each batch before continuing bounds memory to
        one batch.
        """
        batches = _chunks(list(descriptors), self.batch_size)

        for index, batch in enumerate(batches):
            logger.info(
                f"Processing batch {index + 1}/{len(batches)} ({len(batch)} releases)",
                extra={"batch": index + 1},
            )
            outcomes = await self.fetch_batch(batch)
            failed = sum(1 for o in outcomes if not o.ok)
            logger.info(
                f"Batch {index + 1}: fetched {len(outcomes) - failed}, failed {failed}",
                extra={"batch": index + 1},
            )
            yield outcomes

            if index < len(batches) - 1 and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

    async def fetch_all(self, descriptors: Sequence[ReleaseDescriptor]) -> list[FetchOutcome]:
        """Fetch every descriptor and return all outcomes in input order."""
        outcomes: list[FetchOutcome] = []
        async for batch in self.iter_batches(descriptors):
            outcomes.extend(batch)
        return outcomes
