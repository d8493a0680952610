"""
Tests for bounded-concurrency batch fetching.
"""

from __future__ import annotations

import asyncio

import pytest

from comprawatch.core.backends.base import NotFoundError, TransientFetchError
from comprawatch.core.feed.discovery import ReleaseDescriptor
from comprawatch.core.fetch.throttling import FetchLimiter
from comprawatch.core.ingest.batch_fetch import BatchFetchOrchestrator

from .conftest import DOCS_BASE, build_package


class FakeBackend:
    """Records in-flight requests; fails for selected urls."""

    def __init__(self, failures: dict[str, Exception] | None = None, not_json: set[str] | None = None):
        self.failures = failures or {}
        self.not_json = not_json or set()
        self.in_flight = 0
        self.peak = 0
        self.requested: list[str] = []

    async def get_json(self, url: str):
        self.requested.append(url)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            for _ in range(3):
                await asyncio.sleep(0)
            if url in self.failures:
                raise self.failures[url]
            if url in self.not_json:
                return ["not", "an", "object"]
            return build_package(url.rsplit("/", 1)[-1])
        finally:
            self.in_flight -= 1


def _descriptors(count: int) -> list[ReleaseDescriptor]:
    return [
        ReleaseDescriptor(id=f"adjudicacion-{i}", source_link=f"{DOCS_BASE}/adjudicacion-{i}")
        for i in range(count)
    ]


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestBatchFetchOrchestrator:
    """Batching, grouping, ordering and failure capture."""

    async def test_concurrency_is_bounded(self):
        backend = FakeBackend()
        fetcher = BatchFetchOrchestrator(backend, batch_size=10, concurrency=4, group_delay=0, batch_delay=0)

        outcomes = await fetcher.fetch_all(_descriptors(25))

        assert len(outcomes) == 25
        assert 1 < backend.peak <= 4
        assert fetcher.limiter.peak_in_flight <= 4

    async def test_shared_limiter_bounds_across_groups(self):
        backend = FakeBackend()
        limiter = FetchLimiter(2)
        fetcher = BatchFetchOrchestrator(
            backend, batch_size=10, concurrency=5, group_delay=0, batch_delay=0, limiter=limiter
        )

        await fetcher.fetch_batch(_descriptors(10))

        assert backend.peak <= 2
        assert limiter.stats()["total_acquired"] == 10

    async def test_order_is_preserved(self):
        descriptors = _descriptors(12)
        fetcher = BatchFetchOrchestrator(FakeBackend(), batch_size=5, concurrency=3, group_delay=0, batch_delay=0)

        outcomes = await fetcher.fetch_all(descriptors)

        assert [o.descriptor for o in outcomes] == descriptors
        assert all(o.ok for o in outcomes)
        assert outcomes[0].document["releases"][0]["id"] == "adjudicacion-0"
        assert outcomes[0].fetched_at is not None

    async def test_failures_are_captured(self):
        descriptors = _descriptors(5)
        backend = FakeBackend(
            failures={
                descriptors[1].source_link: TransientFetchError("HTTP 503", status_code=503),
                descriptors[2].source_link: NotFoundError("gone"),
                descriptors[3].source_link: RuntimeError("boom"),
            },
            not_json={descriptors[4].source_link},
        )
        fetcher = BatchFetchOrchestrator(backend, batch_size=5, concurrency=5, group_delay=0, batch_delay=0)

        outcomes = await fetcher.fetch_batch(descriptors)

        assert [o.ok for o in outcomes] == [True, False, False, False, False]
        assert "503" in outcomes[1].error
        assert "RuntimeError" in outcomes[3].error
        assert outcomes[4].error == "Response is not a JSON object"

    async def test_batches_are_yielded_in_turn(self):
        sleep = SleepRecorder()
        fetcher = BatchFetchOrchestrator(
            FakeBackend(), batch_size=5, concurrency=3, group_delay=0.5, batch_delay=1.0, sleep=sleep
        )

        sizes = [len(batch) async for batch in fetcher.iter_batches(_descriptors(12))]

        assert sizes == [5, 5, 2]
        # two groups in each full batch, a pause between batches
        assert sleep.calls == [0.5, 1.0, 0.5, 1.0]

    async def test_consumer_controls_progress(self):
        backend = FakeBackend()
        fetcher = BatchFetchOrchestrator(backend, batch_size=4, concurrency=4, group_delay=0, batch_delay=0)

        batches = fetcher.iter_batches(_descriptors(12))
        first = await batches.__anext__()

        assert len(first) == 4
        assert len(backend.requested) == 4
        await batches.aclose()

    def test_rejects_invalid_batch_size(self):
        with pytest.raises(ValueError):
            BatchFetchOrchestrator(FakeBackend(), batch_size=0)
