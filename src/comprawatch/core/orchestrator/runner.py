"""
Ingestion runner orchestrator.

Coordinates one ingestion cycle: rates → discover → dedup → fetch → persist,
period by period, and records the cycle in ``ingestion_runs``.
"""

from __future__ import annotations

import asyncio
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence

from ...persistence.db import get_session
from ...persistence.models import utcnow
from ...persistence.repo import RunRepository
from ...persistence.writer import ReleaseWriter
from ..amounts.engine import AmountCalculator
from ..backends.http_backend import HttpBackend
from ..config.models import AppConfig, RunStatus, RunType
from ..feed.discovery import FeedDiscovery, Period, periods_between
from ..ingest.batch_fetch import BatchFetchOrchestrator
from ..ingest.dedup import Deduplicator
from ..logging import get_contextual_logger, get_logger
from ..rates.provider import RateTableProvider, RateTableSnapshot

logger = get_logger("orchestrator.runner")


class IngestionError(Exception):
    """An ingestion cycle could not complete."""


@dataclass
class RunStats:
    """Statistics for an ingestion run."""

    periods: list[str] = field(default_factory=list)
    discovered: int = 0
    existing: int = 0
    duplicates: int = 0
    fetched: int = 0
    fetch_failed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    write_failed: int = 0
    periods_failed: int = 0

    run_id: int | None = None
    dry_run: bool = False
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def accounted(self) -> int:
        """Descriptors that ended as a write, a skip or a fetch failure."""
        return (
            self.existing
            + self.duplicates
            + self.fetch_failed
            + self.inserted
            + self.updated
            + self.unchanged
            + self.skipped
            + self.write_failed
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "periods": list(self.periods),
            "dry_run": self.dry_run,
            "discovered": self.discovered,
            "existing": self.existing,
            "duplicates": self.duplicates,
            "fetched": self.fetched,
            "fetch_failed": self.fetch_failed,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "write_failed": self.write_failed,
            "periods_failed": self.periods_failed,
            "duration_seconds": self.duration_seconds,
        }


def default_periods(config: AppConfig, today: Period | None = None) -> list[Period]:
    """Month periods from the configured start period to the current month."""
    start = Period.parse(config.ingestion.start_period)
    return periods_between(start, today or Period.current())


def scheduled_periods(config: AppConfig, today: Period | None = None) -> list[Period]:
    """Current month plus ``scheduled_lookback_months`` before it.

    The window never starts before the configured start period.
    """
    today = today or Period.current()
    year, month = today.year, today.month or 12
    for _ in range(config.ingestion.scheduled_lookback_months):
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    first = Period.parse(config.ingestion.start_period)
    start = max(Period(year, month), Period(first.year, first.month or 1))
    return periods_between(start, today)


class IngestionRunner:
    """Runs ingestion cycles.

    Collaborators are created from the config unless injected, which is how
    tests substitute fake transports.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        backend: HttpBackend | None = None,
        rates_provider: RateTableProvider | None = None,
        calculator: AmountCalculator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Application configuration
            backend: HTTP backend for feeds and documents
            rates_provider: Exchange-rate source
            calculator: Amount calculator
            sleep: Awaitable sleep used for politeness delays
        """
        self.config = config
        self._owns_backend = backend is None
        self.backend = backend or HttpBackend.from_config(config.feed)
        self.rates_provider = rates_provider or RateTableProvider.from_config(config.rates)
        self.calculator = calculator or AmountCalculator.from_config(config.rates)
        self._sleep = sleep

        ingestion = config.ingestion
        self.discovery = FeedDiscovery(
            self.backend,
            base_url=config.feed.base_url,
            month_delay_seconds=ingestion.group_delay_seconds,
        )
        self.fetcher = BatchFetchOrchestrator(
            self.backend,
            batch_size=ingestion.batch_size,
            concurrency=ingestion.concurrency,
            group_delay=ingestion.group_delay_seconds,
            batch_delay=ingestion.batch_delay_seconds,
            sleep=sleep,
        )

    async def close(self) -> None:
        """Close the backend if this runner created it."""
        if self._owns_backend:
            await self.backend.close()

    # -------------------------------------------------------------------------
    # Run bookkeeping
    # -------------------------------------------------------------------------

    def _start_run(self, run_type: str, periods: list[str], dry_run: bool) -> int:
        with get_session() as session:
            run = RunRepository(session).create(run_type=run_type, periods=periods, dry_run=dry_run)
            return run.id

    def _finish_run(
        self,
        run_id: int,
        stats: RunStats,
        status: RunStatus,
        error_message: str | None = None,
        error_traceback: str | None = None,
    ) -> None:
        with get_session() as session:
            repo = RunRepository(session)
            repo.set_stats(run_id, stats.to_dict())
            repo.complete(
                run_id,
                status=status.value,
                error_message=error_message,
                error_traceback=error_traceback,
            )

    # -------------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------------

    async def run(
        self,
        periods: Sequence[Period] | None = None,
        run_type: RunType | str = RunType.MANUAL,
        dry_run: bool = False,
    ) -> RunStats:
        """Execute a complete ingestion cycle.

        Args:
            periods: Periods to ingest. Scheduled runs default to the recent
                window of scheduled_periods, other runs to the full range
                from the start period
            run_type: What started the run
            dry_run: Discover and deduplicate only; nothing is fetched or written

        Returns:
            RunStats with execution statistics

        Raises:
            IngestionError: If every period failed
            Exception: Store errors while recording the run propagate
        """
        run_type = RunType(run_type)
        if periods:
            selected = list(periods)
        elif run_type == RunType.SCHEDULED:
            selected = scheduled_periods(self.config)
        else:
            selected = default_periods(self.config)
        stats = RunStats(periods=[str(p) for p in selected], dry_run=dry_run)

        stats.run_id = self._start_run(run_type.value, stats.periods, dry_run)
        log = get_contextual_logger("orchestrator.runner", run_id=stats.run_id, run_type=run_type.value)
        log.info(f"Starting {run_type.value} ingestion for {len(selected)} period(s)" + (" (dry run)" if dry_run else ""))

        try:
            snapshot = await self.rates_provider.fetch()
            delay = self.config.ingestion.period_delay_seconds

            for index, period in enumerate(selected):
                try:
                    await self._run_period(period, snapshot, stats, dry_run)
                except Exception as e:
                    stats.periods_failed += 1
                    stats.errors.append(f"{period}: {e}")
                    log.with_context(period=str(period)).exception(f"Error processing {period}")

                if index < len(selected) - 1 and delay > 0:
                    await self._sleep(delay)

            if selected and stats.periods_failed == len(selected):
                raise IngestionError(f"All {len(selected)} period(s) failed: {stats.errors[-1]}")

        except Exception as e:
            stats.finished_at = utcnow()
            log.exception("Ingestion run failed")
            self._finish_run(
                stats.run_id,
                stats,
                RunStatus.FAILED,
                error_message=str(e),
                error_traceback=traceback.format_exc(),
            )
            raise

        stats.finished_at = utcnow()
        self._finish_run(stats.run_id, stats, RunStatus.COMPLETED)
        log.info(
            f"Ingestion finished in {stats.duration_seconds:.1f}s: "
            f"{stats.inserted} inserted, {stats.updated} updated, {stats.unchanged} unchanged, "
            f"{stats.fetch_failed} fetch failures, {stats.skipped} skipped"
        )
        return stats

    async def _run_period(
        self,
        period: Period,
        snapshot: RateTableSnapshot,
        stats: RunStats,
        dry_run: bool,
    ) -> None:
        """Discover, deduplicate, fetch and persist one period."""
        log = get_contextual_logger("orchestrator.runner", period=str(period), run_id=stats.run_id)

        descriptors = await self.discovery.discover(period)
        stats.discovered += len(descriptors)
        if not descriptors:
            log.info(f"No releases found for {period}")
            return

        with get_session() as session:
            dedup = Deduplicator(session).diff(descriptors)
        stats.existing += len(dedup.existing)
        stats.duplicates += dedup.duplicates

        if dry_run:
            log.info(f"Dry run: {len(dedup.new)} new releases would be fetched for {period}")
            return
        if not dedup.new:
            log.info(f"All releases for {period} already exist")
            return

        batch = 0
        async for outcomes in self.fetcher.iter_batches(dedup.new):
            batch += 1
            documents = [o for o in outcomes if o.ok]
            stats.fetched += len(documents)
            stats.fetch_failed += len(outcomes) - len(documents)

            if not documents:
                continue

            # Persist this batch before the next one is fetched
            with get_session() as session:
                writer = ReleaseWriter(
                    session,
                    snapshot,
                    calculator=self.calculator,
                    write_batch_size=self.config.ingestion.write_batch_size,
                )
                result = writer.upsert_batch(documents)

            stats.inserted += result.inserted
            stats.updated += result.updated
            stats.unchanged += result.unchanged
            stats.skipped += result.skipped
            stats.write_failed += result.failed
            log.with_context(batch=batch).debug(
                f"Persisted {result.written} of {len(outcomes)} fetched releases"
            )

        log.info(f"Completed {period}")


async def run_ingestion(
    config: AppConfig,
    *,
    periods: Sequence[Period] | None = None,
    run_type: RunType | str = RunType.CLI,
    dry_run: bool = False,
) -> RunStats:
    """Convenience function: build a runner, run one cycle, close it."""
    runner = IngestionRunner(config)
    try:
        return await runner.run(periods=periods, run_type=run_type, dry_run=dry_run)
    finally:
        await runner.close()
