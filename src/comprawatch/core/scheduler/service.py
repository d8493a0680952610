"""
APScheduler v4 integration for CompraWatch.

One IngestionScheduler per process. It owns the JobStatus, guarantees that
at most one ingestion cycle runs at a time, and registers the daily cron
schedule with an APScheduler ``AsyncScheduler``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Protocol
from zoneinfo import ZoneInfo

from apscheduler import AsyncScheduler, CoalescePolicy, ConflictPolicy
from apscheduler.triggers.cron import CronTrigger

from ...persistence import db
from ...persistence.db import StoreUnavailableError
from ..config.models import JobState, RunType, SchedulerConfig
from ..logging import get_logger
from .recovery import StoreRecovery
from .status import JobAlreadyRunning, JobStatus

logger = get_logger("scheduler")


SCHEDULE_ID = "daily-ingestion"


class CycleRunner(Protocol):
    async def run(self, *, run_type: RunType | str = ...) -> Any: ...


def next_run_time(
    time_of_day: time,
    tz_name: str,
    now: datetime | None = None,
) -> datetime:
    """Next wall-clock occurrence of ``time_of_day`` in ``tz_name``.

    Args:
        time_of_day: Local time of the daily run
        tz_name: IANA timezone name
        now: Reference instant (aware; defaults to the current time)

    Returns:
        Timezone-aware datetime strictly after ``now``
    """
    tz = ZoneInfo(tz_name)
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    candidate = datetime.combine(local_now.date(), time_of_day, tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), time_of_day, tzinfo=tz)
    return candidate


class IngestionScheduler:
    """Run ingestion cycles on a schedule or on demand."""

    def __init__(
        self,
        runner: CycleRunner,
        config: SchedulerConfig | None = None,
        status: JobStatus | None = None,
        recovery: StoreRecovery | None = None,
        ping: Callable[[], bool] = db.ping_database,
    ) -> None:
        """Initialize the scheduler.

        Args:
            runner: Object whose ``run(run_type=...)`` executes one cycle
            config: Schedule settings
            status: Shared JobStatus instance
            recovery: Store recovery used when the pre-run ping fails
            ping: Store liveness check
        """
        self.runner = runner
        self.config = config or SchedulerConfig()
        self._status = status or JobStatus()
        self.recovery = recovery or StoreRecovery()
        self.ping = ping
        self._task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def next_run(self, now: datetime | None = None) -> datetime:
        return next_run_time(self.config.time_of_day, self.config.timezone, now)

    def status(self, now: datetime | None = None) -> JobStatus:
        """Snapshot of the job status with ``next_run`` filled in."""
        return self._status.snapshot(next_run=self.next_run(now))

    @property
    def is_running(self) -> bool:
        return self._status.is_running

    # -------------------------------------------------------------------------
    # Cycle execution
    # -------------------------------------------------------------------------

    def _acquire(self) -> None:
        if self._status.is_running:
            raise JobAlreadyRunning("Ingestion job is already running")
        self._status.is_running = True
        self._status.status = JobState.RUNNING
        self._status.last_error = None
        self._status.last_run = datetime.now(timezone.utc)

    async def _ensure_store(self) -> None:
        result = await self.recovery.ensure_available(self.ping)
        if result is not None and not result.succeeded:
            raise StoreUnavailableError(f"Store unavailable and recovery failed: {result.error}")

    async def _execute(self, run_type: RunType) -> Any:
        logger.info(f"Starting {run_type.value} ingestion cycle")
        try:
            await self._ensure_store()
            stats = await self.runner.run(run_type=run_type)
            self._status.successful_runs += 1
            self._status.last_run_id = getattr(stats, "run_id", None)
            logger.info("Ingestion cycle completed")
            return stats
        except Exception as e:
            self._status.status = JobState.ERROR
            self._status.last_error = str(e) or e.__class__.__name__
            self._status.failed_runs += 1
            logger.exception("Ingestion cycle failed")
            return None
        finally:
            self._status.is_running = False
            self._status.status = JobState.IDLE

    async def run_cycle(self, run_type: RunType | str = RunType.SCHEDULED) -> Any:
        """Run one cycle in the caller's task.

        Raises:
            JobAlreadyRunning: If a cycle is in progress

        Returns:
            The runner's stats, or None if the cycle failed
        """
        self._acquire()
        return await self._execute(RunType(run_type))

    def trigger(self, run_type: RunType | str = RunType.MANUAL) -> asyncio.Task:
        """Start a cycle in the background.

        Raises:
            JobAlreadyRunning: If a cycle is in progress
        """
        self._acquire()
        self._task = asyncio.create_task(self._execute(RunType(run_type)))
        return self._task

    async def scheduled_tick(self) -> None:
        """Entry point for the cron schedule; overlapping ticks are skipped."""
        try:
            await self.run_cycle(RunType.SCHEDULED)
        except JobAlreadyRunning:
            logger.warning("Skipping scheduled run: previous cycle still running")

    # -------------------------------------------------------------------------
    # APScheduler
    # -------------------------------------------------------------------------

    def build_trigger(self) -> CronTrigger:
        tod = self.config.time_of_day
        return CronTrigger(hour=tod.hour, minute=tod.minute, timezone=self.config.timezone)

    async def start(self, scheduler: AsyncScheduler) -> None:
        """Register the daily schedule on a running AsyncScheduler.

        Missed ticks are coalesced into one run rather than replayed.
        """
        await scheduler.add_schedule(
            self.scheduled_tick,
            self.build_trigger(),
            id=SCHEDULE_ID,
            conflict_policy=ConflictPolicy.replace,
            coalesce=CoalescePolicy.latest,
        )
        logger.info(
            f"Scheduled daily ingestion at {self.config.time_of_day.strftime('%H:%M')} "
            f"{self.config.timezone} (next run {self.next_run().isoformat()})"
        )

    async def run_forever(self) -> None:
        """Run the scheduler in the foreground (blocking)."""
        async with AsyncScheduler() as scheduler:
            await self.start(scheduler)
            await scheduler.run_until_stopped()
