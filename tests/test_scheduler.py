"""
Tests for the scheduler service, job status, store recovery and health checks.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from datetime import datetime, time, timezone

import pytest
from apscheduler.triggers.cron import CronTrigger

from comprawatch.core.config.models import HealthState, JobState, RecoveryConfig, RunType, SchedulerConfig
from comprawatch.core.scheduler.health import HealthChecker
from comprawatch.core.scheduler.recovery import StoreRecovery
from comprawatch.core.scheduler.service import IngestionScheduler, next_run_time
from comprawatch.core.scheduler.status import JobAlreadyRunning, JobStatus

from .conftest import no_sleep


@dataclass
class FakeStats:
    run_id: int


class FakeRunner:
    """Records cycles; optionally fails or waits for a release signal."""

    def __init__(self, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.error = error
        self.gate = gate
        self.calls: list[RunType] = []

    async def run(self, *, run_type=RunType.MANUAL):
        self.calls.append(run_type)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return FakeStats(run_id=len(self.calls))


def disabled_recovery() -> StoreRecovery:
    return StoreRecovery(RecoveryConfig(enabled=False), sleep=no_sleep)


def working_recovery(reconnect=lambda: True) -> StoreRecovery:
    config = RecoveryConfig(
        enabled=True,
        stop_command=[],
        start_command=[],
        stop_wait_seconds=0,
        ready_wait_seconds=0,
    )
    return StoreRecovery(config, reconnect=reconnect, sleep=no_sleep)


def make_scheduler(runner, ping=lambda: True, recovery=None, status=None) -> IngestionScheduler:
    return IngestionScheduler(
        runner,
        config=SchedulerConfig(time_of_day=time(0, 0), timezone="America/Montevideo"),
        status=status,
        recovery=recovery or disabled_recovery(),
        ping=ping,
    )


# =============================================================================
# Schedule computation
# =============================================================================


class TestNextRunTime:
    """Daily wall-clock schedule in the configured timezone."""

    def test_later_today_moves_to_tomorrow(self):
        now = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

        result = next_run_time(time(0, 0), "America/Montevideo", now)

        assert result.astimezone(timezone.utc) == datetime(2025, 3, 11, 3, 0, tzinfo=timezone.utc)

    def test_before_local_midnight(self):
        # 02:00 UTC is 23:00 the previous day in Montevideo
        now = datetime(2025, 3, 10, 2, 0, tzinfo=timezone.utc)

        result = next_run_time(time(0, 0), "America/Montevideo", now)

        assert result.astimezone(timezone.utc) == datetime(2025, 3, 10, 3, 0, tzinfo=timezone.utc)

    def test_exact_time_is_not_repeated(self):
        now = datetime(2025, 3, 10, 3, 0, tzinfo=timezone.utc)

        result = next_run_time(time(0, 0), "America/Montevideo", now)

        assert result.astimezone(timezone.utc) == datetime(2025, 3, 11, 3, 0, tzinfo=timezone.utc)

    def test_build_trigger(self):
        trigger = make_scheduler(FakeRunner()).build_trigger()

        assert isinstance(trigger, CronTrigger)


# =============================================================================
# Cycle execution
# =============================================================================


class TestIngestionScheduler:
    """Single-flight cycles and status bookkeeping."""

    async def test_successful_cycle(self):
        runner = FakeRunner()
        scheduler = make_scheduler(runner)

        stats = await scheduler.run_cycle()

        assert stats.run_id == 1
        status = scheduler.status()
        assert status.status == JobState.IDLE
        assert status.is_running is False
        assert status.successful_runs == 1
        assert status.failed_runs == 0
        assert status.last_run is not None
        assert status.last_run_id == 1
        assert status.next_run is not None
        assert runner.calls == [RunType.SCHEDULED]

    async def test_failed_cycle_is_recorded(self):
        scheduler = make_scheduler(FakeRunner(error=RuntimeError("boom")))

        assert await scheduler.run_cycle(RunType.MANUAL) is None

        status = scheduler.status()
        assert status.failed_runs == 1
        assert status.successful_runs == 0
        assert status.last_error == "boom"
        assert status.is_running is False
        assert status.status == JobState.IDLE

    async def test_next_success_clears_last_error(self):
        runner = FakeRunner(error=RuntimeError("boom"))
        scheduler = make_scheduler(runner)
        await scheduler.run_cycle()

        runner.error = None
        await scheduler.run_cycle()

        assert scheduler.status().last_error is None
        assert scheduler.status().successful_runs == 1

    async def test_only_one_cycle_at_a_time(self):
        gate = asyncio.Event()
        runner = FakeRunner(gate=gate)
        scheduler = make_scheduler(runner)

        task = scheduler.trigger()
        await asyncio.sleep(0)

        assert scheduler.is_running
        assert scheduler.status().status == JobState.RUNNING
        with pytest.raises(JobAlreadyRunning):
            scheduler.trigger()
        with pytest.raises(JobAlreadyRunning):
            await scheduler.run_cycle()

        # overlapping cron ticks are skipped quietly
        await scheduler.scheduled_tick()

        gate.set()
        await task

        assert runner.calls == [RunType.MANUAL]
        assert scheduler.status().successful_runs == 1
        assert not scheduler.is_running

    async def test_store_down_without_recovery_fails_cycle(self):
        runner = FakeRunner()
        scheduler = make_scheduler(runner, ping=lambda: False)

        assert await scheduler.run_cycle() is None

        assert runner.calls == []
        assert scheduler.status().failed_runs == 1
        assert "Store unavailable" in scheduler.status().last_error

    async def test_store_recovered_before_cycle(self):
        runner = FakeRunner()
        scheduler = make_scheduler(runner, ping=lambda: False, recovery=working_recovery())

        await scheduler.run_cycle()

        assert runner.calls == [RunType.SCHEDULED]
        assert scheduler.status().successful_runs == 1


class TestJobStatus:
    def test_to_dict(self):
        status = JobStatus(last_run=datetime(2025, 3, 10, tzinfo=timezone.utc), successful_runs=2)

        data = status.to_dict()

        assert data["status"] == "idle"
        assert data["isRunning"] is False
        assert data["lastRun"] == "2025-03-10T00:00:00+00:00"
        assert data["nextRun"] is None
        assert data["successfulRuns"] == 2

    def test_snapshot_is_a_copy(self):
        status = JobStatus()
        copy = status.snapshot(failed_runs=3)

        assert copy.failed_runs == 3
        assert status.failed_runs == 0


# =============================================================================
# Recovery
# =============================================================================


class TestStoreRecovery:
    """Stop, start and reconnect."""

    async def test_disabled(self):
        result = await disabled_recovery().restart()

        assert result.attempted is False
        assert result.succeeded is False
        assert "disabled" in result.error

    async def test_successful_restart(self):
        result = await working_recovery().restart()

        assert result.succeeded is True
        assert result.steps == ["stopped", "started", "reconnected"]
        assert result.error is None

    async def test_failing_stop_continues_with_start(self):
        recovery = working_recovery()
        recovery.config.stop_command = [sys.executable, "-c", "import sys; sys.exit(3)"]

        result = await recovery.restart()

        assert result.attempted is True
        assert result.succeeded is True
        assert result.error is None
        assert result.steps == ["stop-failed", "started", "reconnected"]

    async def test_failing_start_aborts(self):
        recovery = working_recovery()
        recovery.config.start_command = [sys.executable, "-c", "import sys; sys.exit(3)"]

        result = await recovery.restart()

        assert result.attempted is True
        assert result.succeeded is False
        assert "exited with 3" in result.error
        assert result.steps == ["stopped"]

    async def test_missing_command(self):
        recovery = working_recovery()
        recovery.config.start_command = ["/nonexistent/comprawatch-store-ctl"]

        result = await recovery.restart()

        assert result.succeeded is False
        assert "Cannot run" in result.error
        assert result.steps == ["stopped"]

    async def test_store_still_down_after_restart(self):
        result = await working_recovery(reconnect=lambda: False).restart()

        assert result.succeeded is False
        assert result.steps == ["stopped", "started"]
        assert "unreachable" in result.error

    async def test_ensure_available_skips_restart_when_up(self):
        calls: list[bool] = []

        def reconnect() -> bool:
            calls.append(True)
            return True

        assert await working_recovery(reconnect=reconnect).ensure_available(lambda: True) is None
        assert calls == []


# =============================================================================
# Health
# =============================================================================


class TestHealthChecker:
    """Grading of store and job state."""

    async def test_healthy(self):
        checker = HealthChecker(JobStatus, recovery=disabled_recovery(), ping=lambda: True)

        report = await checker.check()

        assert report.status == HealthState.HEALTHY
        assert report.store_ok is True
        assert report.to_dict()["job"]["status"] == "idle"

    async def test_degraded_after_failed_run(self):
        checker = HealthChecker(
            lambda: JobStatus(last_error="boom", failed_runs=1),
            recovery=disabled_recovery(),
            ping=lambda: True,
        )

        report = await checker.check()

        assert report.status == HealthState.DEGRADED

    async def test_unhealthy_when_store_down(self):
        checker = HealthChecker(JobStatus, recovery=disabled_recovery(), ping=lambda: False)

        report = await checker.check()

        assert report.status == HealthState.UNHEALTHY
        assert report.store_ok is False
        assert report.restart_attempted is False

    async def test_degraded_when_store_was_restarted(self):
        checker = HealthChecker(JobStatus, recovery=working_recovery(), ping=lambda: False)

        report = await checker.check()

        assert report.status == HealthState.DEGRADED
        assert report.store_ok is True
        assert report.restart_attempted is True
        assert report.restart_succeeded is True

    async def test_degraded_while_restart_in_progress(self):
        gate = asyncio.Event()

        async def held_sleep(seconds: float) -> None:
            await gate.wait()

        recovery = StoreRecovery(working_recovery().config, reconnect=lambda: True, sleep=held_sleep)
        restart = asyncio.create_task(recovery.restart())
        while not recovery.in_progress:
            await asyncio.sleep(0)

        report = await HealthChecker(JobStatus, recovery=recovery, ping=lambda: False).check()

        assert report.status == HealthState.DEGRADED
        assert report.restart_attempted is False
        assert "in progress" in report.restart_error

        gate.set()
        assert (await restart).succeeded is True

    async def test_ping_runs_off_the_event_loop(self):
        loop_thread: list[bool] = []

        def ping() -> bool:
            try:
                asyncio.get_running_loop()
                loop_thread.append(True)
            except RuntimeError:
                loop_thread.append(False)
            return True

        await HealthChecker(JobStatus, recovery=disabled_recovery(), ping=ping).check()

        assert loop_thread == [False]
