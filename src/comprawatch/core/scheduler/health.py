"""
Health checks for the scheduler process.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from ...persistence import db
from ..config.models import HealthState, JobState
from ..logging import get_logger
from .recovery import StoreRecovery
from .status import JobStatus

logger = get_logger("scheduler.health")


@dataclass
class HealthReport:
    """Result of one health check."""

    status: HealthState
    store_ok: bool
    restart_attempted: bool = False
    restart_succeeded: bool = False
    restart_error: str | None = None
    job: dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "storeOk": self.store_ok,
            "restartAttempted": self.restart_attempted,
            "restartSucceeded": self.restart_succeeded,
            "restartError": self.restart_error,
            "job": self.job,
            "checkedAt": self.checked_at.isoformat(),
        }


class HealthChecker:
    """Ping the store, try recovery when it is down, and grade the result.

    - healthy: store reachable and the last run did not fail
    - degraded: store reachable but the last run failed, the store had
      to be restarted, or a restart is still in progress
    - unhealthy: store unreachable and recovery failed
    """

    def __init__(
        self,
        status_provider: Callable[[], JobStatus],
        recovery: StoreRecovery | None = None,
        ping: Callable[[], bool] = db.ping_database,
    ):
        self.status_provider = status_provider
        self.recovery = recovery or StoreRecovery()
        self.ping = ping

    async def check(self) -> HealthReport:
        job = self.status_provider()
        store_ok = await asyncio.to_thread(self.ping)

        report = HealthReport(status=HealthState.HEALTHY, store_ok=store_ok, job=job.to_dict())

        if not store_ok:
            result = await self.recovery.restart()
            report.restart_attempted = result.attempted
            report.restart_succeeded = result.succeeded
            report.restart_error = result.error
            report.store_ok = result.succeeded
            if result.succeeded or result.in_progress:
                report.status = HealthState.DEGRADED
            else:
                report.status = HealthState.UNHEALTHY
        elif job.status == JobState.ERROR or job.last_error:
            report.status = HealthState.DEGRADED

        if report.status != HealthState.HEALTHY:
            logger.warning(f"Health check: {report.status.value}")
        return report
