"""
In-process job status owned by the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..config.models import JobState


class JobAlreadyRunning(RuntimeError):
    """An ingestion cycle is already in progress."""


@dataclass
class JobStatus:
    """Status of the ingestion job. Not persisted."""

    status: JobState = JobState.IDLE
    is_running: bool = False
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_error: str | None = None
    successful_runs: int = 0
    failed_runs: int = 0
    last_run_id: int | None = None

    def snapshot(self, **changes: Any) -> "JobStatus":
        """Copy of the status, optionally with some fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "isRunning": self.is_running,
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "nextRun": self.next_run.isoformat() if self.next_run else None,
            "lastError": self.last_error,
            "successfulRuns": self.successful_runs,
            "failedRuns": self.failed_runs,
            "lastRunId": self.last_run_id,
        }
