"""Scheduler service - APScheduler integration, status and health."""

from .health import HealthChecker, HealthReport
from .recovery import RecoveryError, RecoveryResult, StoreRecovery
from .service import IngestionScheduler, next_run_time
from .status import JobAlreadyRunning, JobStatus

__all__ = [
    "HealthChecker",
    "HealthReport",
    "RecoveryError",
    "RecoveryResult",
    "StoreRecovery",
    "IngestionScheduler",
    "next_run_time",
    "JobAlreadyRunning",
    "JobStatus",
]
