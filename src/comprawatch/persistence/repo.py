"""
Repository pattern for database operations.

Provides clean abstractions over the releases and ingestion_runs tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import IngestionRun, Release, utcnow


# =============================================================================
# Release Repository
# =============================================================================


@dataclass(frozen=True)
class StoredReleaseState:
    """What the writer needs to know about a stored release."""

    release_id: str
    fingerprint: str | None
    amount_version: int | None
    primary_amount: float | None


class ReleaseRepository:
    """Repository for Release lookups."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_release_id(self, release_id: str) -> Release | None:
        """Get a release by its upstream id."""
        stmt = select(Release).where(Release.release_id == release_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def existing_ids(self, release_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``release_ids`` already stored.

        Issues a single query for the whole id set.
        """
        ids = list(dict.fromkeys(release_ids))
        if not ids:
            return set()
        stmt = select(Release.release_id).where(Release.release_id.in_(ids))
        return set(self.session.execute(stmt).scalars().all())

    def get_states(self, release_ids: Iterable[str]) -> dict[str, StoredReleaseState]:
        """Fetch change-detection state for a set of ids in one query."""
        ids = list(dict.fromkeys(release_ids))
        if not ids:
            return {}
        stmt = select(
            Release.release_id,
            Release.fingerprint,
            Release.amount_version,
            Release.primary_amount,
        ).where(Release.release_id.in_(ids))
        return {
            row.release_id: StoredReleaseState(
                release_id=row.release_id,
                fingerprint=row.fingerprint,
                amount_version=row.amount_version,
                primary_amount=row.primary_amount,
            )
            for row in self.session.execute(stmt)
        }

    def touch(self, release_ids: Iterable[str]) -> None:
        """Record that releases were seen again without rewriting them."""
        ids = list(release_ids)
        if not ids:
            return
        self.session.query(Release).filter(Release.release_id.in_(ids)).update(
            {Release.last_seen_at: utcnow()},
            synchronize_session=False,
        )

    def count(self, period: str | None = None) -> int:
        """Count stored releases, optionally for one source period."""
        stmt = select(func.count(Release.id))
        if period is not None:
            stmt = stmt.where(Release.source_period == period)
        return self.session.execute(stmt).scalar_one()

    def count_by_period(self) -> dict[str, int]:
        """Release counts grouped by source period."""
        stmt = (
            select(Release.source_period, func.count(Release.id))
            .group_by(Release.source_period)
            .order_by(Release.source_period)
        )
        return {period or "unknown": count for period, count in self.session.execute(stmt)}

    def count_by_amount_version(self) -> dict[int | None, int]:
        """Release counts grouped by AmountSummary version."""
        stmt = select(Release.amount_version, func.count(Release.id)).group_by(Release.amount_version)
        return {version: count for version, count in self.session.execute(stmt)}


# =============================================================================
# Run Repository
# =============================================================================


RUN_COUNTERS = (
    "discovered",
    "existing",
    "duplicates",
    "fetched",
    "fetch_failed",
    "inserted",
    "updated",
    "unchanged",
    "skipped",
    "write_failed",
    "periods_failed",
)


class RunRepository:
    """Repository for IngestionRun operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        run_type: str = "manual",
        periods: list[str] | None = None,
        dry_run: bool = False,
    ) -> IngestionRun:
        """Create a new ingestion run."""
        run = IngestionRun(
            run_type=run_type,
            periods=periods,
            dry_run=dry_run,
            status="RUNNING",
        )
        self.session.add(run)
        self.session.flush()
        return run

    def get_by_id(self, run_id: int) -> IngestionRun | None:
        """Get run by ID."""
        return self.session.get(IngestionRun, run_id)

    def set_stats(self, run_id: int, stats: dict[str, Any]) -> None:
        """Overwrite run counters from a stats dictionary."""
        run = self.get_by_id(run_id)
        if not run:
            return
        for name in RUN_COUNTERS:
            if name in stats:
                setattr(run, name, int(stats[name]))

    def complete(
        self,
        run_id: int,
        status: str = "COMPLETED",
        error_message: str | None = None,
        error_traceback: str | None = None,
    ) -> None:
        """Mark a run as complete."""
        run = self.get_by_id(run_id)
        if not run:
            return

        run.status = status
        run.finished_at = utcnow()
        run.error_message = error_message
        run.error_traceback = error_traceback

    def get_recent(self, limit: int = 20) -> Sequence[IngestionRun]:
        """Get recent runs, newest first."""
        stmt = select(IngestionRun).order_by(IngestionRun.started_at.desc(), IngestionRun.id.desc()).limit(limit)
        return self.session.execute(stmt).scalars().all()
