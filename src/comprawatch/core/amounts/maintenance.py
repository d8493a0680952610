"""
Recompute AmountSummaries produced by an older calculation version.

A stored release is stale when it has at least one award item amount and
its ``amount_version`` is missing or differs from the target version.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from ...persistence.models import Release, utcnow
from ..logging import get_logger
from ..normalize.canonical import ReleaseCanonical
from ..rates.provider import RateTableSnapshot
from .engine import AMOUNT_CALCULATION_VERSION, AmountCalculator, AmountOptions

logger = get_logger("amounts.maintenance")


def stale_amounts_query(version: int = AMOUNT_CALCULATION_VERSION) -> Select:
    """SELECT of releases whose AmountSummary needs recomputing."""
    return (
        select(Release)
        .where(Release.has_item_amounts.is_(True))
        .where(or_(Release.amount_version.is_(None), Release.amount_version != version))
        .order_by(Release.id)
    )


@dataclass
class MaintenanceReport:
    """Outcome of a check or refresh."""

    target_version: int
    stale: int = 0
    refreshed: int = 0
    by_version: dict[int | None, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "target_version": self.target_version,
            "stale": self.stale,
            "refreshed": self.refreshed,
            "by_version": {str(k): v for k, v in self.by_version.items()},
        }


class AmountMaintenance:
    """Find and refresh stale AmountSummaries."""

    def __init__(
        self,
        session: Session,
        snapshot: RateTableSnapshot,
        calculator: AmountCalculator | None = None,
    ):
        self.session = session
        self.snapshot = snapshot
        self.calculator = calculator or AmountCalculator()

    @property
    def target_version(self) -> int:
        return self.calculator.version

    def check(self) -> MaintenanceReport:
        """Count stale releases without changing anything."""
        stale = self.session.execute(
            select(func.count()).select_from(stale_amounts_query(self.target_version).subquery())
        ).scalar_one()

        stmt = (
            select(Release.amount_version, func.count(Release.id))
            .where(Release.has_item_amounts.is_(True))
            .group_by(Release.amount_version)
        )
        by_version = {version: count for version, count in self.session.execute(stmt)}

        logger.info(f"{stale} releases need an amount update to version {self.target_version}")
        return MaintenanceReport(target_version=self.target_version, stale=stale, by_version=by_version)

    def refresh(self, batch_size: int = 500, limit: int | None = None) -> MaintenanceReport:
        """Recompute stale summaries in batches.

        Each batch is committed before the next one is selected, so the
        query advances past refreshed rows and an interrupted refresh keeps
        the batches already written.

        Args:
            batch_size: Releases recomputed per batch
            limit: Stop after this many releases

        Returns:
            MaintenanceReport with the number of refreshed releases
        """
        report = self.check()
        query = stale_amounts_query(self.target_version)

        while limit is None or report.refreshed < limit:
            size = batch_size if limit is None else min(batch_size, limit - report.refreshed)
            releases = self.session.execute(query.limit(size)).scalars().all()
            if not releases:
                break

            now = utcnow()
            for release in releases:
                previous = release.primary_amount
                if previous is None and isinstance(release.amount, dict):
                    previous = release.amount.get("primaryAmount")

                summary = self.calculator.compute(
                    release.awards,
                    self.snapshot,
                    AmountOptions(
                        include_version_info=True,
                        was_version_update=True,
                        previous_amount=previous,
                        computed_at=now,
                    ),
                )
                release.amount = summary.to_dict()
                release.amount_version = summary.version
                release.primary_amount = summary.primary_amount
                release.fingerprint = ReleaseCanonical.from_record(release, amount=summary).compute_fingerprint()

            self.session.commit()
            report.refreshed += len(releases)
            logger.info(f"Refreshed {report.refreshed}/{report.stale} amount summaries")

        return report
