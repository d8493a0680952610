"""
Batch persistence of fetched release documents.

Each document is validated, normalized and given its AmountSummary, then
written with a dialect-native ``INSERT ... ON CONFLICT (release_id) DO
UPDATE``. Writes are grouped into sub-batches, each inside its own SAVEPOINT.
When a sub-batch statement fails, its rows are re-applied one SAVEPOINT per
row so a single bad row never blocks the rest. Failed rows are counted, not
retried.

Re-running the same batch is idempotent: rows whose content fingerprint
matches the stored one are left untouched and reported as unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.amounts.engine import AmountCalculator, AmountOptions
from ..core.config.loader import ConfigError
from ..core.logging import get_logger
from ..core.normalize.canonical import normalize_release
from ..core.normalize.document import DocumentValidationError, OcdsRelease, parse_release_package
from ..core.rates.provider import RateTableSnapshot
from .models import Release, utcnow
from .repo import ReleaseRepository

if TYPE_CHECKING:
    from ..core.feed.discovery import ReleaseDescriptor

logger = get_logger("persistence.writer")


DEFAULT_WRITE_BATCH_SIZE = 500

# Columns never overwritten on conflict
_IMMUTABLE_COLUMNS = {"id", "release_id", "created_at"}


@dataclass
class UpsertResult:
    """Counters for one upsert_batch call."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)

    @property
    def written(self) -> int:
        return self.inserted + self.updated

    def merge(self, other: "UpsertResult") -> None:
        self.inserted += other.inserted
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.skipped += other.skipped
        self.failed += other.failed
        self.failed_ids.extend(other.failed_ids)

    def to_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "failed": self.failed,
        }


@dataclass
class _Prepared:
    release: OcdsRelease
    descriptor: "ReleaseDescriptor | None"
    fetched_at: datetime | None


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ReleaseWriter:
    """Validate, normalize and upsert release documents."""

    def __init__(
        self,
        session: Session,
        snapshot: RateTableSnapshot,
        calculator: AmountCalculator | None = None,
        write_batch_size: int = DEFAULT_WRITE_BATCH_SIZE,
    ):
        self.session = session
        self.snapshot = snapshot
        self.calculator = calculator or AmountCalculator()
        self.write_batch_size = write_batch_size
        self.repo = ReleaseRepository(session)

    # -------------------------------------------------------------------------
    # Preparation
    # -------------------------------------------------------------------------

    def _prepare(self, documents: Iterable[Any], result: UpsertResult) -> list[_Prepared]:
        """Validate documents and collapse repeated release ids (last wins)."""
        prepared: dict[str, _Prepared] = {}

        for item in documents:
            descriptor = getattr(item, "descriptor", None)
            payload = item if isinstance(item, dict) else getattr(item, "document", None)
            fetched_at = getattr(item, "fetched_at", None)
            label = descriptor.id if descriptor is not None else None

            if payload is None:
                logger.warning(f"Skipping {label}: no document")
                result.skipped += 1
                continue

            try:
                release = parse_release_package(payload, descriptor_id=label)
            except DocumentValidationError as e:
                logger.warning(f"Skipping {label}: {e}", extra={"release_id": label})
                result.skipped += 1
                continue

            if release.id in prepared:
                logger.debug(f"Release {release.id} appears twice in batch, keeping the last copy")
                result.skipped += 1
            prepared[release.id] = _Prepared(release, descriptor, fetched_at)

        return list(prepared.values())

    def _build_row(self, item: _Prepared, prior: Any, now: datetime) -> dict[str, Any]:
        was_update = prior is not None and prior.amount_version != self.calculator.version
        amount = self.calculator.compute(
            item.release.awards,
            self.snapshot,
            AmountOptions(
                include_version_info=True,
                was_version_update=was_update,
                previous_amount=prior.primary_amount if was_update else None,
                computed_at=now,
            ),
        )
        canonical = normalize_release(
            item.release,
            descriptor=item.descriptor,
            amount=amount,
            fetched_at=item.fetched_at or now,
        )
        row = canonical.to_row()
        row["created_at"] = now
        row["last_seen_at"] = now
        return row

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _upsert_statement(self, rows: list[dict[str, Any]]):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise ConfigError(f"Unsupported database dialect '{dialect}': use PostgreSQL or SQLite")

        stmt = insert(Release).values(rows)
        columns = {key for key in rows[0] if key not in _IMMUTABLE_COLUMNS}
        update_set = {name: stmt.excluded[name] for name in columns}
        update_set["updated_at"] = utcnow()
        return stmt.on_conflict_do_update(
            index_elements=[Release.release_id],
            set_=update_set,
        )

    def _write_rows(self, rows: list[dict[str, Any]]) -> list[str]:
        """Write rows; return the release ids that could not be written."""
        if not rows:
            return []

        try:
            with self.session.begin_nested():
                self.session.execute(self._upsert_statement(rows))
            return []
        except SQLAlchemyError as e:
            logger.warning(f"Sub-batch of {len(rows)} failed ({e.__class__.__name__}), applying rows individually")

        failed: list[str] = []
        for row in rows:
            try:
                with self.session.begin_nested():
                    self.session.execute(self._upsert_statement([row]))
            except SQLAlchemyError as e:
                logger.error(
                    f"Failed to write release {row['release_id']}: {e}",
                    extra={"release_id": row["release_id"]},
                )
                failed.append(row["release_id"])
        return failed

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def upsert_batch(self, documents: Iterable[Any]) -> UpsertResult:
        """Persist a batch of fetched documents.

        Args:
            documents: Fetch outcomes (with ``descriptor``, ``document`` and
                ``fetched_at``) or bare release-package dicts

        Returns:
            UpsertResult with inserted/updated/unchanged/skipped/failed counts
        """
        result = UpsertResult()
        prepared = self._prepare(documents, result)

        for chunk in _chunks(prepared, self.write_batch_size):
            now = utcnow()
            states = self.repo.get_states(item.release.id for item in chunk)

            inserts: list[dict[str, Any]] = []
            updates: list[dict[str, Any]] = []
            unchanged: list[str] = []

            for item in chunk:
                prior = states.get(item.release.id)
                try:
                    row = self._build_row(item, prior, now)
                except (ValueError, TypeError, KeyError) as e:
                    logger.warning(f"Skipping {item.release.id}: cannot normalize ({e})")
                    result.skipped += 1
                    continue

                if prior is None:
                    inserts.append(row)
                elif prior.fingerprint == row["fingerprint"] and prior.amount_version == row["amount_version"]:
                    unchanged.append(row["release_id"])
                else:
                    updates.append(row)

            failed = set(self._write_rows(inserts + updates))
            self.repo.touch(unchanged)

            result.inserted += sum(1 for row in inserts if row["release_id"] not in failed)
            result.updated += sum(1 for row in updates if row["release_id"] not in failed)
            result.unchanged += len(unchanged)
            result.failed += len(failed)
            result.failed_ids.extend(sorted(failed))

        logger.info(
            f"Upsert: {result.inserted} inserted, {result.updated} updated, "
            f"{result.unchanged} unchanged, {result.skipped} skipped, {result.failed} failed"
        )
        return result
