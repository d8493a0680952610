"""
SQLAlchemy ORM models for CompraWatch.

Defines the database schema:
- Releases: normalized OCDS releases with their AmountSummary
- IngestionRuns: execution log of ingestion cycles
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC now (all stored datetimes are naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[Any]: JSON,
    }


# =============================================================================
# Mixins
# =============================================================================


class TimestampMixin:
    """Mixin providing created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=None,
        onupdate=utcnow,
        nullable=True,
    )


# =============================================================================
# Release Model
# =============================================================================


class Release(Base, TimestampMixin):
    """A normalized OCDS release, unique on its upstream release id."""

    __tablename__ = "releases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    release_id: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, index=True)
    ocid: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)

    # Core OCDS content
    date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    tag: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    initiation_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    parties: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    buyer: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    supplier: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    tender: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    awards: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    # AmountSummary (camelCase JSON) and its denormalized query fields
    amount: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    amount_version: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    primary_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    has_item_amounts: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Source metadata
    source_file_name: Mapped[str] = mapped_column(String(50), default="web", nullable=False)
    source_year: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    source_period: Mapped[str | None] = mapped_column(String(7), nullable=True, index=True)
    feed_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    feed_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    feed_publish_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    feed_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    fetched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Change detection
    fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_releases_amount_maintenance", "has_item_amounts", "amount_version"),
    )

    def __repr__(self) -> str:
        return f"<Release(id={self.id}, release_id='{self.release_id}')>"


# =============================================================================
# Ingestion Run Model
# =============================================================================


class IngestionRun(Base):
    """Execution log for an ingestion cycle."""

    __tablename__ = "ingestion_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Run identification
    run_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="manual",  # manual, scheduled, cli
    )
    periods: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    dry_run: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="RUNNING",
        index=True,
    )

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Statistics
    discovered: Mapped[int] = mapped_column(Integer, default=0)
    existing: Mapped[int] = mapped_column(Integer, default=0)
    duplicates: Mapped[int] = mapped_column(Integer, default=0)
    fetched: Mapped[int] = mapped_column(Integer, default=0)
    fetch_failed: Mapped[int] = mapped_column(Integer, default=0)
    inserted: Mapped[int] = mapped_column(Integer, default=0)
    updated: Mapped[int] = mapped_column(Integer, default=0)
    unchanged: Mapped[int] = mapped_column(Integer, default=0)
    skipped: Mapped[int] = mapped_column(Integer, default=0)
    write_failed: Mapped[int] = mapped_column(Integer, default=0)
    periods_failed: Mapped[int] = mapped_column(Integer, default=0)

    # Error details
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_traceback: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate run duration in seconds."""
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def __repr__(self) -> str:
        return f"<IngestionRun(id={self.id}, run_type='{self.run_type}', status='{self.status}')>"
