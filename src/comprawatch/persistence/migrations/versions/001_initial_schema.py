"""Initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create initial database schema."""

    # Releases table
    op.create_table(
        "releases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("release_id", sa.String(length=200), nullable=False),
        sa.Column("ocid", sa.String(length=200), nullable=True),
        sa.Column("date", sa.DateTime(), nullable=True),
        sa.Column("tag", sa.JSON(), nullable=True),
        sa.Column("initiation_type", sa.String(length=50), nullable=True),
        sa.Column("parties", sa.JSON(), nullable=True),
        sa.Column("buyer", sa.JSON(), nullable=True),
        sa.Column("supplier", sa.JSON(), nullable=True),
        sa.Column("tender", sa.JSON(), nullable=True),
        sa.Column("awards", sa.JSON(), nullable=True),
        sa.Column("amount", sa.JSON(), nullable=True),
        sa.Column("amount_version", sa.Integer(), nullable=True),
        sa.Column("primary_amount", sa.Float(), nullable=True),
        sa.Column("has_item_amounts", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("source_file_name", sa.String(length=50), nullable=False, server_default="web"),
        sa.Column("source_year", sa.Integer(), nullable=True),
        sa.Column("source_period", sa.String(length=7), nullable=True),
        sa.Column("feed_title", sa.Text(), nullable=True),
        sa.Column("feed_description", sa.Text(), nullable=True),
        sa.Column("feed_publish_date", sa.DateTime(), nullable=True),
        sa.Column("feed_link", sa.String(length=1000), nullable=True),
        sa.Column("fetched_at", sa.DateTime(), nullable=True),
        sa.Column("fingerprint", sa.String(length=64), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_releases_release_id", "releases", ["release_id"], unique=True)
    op.create_index("ix_releases_ocid", "releases", ["ocid"])
    op.create_index("ix_releases_date", "releases", ["date"])
    op.create_index("ix_releases_amount_version", "releases", ["amount_version"])
    op.create_index("ix_releases_source_year", "releases", ["source_year"])
    op.create_index("ix_releases_source_period", "releases", ["source_period"])
    op.create_index("ix_releases_amount_maintenance", "releases", ["has_item_amounts", "amount_version"])

    # Ingestion runs table
    op.create_table(
        "ingestion_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("run_type", sa.String(length=50), nullable=False, server_default="manual"),
        sa.Column("periods", sa.JSON(), nullable=True),
        sa.Column("dry_run", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="RUNNING"),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("discovered", sa.Integer(), server_default="0"),
        sa.Column("existing", sa.Integer(), server_default="0"),
        sa.Column("duplicates", sa.Integer(), server_default="0"),
        sa.Column("fetched", sa.Integer(), server_default="0"),
        sa.Column("fetch_failed", sa.Integer(), server_default="0"),
        sa.Column("inserted", sa.Integer(), server_default="0"),
        sa.Column("updated", sa.Integer(), server_default="0"),
        sa.Column("unchanged", sa.Integer(), server_default="0"),
        sa.Column("skipped", sa.Integer(), server_default="0"),
        sa.Column("write_failed", sa.Integer(), server_default="0"),
        sa.Column("periods_failed", sa.Integer(), server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_traceback", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ingestion_runs_status", "ingestion_runs", ["status"])
    op.create_index("ix_ingestion_runs_started_at", "ingestion_runs", ["started_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("ingestion_runs")
    op.drop_table("releases")
