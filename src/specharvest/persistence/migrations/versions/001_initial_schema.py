"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

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

    # Completion records
    op.create_table(
        "catalog_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("namespace", sa.String(length=100), nullable=False),
        sa.Column("item_id", sa.String(length=200), nullable=False),
        sa.Column("group_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("name", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("source_url", sa.String(length=1000), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(length=1000), nullable=True),
        sa.Column("is_complete", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("namespace", "item_id", name="uq_catalog_item"),
    )
    op.create_index(
        "ix_catalog_items_namespace_complete",
        "catalog_items",
        ["namespace", "is_complete"],
    )

    # Specification documents
    op.create_table(
        "phone_specs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("namespace", sa.String(length=100), nullable=False),
        sa.Column("item_id", sa.String(length=200), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("brand", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("url", sa.String(length=1000), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(length=1000), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False, server_default="gsmarena"),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.Column("transport", sa.String(length=20), nullable=True),
        sa.Column("scraped_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("namespace", "item_id", name="uq_phone_spec"),
    )
    op.create_index("ix_phone_specs_brand", "phone_specs", ["brand"])

    # Harvest runs
    op.create_table(
        "harvest_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("namespace", sa.String(length=100), nullable=False),
        sa.Column("run_type", sa.String(length=50), nullable=False, server_default="manual"),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="RUNNING"),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("groups_processed", sa.Integer(), server_default="0"),
        sa.Column("groups_failed", sa.Integer(), server_default="0"),
        sa.Column("items_found", sa.Integer(), server_default="0"),
        sa.Column("items_saved", sa.Integer(), server_default="0"),
        sa.Column("items_skipped", sa.Integer(), server_default="0"),
        sa.Column("items_failed", sa.Integer(), server_default="0"),
        sa.Column("final_state", sa.String(length=50), nullable=True),
        sa.Column("fallback_active", sa.Boolean(), server_default="0"),
        sa.Column("keys_usable", sa.Integer(), server_default="0"),
        sa.Column("keys_total", sa.Integer(), server_default="0"),
        sa.Column("report", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_traceback", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_harvest_runs_namespace", "harvest_runs", ["namespace"])
    op.create_index("ix_harvest_runs_status", "harvest_runs", ["status"])
    op.create_index("ix_harvest_runs_started_at", "harvest_runs", ["started_at"])

    # Run locks table
    op.create_table(
        "run_locks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lock_name", sa.String(length=100), nullable=False),
        sa.Column("acquired_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("holder_id", sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lock_name"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("run_locks")
    op.drop_table("harvest_runs")
    op.drop_table("phone_specs")
    op.drop_table("catalog_items")
