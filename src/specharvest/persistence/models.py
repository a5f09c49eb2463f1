"""
SQLAlchemy ORM models for SpecHarvest.

Defines the database schema:
- CatalogItems: Per-item completion records
- PhoneSpecs: Stored specification documents
- HarvestRuns: Execution logs
- RunLocks: Overlap protection
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
    }


# =============================================================================
# Mixins
# =============================================================================


class TimestampMixin:
    """Mixin providing created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


# =============================================================================
# Catalog Item Model (completion records)
# =============================================================================


class CatalogItem(Base, TimestampMixin):
    """One listed phone and whether it has been fully harvested.

    Created pending on first touch and flipped to complete only after
    its specification document is stored. Never deleted by a run.
    """

    __tablename__ = "catalog_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(100), nullable=False)
    item_id: Mapped[str] = mapped_column(String(200), nullable=False)

    group_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    source_url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    is_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("namespace", "item_id", name="uq_catalog_item"),
        Index("ix_catalog_items_namespace_complete", "namespace", "is_complete"),
    )

    def __repr__(self) -> str:
        return (
            f"<CatalogItem(namespace='{self.namespace}', item_id='{self.item_id}', "
            f"complete={self.is_complete})>"
        )


# =============================================================================
# Phone Spec Model (specification documents)
# =============================================================================


class PhoneSpec(Base, TimestampMixin):
    """Stored specification document for one phone."""

    __tablename__ = "phone_specs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(100), nullable=False)
    item_id: Mapped[str] = mapped_column(String(200), nullable=False)

    name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    brand: Mapped[str] = mapped_column(String(200), nullable=False, default="", index=True)
    url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="gsmarena")

    # Full document (categorized sections + raw form)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    transport: Mapped[str | None] = mapped_column(String(20), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        UniqueConstraint("namespace", "item_id", name="uq_phone_spec"),
    )

    def __repr__(self) -> str:
        return f"<PhoneSpec(item_id='{self.item_id}', version={self.version})>"


# =============================================================================
# Harvest Run Model
# =============================================================================


class HarvestRun(Base):
    """Execution log for a harvest run."""

    __tablename__ = "harvest_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    run_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="manual",  # manual, scheduled
    )
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="RUNNING",
        index=True,
    )

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Statistics
    groups_processed: Mapped[int] = mapped_column(Integer, default=0)
    groups_failed: Mapped[int] = mapped_column(Integer, default=0)
    items_found: Mapped[int] = mapped_column(Integer, default=0)
    items_saved: Mapped[int] = mapped_column(Integer, default=0)
    items_skipped: Mapped[int] = mapped_column(Integer, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, default=0)

    # Alternator outcome
    final_state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    fallback_active: Mapped[bool] = mapped_column(Boolean, default=False)
    keys_usable: Mapped[int] = mapped_column(Integer, default=0)
    keys_total: Mapped[int] = mapped_column(Integer, default=0)
    report: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

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
        return f"<HarvestRun(id={self.id}, namespace='{self.namespace}', status='{self.status}')>"


# =============================================================================
# Lock Model (for overlap protection)
# =============================================================================


class RunLock(Base):
    """Database lock preventing overlapping runs on one namespace."""

    __tablename__ = "run_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lock_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    holder_id: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<RunLock(name='{self.lock_name}', holder='{self.holder_id}')>"
