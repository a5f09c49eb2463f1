"""
Repository pattern for database operations.

Repositories flush but never commit; the caller owns the transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import CatalogItem, HarvestRun, PhoneSpec


# =============================================================================
# Completion Repository
# =============================================================================


class CompletionRepository:
    """Repository for CatalogItem completion records."""

    def __init__(self, session: Session, namespace: str):
        self.session = session
        self.namespace = namespace

    def get(self, item_id: str) -> CatalogItem | None:
        """Get a record by item id."""
        stmt = select(CatalogItem).where(
            CatalogItem.namespace == self.namespace,
            CatalogItem.item_id == item_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def complete_ids(self) -> set[str]:
        """All item ids flagged complete in this namespace."""
        stmt = select(CatalogItem.item_id).where(
            CatalogItem.namespace == self.namespace,
            CatalogItem.is_complete == True,  # noqa: E712
        )
        return set(self.session.execute(stmt).scalars().all())

    def upsert_pending(
        self,
        item_id: str,
        *,
        group_name: str = "",
        name: str = "",
        source_url: str = "",
        image_url: str | None = None,
    ) -> CatalogItem:
        """Create or refresh a record as incomplete."""
        now = datetime.utcnow()
        record = self.get(item_id)

        if record is None:
            record = CatalogItem(
                namespace=self.namespace,
                item_id=item_id,
                created_at=now,
            )
            self.session.add(record)

        record.group_name = group_name
        record.name = name
        record.source_url = source_url
        record.image_url = image_url
        record.is_complete = False
        record.updated_at = now
        self.session.flush()
        return record

    def mark_complete(self, item_id: str) -> CatalogItem:
        """Flag a record complete, creating it if missing."""
        now = datetime.utcnow()
        record = self.get(item_id)

        if record is None:
            record = CatalogItem(namespace=self.namespace, item_id=item_id, created_at=now)
            self.session.add(record)

        record.is_complete = True
        record.updated_at = now
        self.session.flush()
        return record

    def list_pending(self, limit: int = 50) -> Sequence[CatalogItem]:
        """Incomplete records, oldest first."""
        stmt = (
            select(CatalogItem)
            .where(
                CatalogItem.namespace == self.namespace,
                CatalogItem.is_complete == False,  # noqa: E712
            )
            .order_by(CatalogItem.updated_at)
            .limit(limit)
        )
        return self.session.execute(stmt).scalars().all()

    def counts(self) -> dict[str, int]:
        """Complete/pending totals for the namespace."""
        stmt = (
            select(CatalogItem.is_complete, func.count())
            .where(CatalogItem.namespace == self.namespace)
            .group_by(CatalogItem.is_complete)
        )
        counts = {"complete": 0, "pending": 0}
        for is_complete, count in self.session.execute(stmt).all():
            counts["complete" if is_complete else "pending"] = count
        return counts


# =============================================================================
# Spec Repository
# =============================================================================


class SpecRepository:
    """Repository for stored specification documents."""

    def __init__(self, session: Session, namespace: str):
        self.session = session
        self.namespace = namespace

    def get(self, item_id: str) -> PhoneSpec | None:
        stmt = select(PhoneSpec).where(
            PhoneSpec.namespace == self.namespace,
            PhoneSpec.item_id == item_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert(
        self,
        item_id: str,
        document: dict[str, Any],
        *,
        transport: str | None = None,
    ) -> tuple[PhoneSpec, bool]:
        """Insert a document or replace it, bumping its version.

        Returns:
            Tuple of (spec, created) where created is True if new
        """
        now = datetime.utcnow()
        spec = self.get(item_id)
        created = spec is None

        if spec is None:
            spec = PhoneSpec(
                namespace=self.namespace,
                item_id=item_id,
                created_at=now,
                version=1,
            )
            self.session.add(spec)
        else:
            spec.version += 1

        spec.name = document.get("name") or ""
        spec.brand = document.get("brand") or ""
        spec.url = document.get("url") or ""
        spec.image_url = document.get("image_url")
        spec.source = document.get("source") or "gsmarena"
        spec.document = {**document, "version": spec.version, "updated_at": now.isoformat()}
        spec.transport = transport
        spec.scraped_at = now
        spec.updated_at = now
        self.session.flush()
        return spec, created

    def count(self) -> int:
        stmt = select(func.count()).select_from(PhoneSpec).where(PhoneSpec.namespace == self.namespace)
        return int(self.session.execute(stmt).scalar_one())

    def count_by_brand(self, limit: int = 20) -> list[tuple[str, int]]:
        """Stored documents per brand, largest first."""
        stmt = (
            select(PhoneSpec.brand, func.count())
            .where(PhoneSpec.namespace == self.namespace)
            .group_by(PhoneSpec.brand)
            .order_by(func.count().desc())
            .limit(limit)
        )
        return [(brand, count) for brand, count in self.session.execute(stmt).all()]


# =============================================================================
# Run Repository
# =============================================================================


class RunRepository:
    """Repository for HarvestRun operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, namespace: str, run_type: str = "manual") -> HarvestRun:
        """Create a new harvest run."""
        run = HarvestRun(
            namespace=namespace,
            run_type=run_type,
            status="RUNNING",
            started_at=datetime.utcnow(),
        )
        self.session.add(run)
        self.session.flush()
        return run

    def get_by_id(self, run_id: int) -> HarvestRun | None:
        """Get run by ID."""
        return self.session.get(HarvestRun, run_id)

    def complete(
        self,
        run_id: int,
        report: dict[str, Any],
        status: str = "COMPLETED",
        error_message: str | None = None,
        error_traceback: str | None = None,
    ) -> None:
        """Record the terminal report of a run."""
        run = self.get_by_id(run_id)
        if not run:
            return

        run.status = status
        run.finished_at = datetime.utcnow()
        run.groups_processed = report.get("groups_processed", 0)
        run.groups_failed = report.get("groups_failed", 0)
        run.items_found = report.get("items_found", 0)
        run.items_saved = report.get("items_saved", 0)
        run.items_skipped = report.get("items_skipped", 0)
        run.items_failed = report.get("items_failed", 0)
        run.final_state = report.get("final_state")
        run.fallback_active = bool(report.get("fallback_active", False))
        run.keys_usable = report.get("keys_usable", 0)
        run.keys_total = report.get("keys_total", 0)
        run.report = report
        run.error_message = error_message
        run.error_traceback = error_traceback
        self.session.flush()

    def get_recent(self, namespace: str | None = None, limit: int = 10) -> Sequence[HarvestRun]:
        """Get recent runs."""
        stmt = select(HarvestRun)

        if namespace is not None:
            stmt = stmt.where(HarvestRun.namespace == namespace)

        stmt = stmt.order_by(HarvestRun.started_at.desc()).limit(limit)
        return self.session.execute(stmt).scalars().all()
