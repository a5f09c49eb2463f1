"""
Store adapters used by the harvest runner.

Every write commits immediately so a crash never loses a completion
flag. Database errors are translated into PersistenceError; losing the
connection itself raises StoreUnavailableError, which ends the run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from .repo import CompletionRepository, SpecRepository

if TYPE_CHECKING:
    from specharvest.core.catalog.models import WorkItem

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PersistenceError(Exception):
    """A store operation failed; the affected item stays incomplete."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class StoreUnavailableError(PersistenceError):
    """The backing database is unreachable; the run cannot continue."""


def _run_write(session: Session, operation: str, func: Callable[[], T]) -> T:
    """Run a repository call and commit, translating database errors."""
    try:
        result = func()
        session.commit()
        return result
    except (OperationalError, DisconnectionError) as e:
        session.rollback()
        raise StoreUnavailableError(f"Database unavailable during {operation}: {e}", cause=e) from e
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"{operation} failed: {e}", cause=e) from e


class CompletionStore:
    """Persistent map of item id to completion flag for one namespace."""

    def __init__(self, session: Session, namespace: str):
        self.session = session
        self.namespace = namespace
        self.repo = CompletionRepository(session, namespace)

    def preload_complete(self) -> set[str]:
        """Bulk read of completed ids, once per run."""
        try:
            complete = self.repo.complete_ids()
        except (OperationalError, DisconnectionError) as e:
            raise StoreUnavailableError(f"Database unavailable during preload: {e}", cause=e) from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"preload failed: {e}", cause=e) from e

        logger.info(f"Preloaded {len(complete)} completed item(s) in '{self.namespace}'")
        return complete

    def upsert_pending(self, item: "WorkItem") -> None:
        """Record the item as touched but not complete."""
        _run_write(
            self.session,
            f"upsert_pending({item.id})",
            lambda: self.repo.upsert_pending(
                item.id,
                group_name=item.group,
                name=item.name,
                source_url=item.source_url,
                image_url=item.image_url,
            ),
        )

    def mark_complete(self, item_id: str) -> None:
        """Flip the item to complete after its document was stored."""
        _run_write(self.session, f"mark_complete({item_id})", lambda: self.repo.mark_complete(item_id))


class SpecStore:
    """Specification document storage."""

    def __init__(self, session: Session, namespace: str):
        self.session = session
        self.namespace = namespace
        self.repo = SpecRepository(session, namespace)

    def save(self, item: "WorkItem", document: dict[str, Any]) -> None:
        """Insert or replace the document for an item."""
        _run_write(
            self.session,
            f"save({item.id})",
            lambda: self.repo.upsert(item.id, document, transport=document.get("fetched_via")),
        )
