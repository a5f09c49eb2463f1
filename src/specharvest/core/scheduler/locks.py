"""
Per-namespace run locks.

At most one harvest may work a completion namespace at a time. The lock
is a ``RunLock`` row with an expiry: a holder that crashes stops
blocking others once its TTL passes.
"""

from __future__ import annotations

import logging
import os
import socket
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from specharvest.persistence.models import RunLock

logger = logging.getLogger(__name__)


DEFAULT_TTL_MINUTES = 120


class RunLockedError(Exception):
    """Another process holds the lock for this namespace."""

    def __init__(self, lock_name: str, holder_id: str | None = None):
        detail = f" by {holder_id}" if holder_id else ""
        super().__init__(f"Lock '{lock_name}' is held{detail}")
        self.lock_name = lock_name
        self.holder_id = holder_id


def harvest_lock_name(namespace: str) -> str:
    return f"harvest:{namespace}"


def default_holder_id() -> str:
    """``host:pid`` of this process."""
    return f"{socket.gethostname()}:{os.getpid()}"


def _live(lock: RunLock | None, now: datetime) -> bool:
    return lock is not None and lock.expires_at > now


class LockManager:
    """Takes and releases RunLock rows; every change is committed."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _row(self, lock_name: str) -> RunLock | None:
        return self._session.execute(
            select(RunLock).where(RunLock.lock_name == lock_name)
        ).scalar_one_or_none()

    def acquire(self, lock_name: str, holder_id: str, ttl_minutes: int = DEFAULT_TTL_MINUTES) -> bool:
        """Take or renew the lock.

        Returns:
            False if another holder has an unexpired lock
        """
        now = datetime.utcnow()
        row = self._row(lock_name)

        if _live(row, now) and row.holder_id != holder_id:
            return False

        if row is None:
            row = RunLock(lock_name=lock_name)
            self._session.add(row)
        elif row.holder_id != holder_id:
            logger.info(f"Taking over expired lock {lock_name} from {row.holder_id}")

        row.holder_id = holder_id
        row.acquired_at = now
        row.expires_at = now + timedelta(minutes=ttl_minutes)
        self._session.commit()
        return True

    def release(self, lock_name: str, holder_id: str) -> bool:
        """Drop the lock if ``holder_id`` owns it."""
        row = self._row(lock_name)
        if row is None or row.holder_id != holder_id:
            return False
        self._session.delete(row)
        self._session.commit()
        return True

    @contextmanager
    def hold(
        self,
        lock_name: str,
        holder_id: str,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
    ) -> Iterator[None]:
        """Hold the lock for the duration of the block.

        Raises:
            RunLockedError: If another holder has it
        """
        if not self.acquire(lock_name, holder_id, ttl_minutes=ttl_minutes):
            raise RunLockedError(lock_name, self.holder(lock_name))
        try:
            yield
        finally:
            try:
                self.release(lock_name, holder_id)
            except Exception:
                self._session.rollback()
                logger.exception(f"Could not release lock {lock_name}")

    def holder(self, lock_name: str) -> str | None:
        """Holder of the lock, or None when free or expired."""
        row = self._row(lock_name)
        return row.holder_id if _live(row, datetime.utcnow()) else None

    def is_locked(self, lock_name: str) -> bool:
        return self.holder(lock_name) is not None

    def cleanup_expired(self) -> int:
        """Delete expired rows; returns how many went."""
        result = self._session.execute(delete(RunLock).where(RunLock.expires_at <= datetime.utcnow()))
        self._session.commit()
        return int(result.rowcount or 0)
