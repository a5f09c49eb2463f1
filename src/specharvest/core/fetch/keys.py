"""
Proxy API key pool.

Holds the ordered credentials for the proxied transport and tracks which
of them are exhausted. Rotation means "advance past exhausted keys", not
load balancing: the first usable key in configured order is always used.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Sequence

from specharvest.core.config.loader import ConfigurationError
from specharvest.core.config.models import split_api_keys

logger = logging.getLogger(__name__)


class FailureReason(str, Enum):
    """Why a key stopped being usable."""

    RATE_LIMITED = "RATE_LIMITED"
    FORBIDDEN = "FORBIDDEN"
    NETWORK_ERROR = "NETWORK_ERROR"
    NONE = "NONE"


def mask_key(key: str) -> str:
    """Render a key safely for logs and reports."""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


@dataclass
class KeyRecord:
    """One credential and its exhaustion state."""

    key: str
    exhausted: bool = False
    last_failure_reason: FailureReason = FailureReason.NONE

    @property
    def masked(self) -> str:
        return mask_key(self.key)

    def __repr__(self) -> str:
        return (
            f"<KeyRecord(key='{self.masked}', exhausted={self.exhausted}, "
            f"reason={self.last_failure_reason.value})>"
        )


class KeyPool:
    """Single mutable pool shared by every item of one run."""

    def __init__(self, records: Sequence[KeyRecord] | None = None):
        self._records: list[KeyRecord] = list(records or [])

    @classmethod
    def initialize(
        cls,
        raw_keys: str | Sequence[str] | None,
        *,
        required: bool = False,
    ) -> "KeyPool":
        """Build a pool from a comma-separated list or a sequence of keys.

        Raises:
            ConfigurationError: If no key remains and the proxy is required
        """
        keys = split_api_keys(raw_keys)
        if not keys and required:
            raise ConfigurationError(
                "Proxied transport is required but no API keys are configured "
                "(set SCRAPINGBEE_API_KEYS or harvest.api_keys)"
            )

        pool = cls([KeyRecord(key=key) for key in keys])
        logger.info("Loaded %d proxy API key(s)", len(pool))
        return pool

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[KeyRecord]:
        return iter(self._records)

    def _find(self, key: str | KeyRecord) -> KeyRecord | None:
        if isinstance(key, KeyRecord):
            return key if any(r is key for r in self._records) else None
        for record in self._records:
            if record.key == key:
                return record
        return None

    def next_usable_key(self) -> KeyRecord | None:
        """Return the first non-exhausted key in configured order."""
        for record in self._records:
            if not record.exhausted:
                return record
        return None

    def mark_exhausted(self, key: str | KeyRecord, reason: FailureReason) -> None:
        """Flag a key as exhausted. Idempotent: the first reason is kept."""
        record = self._find(key)
        if record is None:
            raise KeyError("key is not part of this pool")
        if record.exhausted:
            return

        record.exhausted = True
        record.last_failure_reason = reason
        logger.warning(
            "API key %s exhausted (%s); %d of %d usable",
            record.masked,
            reason.value,
            self.usable_count,
            len(self._records),
        )

    def all_exhausted(self) -> bool:
        """True iff every key is exhausted (vacuously true when empty)."""
        return all(record.exhausted for record in self._records)

    @property
    def usable_count(self) -> int:
        return sum(1 for record in self._records if not record.exhausted)

    def snapshot(self) -> list[dict[str, Any]]:
        """Masked view of the pool for reports."""
        return [
            {
                "key": record.masked,
                "exhausted": record.exhausted,
                "reason": record.last_failure_reason.value,
            }
            for record in self._records
        ]
