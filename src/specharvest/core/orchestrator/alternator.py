"""
Batch alternator.

Decides which transport serves each item. Items are served in fixed-size
batches that alternate between the direct and proxied transports; once
every proxy key is exhausted the alternator drops permanently into a
direct-only fallback for the rest of the run.

State machine:

    state                  BATCH_COMPLETE         KEYS_EXHAUSTED
    DIRECT                 PROXIED                DIRECT_ONLY_FALLBACK
    PROXIED                DIRECT                 DIRECT_ONLY_FALLBACK
    DIRECT_ONLY_FALLBACK   DIRECT_ONLY_FALLBACK   DIRECT_ONLY_FALLBACK
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from specharvest.core.catalog.models import WorkItem
from specharvest.core.config.models import TransportMode
from specharvest.core.fetch.keys import KeyPool
from specharvest.core.transports.base import (
    FetchResult,
    KeyExhaustedError,
    Transport,
    TransportError,
)

logger = logging.getLogger(__name__)


DEFAULT_BATCH_SIZE = 10


# =============================================================================
# State Machine
# =============================================================================


class AlternatorState(str, Enum):
    """Which transport the next dispatch uses."""

    DIRECT = "DIRECT"
    PROXIED = "PROXIED"
    DIRECT_ONLY_FALLBACK = "DIRECT_ONLY_FALLBACK"


class AlternatorEvent(str, Enum):
    """Events that move the alternator between states."""

    BATCH_COMPLETE = "BATCH_COMPLETE"
    KEYS_EXHAUSTED = "KEYS_EXHAUSTED"


TRANSITIONS: dict[tuple[AlternatorState, AlternatorEvent], AlternatorState] = {
    (AlternatorState.DIRECT, AlternatorEvent.BATCH_COMPLETE): AlternatorState.PROXIED,
    (AlternatorState.DIRECT, AlternatorEvent.KEYS_EXHAUSTED): AlternatorState.DIRECT_ONLY_FALLBACK,
    (AlternatorState.PROXIED, AlternatorEvent.BATCH_COMPLETE): AlternatorState.DIRECT,
    (AlternatorState.PROXIED, AlternatorEvent.KEYS_EXHAUSTED): AlternatorState.DIRECT_ONLY_FALLBACK,
    (AlternatorState.DIRECT_ONLY_FALLBACK, AlternatorEvent.BATCH_COMPLETE): AlternatorState.DIRECT_ONLY_FALLBACK,
    (AlternatorState.DIRECT_ONLY_FALLBACK, AlternatorEvent.KEYS_EXHAUSTED): AlternatorState.DIRECT_ONLY_FALLBACK,
}


def next_state(state: AlternatorState, event: AlternatorEvent) -> AlternatorState:
    """Look up a transition."""
    return TRANSITIONS[(state, event)]


@dataclass
class BatchCursor:
    """Position in the alternation pattern. Never persisted.

    Attributes:
        batch_size: Items per transport before switching
        state: Current state
        position: Number of items dispatched so far
        mode_remaining: Slots left in the current batch
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    state: AlternatorState = AlternatorState.DIRECT
    position: int = 0
    mode_remaining: int = field(init=False)

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.mode_remaining = self.batch_size

    @property
    def in_fallback(self) -> bool:
        return self.state is AlternatorState.DIRECT_ONLY_FALLBACK

    def fire(self, event: AlternatorEvent) -> AlternatorState:
        """Apply an event and reset the batch counter on a state change."""
        new_state = next_state(self.state, event)
        if new_state is not self.state:
            self.state = new_state
            self.mode_remaining = self.batch_size
        return self.state

    def advance(self, proxy_available: bool = True) -> AlternatorState:
        """Consume one slot after a dispatch.

        Args:
            proxy_available: False when the key pool is exhausted, so a
                flip into PROXIED resolves to the fallback instead

        Returns:
            State for the next dispatch
        """
        self.position += 1
        if self.in_fallback:
            return self.state

        self.mode_remaining -= 1
        if self.mode_remaining > 0:
            return self.state

        upcoming = next_state(self.state, AlternatorEvent.BATCH_COMPLETE)
        if upcoming is AlternatorState.PROXIED and not proxy_available:
            return self.fall_back()
        self.state = upcoming
        self.mode_remaining = self.batch_size
        return self.state

    def fall_back(self) -> AlternatorState:
        return self.fire(AlternatorEvent.KEYS_EXHAUSTED)


# =============================================================================
# Dispatch
# =============================================================================


class DispatchStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass
class DispatchOutcome:
    """Result of serving one item."""

    item: WorkItem
    status: DispatchStatus
    transport: TransportMode
    result: FetchResult | None = None
    error: TransportError | None = None

    # True when this item triggered the switch to direct-only
    fell_back: bool = False

    # Fetch attempts made for the item, discarded proxied attempts included
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item.id,
            "status": self.status.value,
            "transport": self.transport.value,
            "fell_back": self.fell_back,
            "attempts": self.attempts,
            "error": str(self.error) if self.error else None,
        }


class BatchAlternator:
    """Serves items one at a time, alternating transports in batches.

    Usage:
        alternator = BatchAlternator(direct, proxied, pool, batch_size=10)
        outcome = await alternator.dispatch(item)
    """

    def __init__(
        self,
        direct: Transport,
        proxied: Transport,
        pool: KeyPool,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.direct = direct
        self.proxied = proxied
        self.pool = pool
        self.cursor = BatchCursor(batch_size=batch_size)

        self.dispatch_counts: dict[TransportMode, int] = {mode: 0 for mode in TransportMode}
        self.discarded_proxied_attempts = 0

        if pool.all_exhausted():
            self.cursor.fall_back()
            logger.info("No usable proxy key; running direct-only")

    @property
    def state(self) -> AlternatorState:
        return self.cursor.state

    @property
    def fallback_active(self) -> bool:
        return self.cursor.in_fallback

    def _enter_fallback(self, item: WorkItem) -> None:
        self.cursor.fall_back()
        logger.warning(
            f"All {len(self.pool)} proxy key(s) exhausted at item {item.id}; "
            "switching to direct-only for the rest of the run"
        )

    async def _fetch_direct(self, item: WorkItem, attempts: int, fell_back: bool) -> DispatchOutcome:
        try:
            result = await self.direct.fetch(item)
        except TransportError as e:
            return DispatchOutcome(
                item=item,
                status=DispatchStatus.FAILED,
                transport=TransportMode.DIRECT,
                error=e,
                fell_back=fell_back,
                attempts=attempts,
            )
        return DispatchOutcome(
            item=item,
            status=DispatchStatus.SUCCESS,
            transport=TransportMode.DIRECT,
            result=result,
            fell_back=fell_back,
            attempts=attempts,
        )

    async def _fetch_proxied(self, item: WorkItem) -> tuple[DispatchOutcome | None, int]:
        """Try the proxied transport, rotating keys on exhaustion.

        Returns:
            (outcome, attempts); outcome is None when the pool ran dry and
            the item must be re-dispatched directly
        """
        attempts = 0
        last_error: KeyExhaustedError | None = None

        # Each KeyExhaustedError retires a key, so len(pool) + 1 bounds the loop
        for _ in range(len(self.pool) + 1):
            attempts += 1
            try:
                result = await self.proxied.fetch(item)
            except KeyExhaustedError as e:
                last_error = e
                self.discarded_proxied_attempts += 1
                if self.pool.all_exhausted():
                    return None, attempts
                logger.info(f"Rotating proxy key for {item.id}: {e}")
                continue
            except TransportError as e:
                return (
                    DispatchOutcome(
                        item=item,
                        status=DispatchStatus.FAILED,
                        transport=TransportMode.PROXIED,
                        error=e,
                        attempts=attempts,
                    ),
                    attempts,
                )
            return (
                DispatchOutcome(
                    item=item,
                    status=DispatchStatus.SUCCESS,
                    transport=TransportMode.PROXIED,
                    result=result,
                    attempts=attempts,
                ),
                attempts,
            )

        # Transport kept reporting exhaustion without retiring keys
        return (
            DispatchOutcome(
                item=item,
                status=DispatchStatus.FAILED,
                transport=TransportMode.PROXIED,
                error=last_error,
                attempts=attempts,
            ),
            attempts,
        )

    async def dispatch(self, item: WorkItem) -> DispatchOutcome:
        """Serve one item with the transport the pattern selects."""
        outcome: DispatchOutcome | None = None
        attempts = 0
        fell_back = False

        if self.cursor.state is AlternatorState.PROXIED:
            outcome, attempts = await self._fetch_proxied(item)
            if outcome is None:
                self._enter_fallback(item)
                fell_back = True

        if outcome is None:
            outcome = await self._fetch_direct(item, attempts + 1, fell_back)

        self.dispatch_counts[outcome.transport] += 1
        self.cursor.advance(proxy_available=not self.pool.all_exhausted())
        return outcome

    def summary(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "position": self.cursor.position,
            "fallback_active": self.fallback_active,
            "dispatch_counts": {mode.value: count for mode, count in self.dispatch_counts.items()},
            "discarded_proxied_attempts": self.discarded_proxied_attempts,
        }
