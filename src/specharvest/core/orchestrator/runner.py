"""
Harvest run coordinator.

Coordinates the full workflow: list brands → list phones → skip completed
→ dispatch through the alternator → parse → persist → mark complete.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, Sequence

from specharvest.core.catalog.models import Brand, WorkItem
from specharvest.core.catalog.specs import SpecParseError, parse_phone_document
from specharvest.core.config.models import HarvestConfig, RunStatus, TransportMode
from specharvest.core.fetch.keys import KeyPool
from specharvest.core.logging import get_contextual_logger
from specharvest.core.transports.base import TransportError
from specharvest.persistence.store import PersistenceError, StoreUnavailableError

from .alternator import AlternatorState, BatchAlternator, DispatchOutcome

if TYPE_CHECKING:
    from specharvest.core.config.models import AppConfig


logger = logging.getLogger(__name__)


# =============================================================================
# Collaborator Interfaces
# =============================================================================


class WorkLister(Protocol):
    """Ordered brands and the ordered phones of each."""

    async def list_groups(self) -> Sequence[Brand]: ...

    async def list_items(self, brand: Brand, limit: int | None = None) -> Sequence[WorkItem]: ...


class CompletionStoreLike(Protocol):
    def preload_complete(self) -> set[str]: ...

    def upsert_pending(self, item: WorkItem) -> None: ...

    def mark_complete(self, item_id: str) -> None: ...


class SpecStoreLike(Protocol):
    def save(self, item: WorkItem, document: dict[str, Any]) -> None: ...


ItemParser = Callable[[WorkItem, str], dict[str, Any]]


# =============================================================================
# Statistics
# =============================================================================


@dataclass
class RunStats:
    """Statistics for a harvest run."""

    groups_processed: int = 0
    groups_failed: int = 0
    items_found: int = 0
    items_saved: int = 0
    items_skipped: int = 0
    items_failed: int = 0

    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: datetime | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "groups_processed": self.groups_processed,
            "groups_failed": self.groups_failed,
            "items_found": self.items_found,
            "items_saved": self.items_saved,
            "items_skipped": self.items_skipped,
            "items_failed": self.items_failed,
            "errors_count": len(self.errors),
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class RunReport:
    """Terminal report of a run."""

    stats: RunStats
    final_state: AlternatorState
    fallback_active: bool
    keys_usable: int
    keys_total: int
    dispatch_counts: dict[TransportMode, int]
    keys: list[dict[str, Any]] = field(default_factory=list)
    aborted: bool = False
    error: str | None = None

    @property
    def status(self) -> RunStatus:
        return RunStatus.ABORTED if self.aborted else RunStatus.COMPLETED

    @property
    def exit_code(self) -> int:
        return 1 if self.aborted else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.stats.to_dict(),
            "final_state": self.final_state.value,
            "fallback_active": self.fallback_active,
            "keys_usable": self.keys_usable,
            "keys_total": self.keys_total,
            "dispatch_counts": {mode.value: count for mode, count in self.dispatch_counts.items()},
            "keys": self.keys,
            "aborted": self.aborted,
            "error": self.error,
            "errors": self.stats.errors[-20:],
        }


# =============================================================================
# Runner
# =============================================================================


class HarvestRunner:
    """Drives one harvest over every listed brand.

    Items are handled strictly one after another. An item is marked
    complete only after its document was saved; anything that fails
    before that leaves it pending for the next run.
    """

    def __init__(
        self,
        config: HarvestConfig,
        lister: WorkLister,
        alternator: BatchAlternator,
        completion_store: CompletionStoreLike,
        spec_store: SpecStoreLike,
        *,
        key_pool: KeyPool | None = None,
        parser: ItemParser | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        run_id: int | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Harvest settings (limits, skip policy, brand delay)
            lister: Brand/phone enumeration
            alternator: Transport selection for each item
            completion_store: Completion flags
            spec_store: Document storage
            key_pool: Pool to summarize in the report (default: the alternator's)
            parser: Turns a fetched page into a document
            sleep: Async sleep used for the brand delay
            run_id: Run record id, for log context
        """
        self.config = config
        self.lister = lister
        self.alternator = alternator
        self.completion_store = completion_store
        self.spec_store = spec_store
        self.key_pool = key_pool if key_pool is not None else alternator.pool
        self.parser = parser or parse_phone_document
        self._sleep = sleep
        self.log = get_contextual_logger("runner", run_id=run_id)

        self.stats = RunStats()
        self._complete: set[str] = set()

    async def run(self) -> RunReport:
        """Execute a complete harvest run."""
        self.stats = RunStats()
        aborted = False
        error: str | None = None

        try:
            self._complete = self.completion_store.preload_complete() if self.config.skip_existing else set()

            groups = list(await self.lister.list_groups())
            if self.config.max_groups is not None:
                groups = groups[: self.config.max_groups]

            for index, group in enumerate(groups):
                if index > 0 and self.config.group_delay_ms > 0:
                    await self._sleep(self.config.group_delay_ms / 1000.0)
                await self._process_group(group)

        except StoreUnavailableError as e:
            aborted = True
            error = str(e)
            self.stats.errors.append(error)
            self.log.error(f"Completion store unavailable, aborting run: {e}")

        except (TransportError, SpecParseError) as e:
            aborted = True
            error = f"Brand index unavailable: {e}"
            self.stats.errors.append(error)
            self.log.error(error)

        finally:
            self.stats.finished_at = datetime.utcnow()

        report = self._build_report(aborted, error)
        self.log.info(
            f"Run {'aborted' if aborted else 'finished'}: {self.stats.items_saved} saved, "
            f"{self.stats.items_skipped} skipped, {self.stats.items_failed} failed; "
            f"state={report.final_state.value}, keys {report.keys_usable}/{report.keys_total} usable"
        )
        return report

    async def _process_group(self, group: Brand) -> None:
        log = self.log.bind(group=group.name)

        try:
            items = await self.lister.list_items(group, limit=self.config.max_items_per_group)
        except (TransportError, SpecParseError) as e:
            self.stats.groups_failed += 1
            self.stats.errors.append(f"{group.name}: {e}")
            log.warning(f"Could not list phones for {group.name}: {e}")
            return

        self.stats.groups_processed += 1
        log.info(f"Processing {group.name}: {len(items)} phone(s)")

        for item in items:
            self.stats.items_found += 1

            if item.id in self._complete:
                self.stats.items_skipped += 1
                log.debug(f"Skipping {item.id}: already complete")
                continue

            await self._process_item(item, log)

    def _fail(self, item: WorkItem, message: str, log: logging.LoggerAdapter) -> None:
        self.stats.items_failed += 1
        self.stats.errors.append(f"{item.id}: {message}")
        log.warning(f"{item.id} failed: {message}", extra={"item_id": item.id, "url": item.source_url})

    async def _process_item(self, item: WorkItem, log: logging.LoggerAdapter) -> None:
        try:
            self.completion_store.upsert_pending(item)
        except StoreUnavailableError:
            raise
        except PersistenceError as e:
            self._fail(item, str(e), log)
            return

        outcome: DispatchOutcome = await self.alternator.dispatch(item)
        if not outcome.ok or outcome.result is None:
            self._fail(item, f"{outcome.transport.value}: {outcome.error}", log)
            return

        try:
            document = self.parser(item, outcome.result.html)
            document["fetched_via"] = outcome.transport.value
            self.spec_store.save(item, document)
            self.completion_store.mark_complete(item.id)
        except StoreUnavailableError:
            raise
        except (SpecParseError, PersistenceError) as e:
            self._fail(item, str(e), log)
            return

        self._complete.add(item.id)
        self.stats.items_saved += 1
        log.info(
            f"Saved {item.id} via {outcome.transport.value}",
            extra={"item_id": item.id, "transport": outcome.transport.value},
        )

    def _build_report(self, aborted: bool, error: str | None) -> RunReport:
        return RunReport(
            stats=self.stats,
            final_state=self.alternator.state,
            fallback_active=self.alternator.fallback_active,
            keys_usable=self.key_pool.usable_count,
            keys_total=len(self.key_pool),
            dispatch_counts=dict(self.alternator.dispatch_counts),
            keys=self.key_pool.snapshot(),
            aborted=aborted,
            error=error,
        )


# =============================================================================
# Convenience Entry Point
# =============================================================================


async def run_harvest(
    app_config: "AppConfig",
    *,
    run_type: str = "manual",
) -> RunReport:
    """Build every collaborator from configuration and run once.

    Holds the namespace run lock for the duration and records a
    HarvestRun row with the terminal report.

    Raises:
        ConfigurationError: If the key pool cannot be built
        RunLockedError: If another run holds the namespace lock
    """
    from specharvest.core.catalog.listing import CatalogLister
    from specharvest.core.fetch.throttling import RequestThrottle
    from specharvest.core.scheduler.locks import LockManager, default_holder_id, harvest_lock_name
    from specharvest.core.transports.direct import DirectTransport
    from specharvest.core.transports.proxied import ProxiedTransport
    from specharvest.persistence.db import get_sync_session, init_db
    from specharvest.persistence.repo import RunRepository
    from specharvest.persistence.store import CompletionStore, SpecStore

    harvest = app_config.harvest
    pool = KeyPool.initialize(harvest.api_keys, required=harvest.require_proxy)

    init_db(app_config.database.url, echo=app_config.database.echo)
    session = get_sync_session()
    locks = LockManager(session)

    try:
        stale = locks.cleanup_expired()
        if stale:
            logger.info(f"Removed {stale} expired run lock(s)")

        with locks.hold(
            harvest_lock_name(harvest.namespace),
            default_holder_id(),
            ttl_minutes=app_config.schedule.max_runtime_minutes,
        ):
            runs = RunRepository(session)
            run_db = runs.create(harvest.namespace, run_type=run_type)
            session.commit()

            throttle = RequestThrottle(harvest.direct_delay_ms)
            direct = DirectTransport(
                throttle,
                timeout=app_config.direct.timeout_seconds,
                max_attempts=app_config.direct.max_attempts,
                user_agent=app_config.direct.user_agent,
            )
            proxied = ProxiedTransport(pool, app_config.proxy)

            runner = HarvestRunner(
                harvest,
                CatalogLister(direct, app_config.catalog),
                BatchAlternator(direct, proxied, pool, batch_size=harvest.batch_size),
                CompletionStore(session, harvest.namespace),
                SpecStore(session, harvest.namespace),
                key_pool=pool,
                parser=functools.partial(parse_phone_document, source=app_config.catalog.source),
                run_id=run_db.id,
            )

            try:
                report = await runner.run()
            except Exception as e:
                session.rollback()
                runs.complete(
                    run_db.id,
                    runner.stats.to_dict(),
                    status=RunStatus.FAILED.value,
                    error_message=str(e),
                    error_traceback=traceback.format_exc(),
                )
                session.commit()
                raise
            finally:
                await direct.close()
                await proxied.close()

            try:
                runs.complete(run_db.id, report.to_dict(), status=report.status.value, error_message=report.error)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("Could not record run result")

            return report
    finally:
        session.close()
