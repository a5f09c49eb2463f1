from __future__ import annotations

from typing import Any, Callable

import pytest
from sqlalchemy.orm import sessionmaker

from specharvest.core.catalog.models import Brand, WorkItem
from specharvest.core.config.models import TransportMode
from specharvest.core.fetch.keys import FailureReason, KeyPool
from specharvest.core.transports.base import (
    BlockedError,
    FetchResult,
    KeyExhaustedError,
    NetworkError,
    Transport,
)
from specharvest.persistence.db import create_db_engine
from specharvest.persistence.models import Base


SPEC_PAGE_HTML = """
<html><body>
<h1 class="specs-phone-name-title">Acme Phone 1</h1>
<div id="specs-list">
  <table>
    <tr><th rowspan="2">Network</th><td class="ttl">Technology</td><td class="nfo">GSM / LTE</td></tr>
    <tr><td class="ttl">2G bands</td><td class="nfo">GSM 900</td></tr>
  </table>
  <table>
    <tr><th rowspan="2">Main Camera</th><td class="ttl">Triple</td><td class="nfo">50 MP, wide</td></tr>
    <tr><td class="ttl">&nbsp;</td><td class="nfo">12 MP, ultrawide</td></tr>
    <tr><td class="ttl">Video</td><td class="nfo">4K@30fps</td></tr>
  </table>
  <table>
    <tr><th>Battery</th><td class="ttl">Type</td><td class="nfo">Li-Ion 5000 mAh</td></tr>
  </table>
</div>
</body></html>
"""


def make_item(index: int, group: str = "Acme") -> WorkItem:
    return WorkItem(
        id=f"acme_phone_{index}-{1000 + index}",
        group=group,
        source_url=f"https://catalog.test/acme_phone_{index}-{1000 + index}.php",
        name=f"Acme Phone {index}",
    )


class ScriptedTransport(Transport):
    """Direct-style fake: records every URL and answers from a handler.

    URLs in ``failing_urls`` raise BlockedError, as a refused direct
    request does once its local retries are spent.
    """

    def __init__(
        self,
        mode: TransportMode = TransportMode.DIRECT,
        handler: Callable[[str], str] | None = None,
        failing_urls: set[str] | None = None,
    ):
        self._mode = mode
        self.handler = handler or (lambda url: SPEC_PAGE_HTML)
        self.failing_urls = failing_urls or set()
        self.calls: list[str] = []

    @property
    def mode(self) -> TransportMode:
        return self._mode

    async def fetch_url(self, url: str) -> FetchResult:
        self.calls.append(url)
        if url in self.failing_urls:
            raise BlockedError("refused", url=url, status_code=429)
        html = self.handler(url)
        return FetchResult(url=url, status_code=200, html=html, transport=self._mode)


class FakeProxiedTransport(Transport):
    """Proxied fake consulting a real KeyPool.

    Keys listed in ``exhausted_keys`` are rejected (and marked) on use;
    URLs in ``failing_urls`` raise NetworkError without touching keys.
    """

    def __init__(
        self,
        pool: KeyPool,
        exhausted_keys: set[str] | None = None,
        failing_urls: set[str] | None = None,
    ):
        self.pool = pool
        self.exhausted_keys = exhausted_keys or set()
        self.failing_urls = failing_urls or set()
        self.calls: list[tuple[str, str]] = []

    @property
    def mode(self) -> TransportMode:
        return TransportMode.PROXIED

    async def fetch_url(self, url: str) -> FetchResult:
        record = self.pool.next_usable_key()
        if record is None:
            raise KeyExhaustedError("no usable key", url=url)

        self.calls.append((record.key, url))
        if record.key in self.exhausted_keys:
            self.pool.mark_exhausted(record, FailureReason.RATE_LIMITED)
            raise KeyExhaustedError("rate limited", url=url, status_code=429, key=record.masked)
        if url in self.failing_urls:
            raise NetworkError("boom", url=url, status_code=500)
        return FetchResult(
            url=url,
            status_code=200,
            html=SPEC_PAGE_HTML,
            transport=TransportMode.PROXIED,
            key=record.masked,
        )


class FakeLister:
    """Lister over an in-memory {brand: [items]} mapping."""

    def __init__(self, groups: dict[str, list[WorkItem]], failing_groups: set[str] | None = None):
        self.groups = groups
        self.failing_groups = failing_groups or set()

    async def list_groups(self) -> list[Brand]:
        return [Brand(name=name, slug=name.lower()) for name in self.groups]

    async def list_items(self, brand: Brand, limit: int | None = None) -> list[WorkItem]:
        if brand.name in self.failing_groups:
            raise NetworkError(f"cannot list {brand.name}")
        items = self.groups[brand.name]
        return items[:limit] if limit is not None else list(items)


class MemoryCompletionStore:
    """Completion store recording every call in order."""

    def __init__(self, complete: set[str] | None = None):
        self.records: dict[str, bool] = {item_id: True for item_id in (complete or set())}
        self.events: list[tuple[str, str]] = []
        self.preloads = 0

    def preload_complete(self) -> set[str]:
        self.preloads += 1
        return {item_id for item_id, done in self.records.items() if done}

    def upsert_pending(self, item: WorkItem) -> None:
        self.events.append(("pending", item.id))
        self.records[item.id] = False

    def mark_complete(self, item_id: str) -> None:
        self.events.append(("complete", item_id))
        self.records[item_id] = True


class MemorySpecStore:
    def __init__(self, fail_on: set[str] | None = None, error: Exception | None = None):
        self.saved: dict[str, dict[str, Any]] = {}
        self.fail_on = fail_on or set()
        self.error = error

    def save(self, item: WorkItem, document: dict[str, Any]) -> None:
        if item.id in self.fail_on:
            raise self.error or RuntimeError("save failed")
        self.saved[item.id] = document


@pytest.fixture
def spec_html() -> str:
    return SPEC_PAGE_HTML


@pytest.fixture
def db_session():
    """Session bound to a fresh in-memory SQLite database."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
