from __future__ import annotations

import pytest

from specharvest.core.config.models import TransportMode
from specharvest.core.fetch.keys import KeyPool
from specharvest.core.orchestrator.alternator import (
    AlternatorEvent,
    AlternatorState,
    BatchAlternator,
    BatchCursor,
    DispatchStatus,
    next_state,
)
from specharvest.core.transports.base import BlockedError

from conftest import FakeProxiedTransport, ScriptedTransport, make_item


def _alternator(pool: KeyPool, batch_size: int, direct_failing: set[str] | None = None, **proxied_kwargs):
    direct = ScriptedTransport(failing_urls=direct_failing)
    proxied = FakeProxiedTransport(pool, **proxied_kwargs)
    return BatchAlternator(direct, proxied, pool, batch_size=batch_size), direct, proxied


async def _serve(alternator: BatchAlternator, count: int):
    return [await alternator.dispatch(make_item(i)) for i in range(count)]


# =============================================================================
# Cursor
# =============================================================================


def test_transition_table_fallback_is_absorbing():
    for event in AlternatorEvent:
        assert next_state(AlternatorState.DIRECT_ONLY_FALLBACK, event) is AlternatorState.DIRECT_ONLY_FALLBACK
    assert next_state(AlternatorState.DIRECT, AlternatorEvent.BATCH_COMPLETE) is AlternatorState.PROXIED
    assert next_state(AlternatorState.PROXIED, AlternatorEvent.BATCH_COMPLETE) is AlternatorState.DIRECT


def test_cursor_alternates_in_batches():
    cursor = BatchCursor(batch_size=3)
    states = []
    for _ in range(12):
        states.append(cursor.state)
        cursor.advance()

    expected = [AlternatorState.DIRECT] * 3 + [AlternatorState.PROXIED] * 3
    assert states == expected * 2
    assert cursor.position == 12


def test_cursor_batch_size_one_alternates_every_item():
    cursor = BatchCursor(batch_size=1)
    states = []
    for _ in range(4):
        states.append(cursor.state)
        cursor.advance()
    assert states == [
        AlternatorState.DIRECT,
        AlternatorState.PROXIED,
        AlternatorState.DIRECT,
        AlternatorState.PROXIED,
    ]


def test_cursor_flip_without_proxy_resolves_to_fallback():
    cursor = BatchCursor(batch_size=1)
    assert cursor.advance(proxy_available=False) is AlternatorState.DIRECT_ONLY_FALLBACK
    assert cursor.advance() is AlternatorState.DIRECT_ONLY_FALLBACK


def test_cursor_rejects_zero_batch():
    with pytest.raises(ValueError):
        BatchCursor(batch_size=0)


# =============================================================================
# Dispatch
# =============================================================================


@pytest.mark.asyncio
async def test_healthy_pool_follows_2n_pattern():
    pool = KeyPool.initialize("key-a-000000,key-b-000000")
    alternator, direct, proxied = _alternator(pool, batch_size=2)

    outcomes = await _serve(alternator, 8)

    assert [o.transport for o in outcomes] == [
        TransportMode.DIRECT,
        TransportMode.DIRECT,
        TransportMode.PROXIED,
        TransportMode.PROXIED,
    ] * 2
    assert all(o.ok for o in outcomes)
    assert len(direct.calls) == 4
    assert len(proxied.calls) == 4
    assert alternator.dispatch_counts == {TransportMode.DIRECT: 4, TransportMode.PROXIED: 4}


@pytest.mark.asyncio
async def test_single_key_exhausted_on_first_use_falls_back():
    pool = KeyPool.initialize("only-key-0000")
    alternator, direct, proxied = _alternator(pool, batch_size=2, exhausted_keys={"only-key-0000"})

    outcomes = await _serve(alternator, 5)

    assert [o.transport for o in outcomes] == [TransportMode.DIRECT] * 5
    assert all(o.ok for o in outcomes)
    assert [o.fell_back for o in outcomes] == [False, False, True, False, False]
    assert outcomes[2].attempts == 2

    # The proxied attempt for item 2 was discarded, never reported as the serving transport
    assert len(proxied.calls) == 1
    assert proxied.calls[0][1] == make_item(2).source_url
    assert alternator.discarded_proxied_attempts == 1
    assert alternator.fallback_active is True
    assert alternator.state is AlternatorState.DIRECT_ONLY_FALLBACK


@pytest.mark.asyncio
async def test_rotation_to_next_key_within_one_item():
    pool = KeyPool.initialize("first-key-0000,second-key-000")
    alternator, _, proxied = _alternator(pool, batch_size=1, exhausted_keys={"first-key-0000"})

    outcomes = await _serve(alternator, 2)

    assert outcomes[1].transport is TransportMode.PROXIED
    assert outcomes[1].ok
    assert outcomes[1].attempts == 2
    assert outcomes[1].result.key == "seco...-000"
    assert [key for key, _ in proxied.calls] == ["first-key-0000", "second-key-000"]
    assert alternator.fallback_active is False


@pytest.mark.asyncio
async def test_empty_pool_never_touches_proxied():
    pool = KeyPool.initialize("")
    alternator, direct, proxied = _alternator(pool, batch_size=1)

    assert alternator.fallback_active is True
    outcomes = await _serve(alternator, 4)

    assert [o.transport for o in outcomes] == [TransportMode.DIRECT] * 4
    assert proxied.calls == []
    assert not any(o.fell_back for o in outcomes)


@pytest.mark.asyncio
async def test_fallback_is_monotonic():
    pool = KeyPool.initialize("k-one-000000,k-two-000000")
    alternator, _, proxied = _alternator(
        pool,
        batch_size=1,
        exhausted_keys={"k-one-000000", "k-two-000000"},
    )

    outcomes = await _serve(alternator, 10)

    states_after = alternator.state
    assert states_after is AlternatorState.DIRECT_ONLY_FALLBACK
    assert sum(o.fell_back for o in outcomes) == 1
    assert len(proxied.calls) == 2
    assert all(o.transport is TransportMode.DIRECT for o in outcomes)


@pytest.mark.asyncio
async def test_proxied_network_failure_fails_item_without_direct_retry():
    pool = KeyPool.initialize("key-a-000000")
    item = make_item(1)
    alternator, direct, _ = _alternator(pool, batch_size=1, failing_urls={item.source_url})

    await alternator.dispatch(make_item(0))
    outcome = await alternator.dispatch(item)

    assert outcome.status is DispatchStatus.FAILED
    assert outcome.transport is TransportMode.PROXIED
    assert outcome.error is not None
    assert direct.calls == [make_item(0).source_url]
    assert pool.all_exhausted() is False


@pytest.mark.asyncio
async def test_blocked_direct_item_fails_without_proxied_retry():
    pool = KeyPool.initialize("key-a-000000")
    blocked = make_item(0)
    alternator, direct, proxied = _alternator(pool, batch_size=2, direct_failing={blocked.source_url})

    outcome = await alternator.dispatch(blocked)

    assert outcome.status is DispatchStatus.FAILED
    assert outcome.transport is TransportMode.DIRECT
    assert isinstance(outcome.error, BlockedError)
    assert outcome.attempts == 1
    assert direct.calls == [blocked.source_url]
    assert proxied.calls == []

    # The failed item still occupies its slot in the pattern
    rest = [await alternator.dispatch(make_item(i)) for i in range(1, 4)]
    assert [o.transport for o in rest] == [TransportMode.DIRECT, TransportMode.PROXIED, TransportMode.PROXIED]
    assert all(o.ok for o in rest)


@pytest.mark.asyncio
async def test_failed_direct_redispatch_after_fallback_is_one_failure():
    pool = KeyPool.initialize("only-key-0000")
    item = make_item(1)
    alternator, direct, proxied = _alternator(
        pool,
        batch_size=1,
        direct_failing={item.source_url},
        exhausted_keys={"only-key-0000"},
    )

    await alternator.dispatch(make_item(0))
    outcome = await alternator.dispatch(item)

    assert outcome.status is DispatchStatus.FAILED
    assert outcome.transport is TransportMode.DIRECT
    assert outcome.fell_back is True
    assert outcome.attempts == 2
    assert isinstance(outcome.error, BlockedError)
    assert proxied.calls == [("only-key-0000", item.source_url)]
    assert direct.calls == [make_item(0).source_url, item.source_url]
    assert alternator.dispatch_counts == {TransportMode.DIRECT: 2, TransportMode.PROXIED: 0}
    assert alternator.state is AlternatorState.DIRECT_ONLY_FALLBACK


@pytest.mark.asyncio
async def test_summary_reports_counts():
    pool = KeyPool.initialize("key-a-000000")
    alternator, _, _ = _alternator(pool, batch_size=1)
    await _serve(alternator, 3)

    summary = alternator.summary()
    assert summary["position"] == 3
    assert summary["dispatch_counts"] == {"direct": 2, "proxied": 1}
    assert summary["fallback_active"] is False
