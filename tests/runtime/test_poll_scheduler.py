from __future__ import annotations

import asyncio
import logging

import pytest

from datacoin_indexer.app.application.services.dispatcher import EventDispatcher
from datacoin_indexer.app.application.services.poll_scheduler import PollScheduler
from datacoin_indexer.app.domain.models import BlockRange
from datacoin_indexer.app.infrastructure.fetchers.chunked_log_fetcher import ChunkedLogFetcher
from datacoin_indexer.app.infrastructure.fetchers.provider_pool import ProviderPool
from datacoin_indexer.app.observability import contained_error_counts
from tests.helpers.fakes import (
    FakeRpcClient,
    InMemoryCursorStore,
    RecordingAccessGranter,
    StaticRegistry,
)
from tests.helpers.logs import (
    MARKET,
    TOKEN_A,
    access_granted_log,
    dataset,
    transfer_log,
)


def _scheduler(
    decoder,
    *,
    client: FakeRpcClient,
    cursor_store: InMemoryCursorStore,
    registry: StaticRegistry | None = None,
    granter: RecordingAccessGranter | None = None,
    max_range: int = 10,
    max_chunks: int = 10,
    max_backfill: int = 100,
    confirmation_lag: int = 6,
    poll_interval: float = 60.0,
) -> PollScheduler:
    pool = ProviderPool([client])
    return PollScheduler(
        pool=pool,
        fetcher=ChunkedLogFetcher(pool=pool, max_range_per_call=max_range, inter_chunk_delay=0),
        cursor_store=cursor_store,
        registry=registry or StaticRegistry([dataset(TOKEN_A, marketplace=MARKET)]),
        decoder=decoder,
        dispatcher=EventDispatcher(decoder=decoder, access_granter=granter or RecordingAccessGranter()),
        max_range_per_call=max_range,
        max_chunks_per_tick=max_chunks,
        max_backfill_blocks=max_backfill,
        confirmation_lag=confirmation_lag,
        poll_interval=poll_interval,
    )


def _calls_for(client: FakeRpcClient, address: str) -> list[tuple[int, int]]:
    return [(c[2], c[3]) for c in client.get_logs_calls if c[1] == address]


@pytest.mark.asyncio
async def test_short_gap_single_fetch_per_contract_then_advance(decoder):
    client = FakeRpcClient(
        "https://rpc",
        head=105,
        logs=[transfer_log(TOKEN_A, block=103), access_granted_log(MARKET, block=104)],
    )
    store = InMemoryCursorStore(100)
    granter = RecordingAccessGranter()
    scheduler = _scheduler(
        decoder,
        client=client,
        cursor_store=store,
        granter=granter,
        max_chunks=100,
        max_backfill=1000,
    )

    report = await scheduler.run_tick()

    assert report.window == BlockRange(101, 105)
    assert _calls_for(client, TOKEN_A) == [(101, 105)]
    assert _calls_for(client, MARKET) == [(101, 105)]
    assert (report.cursor_before, report.cursor_after) == (100, 105)
    assert store.writes == [105]
    assert (report.events_decoded, report.grants_dispatched) == (2, 2)
    assert len(granter.grants) == 2


@pytest.mark.asyncio
async def test_token_contracts_are_read_before_marketplaces(decoder):
    client = FakeRpcClient("https://rpc", head=105)
    scheduler = _scheduler(decoder, client=client, cursor_store=InMemoryCursorStore(100))

    await scheduler.run_tick()

    assert [c[1] for c in client.get_logs_calls] == [TOKEN_A, MARKET]


@pytest.mark.asyncio
async def test_large_gap_skips_ahead_before_windowing(decoder, caplog):
    client = FakeRpcClient("https://rpc", head=10050)
    store = InMemoryCursorStore(0)
    scheduler = _scheduler(decoder, client=client, cursor_store=store, max_backfill=100)

    with caplog.at_level(logging.WARNING):
        report = await scheduler.run_tick()

    assert report.skipped_ahead_from == 0
    assert report.cursor_before == 0
    assert report.window == BlockRange(9951, 10050)
    assert _calls_for(client, TOKEN_A)[0] == (9951, 9960)
    assert len(_calls_for(client, TOKEN_A)) == 10
    assert report.cursor_after == 10050
    assert any("skipping ahead" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_cold_start_seeds_cursor_below_head(decoder):
    client = FakeRpcClient("https://rpc", head=1000)
    store = InMemoryCursorStore(None)
    scheduler = _scheduler(decoder, client=client, cursor_store=store, confirmation_lag=6)

    report = await scheduler.run_tick()

    assert store.writes == [994, 1000]
    assert report.window == BlockRange(995, 1000)


@pytest.mark.asyncio
async def test_cursor_zero_is_resumed_not_treated_as_missing(decoder):
    client = FakeRpcClient("https://rpc", head=20)
    store = InMemoryCursorStore(0)
    scheduler = _scheduler(decoder, client=client, cursor_store=store)

    report = await scheduler.run_tick()

    assert report.window == BlockRange(1, 20)


@pytest.mark.asyncio
async def test_head_failure_aborts_tick_without_moving_cursor(decoder):
    client = FakeRpcClient("https://rpc", head=105, error=ConnectionError("down"))
    store = InMemoryCursorStore(100)
    scheduler = _scheduler(decoder, client=client, cursor_store=store)

    report = await scheduler.run_tick()

    assert report.aborted
    assert store.writes == []
    assert client.get_logs_calls == []
    assert contained_error_counts()["indexer.head_unavailable"] == 1


@pytest.mark.asyncio
async def test_registry_failure_aborts_before_any_rpc(decoder):
    client = FakeRpcClient("https://rpc", head=105)
    scheduler = _scheduler(
        decoder,
        client=client,
        cursor_store=InMemoryCursorStore(100),
        registry=StaticRegistry(fail=True),
    )

    report = await scheduler.run_tick()

    assert report.aborted
    assert client.calls == []
    assert contained_error_counts()["indexer.registry_unavailable"] == 1


@pytest.mark.asyncio
async def test_partial_chunk_failure_still_advances_with_checkpoint_hint(decoder):
    client = FakeRpcClient(
        "https://rpc",
        head=35,
        logs=[transfer_log(TOKEN_A, block=25), transfer_log(TOKEN_A, block=33, log_index=1)],
        fail_ranges=[(21, 30)],
    )
    store = InMemoryCursorStore(0)
    scheduler = _scheduler(
        decoder,
        client=client,
        cursor_store=store,
        registry=StaticRegistry([dataset(TOKEN_A, marketplace=None)]),
    )

    report = await scheduler.run_tick()

    assert report.cursor_after == 35
    assert store.writes == [35]
    assert report.fallback_checkpoints == [30]
    assert report.failed_contracts == [TOKEN_A]
    assert report.grants_dispatched == 1


@pytest.mark.asyncio
async def test_contract_fetch_failure_is_contained(decoder):
    client = FakeRpcClient("https://rpc", head=105, fail_ranges=[(101, 105)])
    store = InMemoryCursorStore(100)
    scheduler = _scheduler(decoder, client=client, cursor_store=store)

    report = await scheduler.run_tick()

    assert report.cursor_after == 105
    assert report.failed_contracts == [TOKEN_A, MARKET]
    assert contained_error_counts()["indexer.contract_fetch_failed"] == 2


@pytest.mark.asyncio
async def test_cursor_write_failure_does_not_fail_tick(decoder):
    client = FakeRpcClient("https://rpc", head=105)
    store = InMemoryCursorStore(100, fail_on_set=True)
    scheduler = _scheduler(decoder, client=client, cursor_store=store)

    report = await scheduler.run_tick()

    assert report.cursor_after == 105
    assert scheduler.cursor == 105
    assert contained_error_counts()["indexer.cursor_persist_failed"] == 1


@pytest.mark.asyncio
async def test_no_new_blocks_persists_unchanged_cursor(decoder):
    client = FakeRpcClient("https://rpc", head=100)
    store = InMemoryCursorStore(100)
    scheduler = _scheduler(decoder, client=client, cursor_store=store)

    report = await scheduler.run_tick()

    assert report.window is None
    assert report.cursor_after == 100
    assert store.writes == [100]
    assert client.get_logs_calls == []


@pytest.mark.asyncio
async def test_cursor_never_moves_backwards(decoder):
    client = FakeRpcClient("https://rpc")
    store = InMemoryCursorStore(100)
    scheduler = _scheduler(decoder, client=client, cursor_store=store, max_chunks=3)

    for head in [105, 103, 150, 90, 400, 401]:
        client.head = head
        report = await scheduler.run_tick()
        assert report.cursor_after >= report.cursor_before
        if report.window is not None:
            assert report.window.width <= 10 * 3


@pytest.mark.asyncio
async def test_stop_before_fetch_leaves_cursor_in_place(decoder):
    client = FakeRpcClient("https://rpc", head=105)
    store = InMemoryCursorStore(100)
    scheduler = _scheduler(decoder, client=client, cursor_store=store)
    stop = asyncio.Event()
    stop.set()

    report = await scheduler.run_tick(stop)

    assert report.cancelled
    assert report.cursor_after == 100
    assert store.writes == []


@pytest.mark.asyncio
async def test_run_returns_once_stopped(decoder):
    client = FakeRpcClient("https://rpc", head=105)
    registry = StaticRegistry([dataset(TOKEN_A)])
    scheduler = _scheduler(
        decoder,
        client=client,
        cursor_store=InMemoryCursorStore(100),
        registry=registry,
        poll_interval=60.0,
    )
    stop = asyncio.Event()

    task = asyncio.create_task(scheduler.run(stop))
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert registry.calls == 1
    assert scheduler.cursor == 105
