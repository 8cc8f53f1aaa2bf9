from __future__ import annotations

import asyncio

import pytest

from datacoin_indexer.app.application.services.dispatcher import EventDispatcher
from datacoin_indexer.app.application.services.subscription_source import SubscriptionEventSource
from datacoin_indexer.app.domain.models import ContractKind
from datacoin_indexer.app.observability import contained_error_counts
from tests.helpers.fakes import FakeLogSubscriber, RecordingAccessGranter, StaticRegistry
from tests.helpers.logs import MARKET, TOKEN_A, TOKEN_B, dataset, transfer_log


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def _source(decoder, subscriber, registry, granter, **kwargs) -> SubscriptionEventSource:
    return SubscriptionEventSource(
        subscriber_factory=lambda: subscriber,
        registry=registry,
        decoder=decoder,
        dispatcher=EventDispatcher(decoder=decoder, access_granter=granter),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_refresh_subscribes_each_contract_once(decoder):
    registry = StaticRegistry([dataset(TOKEN_A, marketplace=MARKET)])
    subscriber = FakeLogSubscriber()
    source = _source(decoder, subscriber, registry, RecordingAccessGranter())

    first = await source.refresh_subscriptions(subscriber)
    registry.records[TOKEN_B] = dataset(TOKEN_B, symbol="RAIN", marketplace=MARKET)
    second = await source.refresh_subscriptions(subscriber)

    assert [(c.address, c.kind) for c in first] == [
        (TOKEN_A, ContractKind.TOKEN),
        (MARKET, ContractKind.MARKETPLACE),
    ]
    assert [c.address for c in second] == [TOKEN_B]
    assert [addr for addr, _ in subscriber.subscriptions] == [TOKEN_A, MARKET, TOKEN_B]
    assert subscriber.subscriptions[0][1] == decoder.topics_for(ContractKind.TOKEN)


@pytest.mark.asyncio
async def test_failed_subscribe_is_retried_on_next_refresh(decoder):
    registry = StaticRegistry([dataset(TOKEN_A, marketplace=None)])
    subscriber = FakeLogSubscriber(fail_subscribe_for=[TOKEN_A])
    source = _source(decoder, subscriber, registry, RecordingAccessGranter())

    assert await source.refresh_subscriptions(subscriber) == []
    assert contained_error_counts()["subscription.subscribe_failed"] == 1

    subscriber.fail_subscribe_for.clear()
    added = await source.refresh_subscriptions(subscriber)

    assert [c.address for c in added] == [TOKEN_A]


@pytest.mark.asyncio
async def test_logs_from_unsubscribed_contracts_are_ignored(decoder):
    registry = StaticRegistry([dataset(TOKEN_A, marketplace=None), dataset(TOKEN_B, symbol="RAIN", marketplace=None)])
    subscriber = FakeLogSubscriber(fail_subscribe_for=[TOKEN_B])
    granter = RecordingAccessGranter()
    source = _source(decoder, subscriber, registry, granter)
    await source.refresh_subscriptions(subscriber)

    ignored = await source.handle_log(transfer_log(TOKEN_B))
    handled = await source.handle_log(transfer_log(TOKEN_A))

    assert (ignored.decoded, handled.grants) == (0, 1)
    assert [g.symbol for g in granter.grants] == ["WTHR"]


@pytest.mark.asyncio
async def test_run_dispatches_pushed_logs_and_stops(decoder):
    registry = StaticRegistry([dataset(TOKEN_A, marketplace=None)])
    subscriber = FakeLogSubscriber()
    granter = RecordingAccessGranter()
    source = _source(decoder, subscriber, registry, granter, refresh_interval=60.0)
    stop = asyncio.Event()

    task = asyncio.create_task(source.run(stop))
    await _wait_until(lambda: subscriber.subscriptions)
    subscriber.feed(transfer_log(TOKEN_A))
    await _wait_until(lambda: granter.grants)
    stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert granter.grants[0].token_address == TOKEN_A
    assert subscriber.exited == 1
    assert source.subscribed == {}


@pytest.mark.asyncio
async def test_dropped_stream_reconnects_and_resubscribes(decoder):
    registry = StaticRegistry([dataset(TOKEN_A, marketplace=None)])
    subscriber = FakeLogSubscriber()
    source = _source(
        decoder,
        subscriber,
        registry,
        RecordingAccessGranter(),
        refresh_interval=60.0,
        reconnect_delay=0.01,
    )
    stop = asyncio.Event()

    task = asyncio.create_task(source.run(stop))
    await _wait_until(lambda: len(subscriber.subscriptions) == 1)
    subscriber.close()
    await _wait_until(lambda: len(subscriber.subscriptions) == 2)
    stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert subscriber.entered == 2
    assert contained_error_counts()["subscription.connection_lost"] == 1


def test_refresh_interval_must_be_positive(decoder):
    with pytest.raises(ValueError):
        _source(decoder, FakeLogSubscriber(), StaticRegistry(), RecordingAccessGranter(), refresh_interval=0)
