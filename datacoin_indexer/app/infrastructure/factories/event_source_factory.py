from __future__ import annotations

from typing import Callable, Dict

from datacoin_indexer.app.application.services.dispatcher import EventDispatcher
from datacoin_indexer.app.application.services.poll_scheduler import PollScheduler
from datacoin_indexer.app.application.services.subscription_source import (
    SubscriptionEventSource,
)
from datacoin_indexer.app.config import Settings
from datacoin_indexer.app.domain.errors import UnsupportedBackendError
from datacoin_indexer.app.domain.ports.out import (
    AccessGranter,
    ChainEventSource,
    DatasetRegistry,
    EventDecoder,
)
from datacoin_indexer.app.infrastructure.adapters.cursor.json_file_cursor_store import (
    JsonFileCursorStore,
)
from datacoin_indexer.app.infrastructure.decoders.datacoin.event_decoder import (
    DataCoinEventDecoder,
)
from datacoin_indexer.app.infrastructure.factories.provider_pool_factory import (
    provider_pool_factory,
)
from datacoin_indexer.app.infrastructure.fetchers.chunked_log_fetcher import ChunkedLogFetcher
from datacoin_indexer.app.infrastructure.fetchers.web3_log_subscriber import Web3LogSubscriber


EventSourceFactory = Callable[
    [Settings, DatasetRegistry, EventDecoder, EventDispatcher],
    ChainEventSource,
]


def make_poll_scheduler(
    settings: Settings,
    registry: DatasetRegistry,
    decoder: EventDecoder,
    dispatcher: EventDispatcher,
) -> PollScheduler:
    """
    Wire the polling source:
    - provider pool over RPC_URLS (ordered failover),
    - chunked fetcher honouring MAX_BLOCK_RANGE / INTER_CHUNK_DELAY_SECONDS,
    - JSON cursor file,
    - scheduler limits from settings.
    """
    pool = provider_pool_factory(
        rpc_urls=settings.rpc_urls,
        attempt_timeout=settings.rpc_attempt_timeout_seconds,
    )
    fetcher = ChunkedLogFetcher(
        pool=pool,
        max_range_per_call=settings.max_block_range,
        inter_chunk_delay=settings.inter_chunk_delay_seconds,
    )
    return PollScheduler(
        pool=pool,
        fetcher=fetcher,
        cursor_store=JsonFileCursorStore(settings.cursor_file),
        registry=registry,
        decoder=decoder,
        dispatcher=dispatcher,
        max_range_per_call=settings.max_block_range,
        max_chunks_per_tick=settings.max_chunks_per_tick,
        max_backfill_blocks=settings.max_backfill_blocks,
        confirmation_lag=settings.confirmation_lag,
        poll_interval=settings.poll_interval_seconds,
    )


def _make_subscription_source(
    settings: Settings,
    registry: DatasetRegistry,
    decoder: EventDecoder,
    dispatcher: EventDispatcher,
) -> SubscriptionEventSource:
    ws_url = settings.ws_rpc_url
    if not ws_url:
        raise ValueError("EVENT_SOURCE=subscribe requires WS_RPC_URL")
    return SubscriptionEventSource(
        subscriber_factory=lambda: Web3LogSubscriber(ws_url=ws_url),
        registry=registry,
        decoder=decoder,
        dispatcher=dispatcher,
        refresh_interval=settings.subscription_refresh_seconds,
    )


_EVENT_SOURCE_REGISTRY: Dict[str, EventSourceFactory] = {
    "poll": make_poll_scheduler,
    "subscribe": _make_subscription_source,
}


def event_source_factory(
    *,
    backend: str,
    settings: Settings,
    registry: DatasetRegistry,
    access_granter: AccessGranter,
) -> ChainEventSource:
    """
    Create the chain event source selected by EVENT_SOURCE ("poll" | "subscribe").

    Both share one decoder and one dispatcher, so handling does not depend
    on the transport.
    """
    try:
        factory = _EVENT_SOURCE_REGISTRY[backend]
    except KeyError:
        raise UnsupportedBackendError(f"Unsupported event source: {backend!r}")

    decoder = DataCoinEventDecoder()
    dispatcher = EventDispatcher(decoder=decoder, access_granter=access_granter)
    return factory(settings, registry, decoder, dispatcher)
