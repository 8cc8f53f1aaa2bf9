from __future__ import annotations

import asyncio
import logging
from typing import Callable, Mapping

from datacoin_indexer.app.application.services.dispatcher import DispatchStats, EventDispatcher
from datacoin_indexer.app.application.services.watch_targets import derive_watched_contracts
from datacoin_indexer.app.domain.models import DatasetRecord, RawLog, WatchedContract
from datacoin_indexer.app.domain.ports.out import (
    ChainEventSource,
    DatasetRegistry,
    EventDecoder,
    LogSubscriber,
)
from datacoin_indexer.app.observability import log_contained_error


logger = logging.getLogger(__name__)


class SubscriptionEventSource(ChainEventSource):
    """
    Push variant of the event source: one eth_subscribe("logs") per contract.

    The set of subscribed contracts belongs to this instance and is rebuilt
    from scratch on every (re)connect. The registry is re-read every
    refresh_interval seconds so new tokens and marketplaces get subscribed.
    Decoding and dispatch are shared with the poller.
    """

    def __init__(
        self,
        *,
        subscriber_factory: Callable[[], LogSubscriber],
        registry: DatasetRegistry,
        decoder: EventDecoder,
        dispatcher: EventDispatcher,
        refresh_interval: float = 20.0,
        reconnect_delay: float = 5.0,
    ) -> None:
        if refresh_interval <= 0:
            raise ValueError("refresh_interval must be positive")
        self._subscriber_factory = subscriber_factory
        self._registry = registry
        self._decoder = decoder
        self._dispatcher = dispatcher
        self._refresh_interval = refresh_interval
        self._reconnect_delay = reconnect_delay

        self._subscribed: dict[str, WatchedContract] = {}
        self._snapshot: Mapping[str, DatasetRecord] = {}

    @property
    def subscribed(self) -> dict[str, WatchedContract]:
        return dict(self._subscribed)

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info("Subscription source running: refresh=%ss", self._refresh_interval)
        while not stop_event.is_set():
            try:
                await self._run_session(stop_event)
            except Exception as exc:
                log_contained_error(
                    logger,
                    "subscription.connection_lost",
                    exc_info=True,
                    err_type=type(exc).__name__,
                    err=str(exc),
                )
            finally:
                self._subscribed.clear()

            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._reconnect_delay)
            except asyncio.TimeoutError:
                pass

        logger.info("Subscription source stopped")

    async def _run_session(self, stop_event: asyncio.Event) -> None:
        async with self._subscriber_factory() as subscriber:
            await self.refresh_subscriptions(subscriber)

            consumer = asyncio.create_task(self._consume(subscriber))
            refresher = asyncio.create_task(self._refresh_loop(subscriber, stop_event))
            stopper = asyncio.create_task(stop_event.wait())
            tasks = {consumer, refresher, stopper}
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task is not stopper and task.exception() is not None:
                        raise task.exception()  # type: ignore[misc]
                if consumer in done:
                    raise ConnectionError("log subscription stream ended")
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

    async def _consume(self, subscriber: LogSubscriber) -> None:
        async for raw_log in subscriber.stream():
            await self.handle_log(raw_log)

    async def _refresh_loop(self, subscriber: LogSubscriber, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._refresh_interval)
            except asyncio.TimeoutError:
                await self.refresh_subscriptions(subscriber)

    async def refresh_subscriptions(self, subscriber: LogSubscriber) -> list[WatchedContract]:
        """Subscribe contracts not seen yet. Returns the newly subscribed ones."""
        try:
            self._snapshot = await self._registry.get_all()
        except Exception as exc:
            log_contained_error(
                logger,
                "indexer.registry_unavailable",
                err_type=type(exc).__name__,
                err=str(exc),
            )
            return []

        tokens, marketplaces = derive_watched_contracts(self._snapshot, decoder=self._decoder)
        added: list[WatchedContract] = []
        for contract in [*tokens, *marketplaces]:
            if contract.address in self._subscribed:
                continue
            try:
                subscription_id = await subscriber.subscribe(
                    address=contract.address,
                    topics=contract.topic_set,
                )
            except Exception as exc:
                log_contained_error(
                    logger,
                    "subscription.subscribe_failed",
                    address=contract.address,
                    kind=contract.kind.value,
                    err_type=type(exc).__name__,
                    err=str(exc),
                )
                continue

            self._subscribed[contract.address] = contract
            added.append(contract)
            logger.info(
                "Subscribed to %s contract %s (subscription=%s)",
                contract.kind.value,
                contract.address,
                subscription_id,
            )
        return added

    async def handle_log(self, raw_log: RawLog) -> DispatchStats:
        if raw_log.address.lower() not in self._subscribed:
            logger.debug("Ignoring log from unsubscribed contract %s", raw_log.address)
            return DispatchStats()
        return await self._dispatcher.process_logs([raw_log], snapshot=self._snapshot)
