from __future__ import annotations

import asyncio
import logging
from typing import Mapping

from datacoin_indexer.app.application.services.block_window import (
    compute_fetch_window,
    initial_cursor,
)
from datacoin_indexer.app.application.services.dispatcher import EventDispatcher
from datacoin_indexer.app.application.services.watch_targets import derive_watched_contracts
from datacoin_indexer.app.domain.errors import CursorStoreError
from datacoin_indexer.app.domain.models import (
    BlockRange,
    DatasetRecord,
    TickReport,
    WatchedContract,
)
from datacoin_indexer.app.domain.ports.out import (
    BlockCursorStore,
    ChainEventSource,
    DatasetRegistry,
    EventDecoder,
    LogFetcher,
    LogSource,
)
from datacoin_indexer.app.observability import log_contained_error


logger = logging.getLogger(__name__)


class PollScheduler(ChainEventSource):
    """
    Fixed-delay eth_getLogs poller.

    One tick:
      registry snapshot -> head -> [skip-ahead] -> token logs -> decode/dispatch
      -> marketplace logs -> decode/dispatch -> advance + persist cursor

    The cursor advances to the window end even when some sub-ranges failed
    (at-least-once, failed ranges are reported as fallback checkpoints).
    Ticks never overlap: the next one starts poll_interval seconds after the
    previous one finished. This instance is the only writer of the cursor.
    """

    def __init__(
        self,
        *,
        pool: LogSource,
        fetcher: LogFetcher,
        cursor_store: BlockCursorStore,
        registry: DatasetRegistry,
        decoder: EventDecoder,
        dispatcher: EventDispatcher,
        max_range_per_call: int = 10,
        max_chunks_per_tick: int = 10,
        max_backfill_blocks: int = 100,
        confirmation_lag: int = 6,
        poll_interval: float = 60.0,
    ) -> None:
        if poll_interval < 0:
            raise ValueError("poll_interval must be non-negative")
        self._pool = pool
        self._fetcher = fetcher
        self._cursor_store = cursor_store
        self._registry = registry
        self._decoder = decoder
        self._dispatcher = dispatcher
        self._max_range_per_call = max_range_per_call
        self._max_chunks_per_tick = max_chunks_per_tick
        self._max_backfill_blocks = max_backfill_blocks
        self._confirmation_lag = confirmation_lag
        self._poll_interval = poll_interval

        self._cursor: int | None = None
        self._cursor_loaded = False

    @property
    def cursor(self) -> int | None:
        return self._cursor

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info(
            "Poll scheduler running: interval=%ss, max_range=%s, max_chunks=%s, max_backfill=%s",
            self._poll_interval,
            self._max_range_per_call,
            self._max_chunks_per_tick,
            self._max_backfill_blocks,
        )
        while not stop_event.is_set():
            try:
                await self.run_tick(stop_event)
            except Exception as exc:
                log_contained_error(
                    logger,
                    "indexer.tick_failed",
                    exc_info=True,
                    err_type=type(exc).__name__,
                    err=str(exc),
                )

            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Poll scheduler stopped at cursor=%s", self._cursor)

    async def run_tick(self, stop_event: asyncio.Event | None = None) -> TickReport:
        report = TickReport(cursor_before=self._cursor, cursor_after=self._cursor)

        # 1) registry snapshot, once per tick
        try:
            snapshot = await self._registry.get_all()
        except Exception as exc:
            log_contained_error(
                logger,
                "indexer.registry_unavailable",
                err_type=type(exc).__name__,
                err=str(exc),
            )
            report.aborted = True
            return report

        # 2) chain head; nothing can be done without it
        try:
            head = await self._pool.head()
        except Exception as exc:
            log_contained_error(
                logger,
                "indexer.head_unavailable",
                err_type=type(exc).__name__,
                err=str(exc),
            )
            report.aborted = True
            return report
        report.head = head

        cursor = self._ensure_cursor(head)
        report.cursor_before = cursor

        # 3-5) skip-ahead + bounded window
        window = compute_fetch_window(
            cursor=cursor,
            head=head,
            max_range_per_call=self._max_range_per_call,
            max_chunks_per_tick=self._max_chunks_per_tick,
            max_backfill_blocks=self._max_backfill_blocks,
        )
        if window.skipped_ahead_from is not None:
            logger.warning(
                "Block gap %s exceeds max backfill %s; skipping ahead %s -> %s (older events are not indexed)",
                head - window.skipped_ahead_from,
                self._max_backfill_blocks,
                window.skipped_ahead_from,
                window.cursor,
            )
            report.skipped_ahead_from = window.skipped_ahead_from
            self._cursor = window.cursor

        block_range = window.block_range
        if block_range is None:
            logger.debug("No new blocks: cursor=%s head=%s", window.cursor, head)
            self._persist_cursor(window.cursor)
            report.cursor_after = window.cursor
            return report
        report.window = block_range

        tokens, marketplaces = derive_watched_contracts(snapshot, decoder=self._decoder)

        # 6-7) token contracts first, then marketplaces
        for contract in [*tokens, *marketplaces]:
            if stop_event is not None and stop_event.is_set():
                report.cancelled = True
                break
            completed = await self._process_contract(
                contract,
                block_range=block_range,
                snapshot=snapshot,
                report=report,
                stop_event=stop_event,
            )
            if not completed:
                report.cancelled = True
                break

        if report.cancelled:
            # Window is re-read on restart; cursor stays put.
            logger.info(
                "Tick interrupted by stop request; cursor stays at %s",
                self._cursor,
            )
            report.cursor_after = self._cursor
            return report

        # 8) advance unconditionally
        self._cursor = block_range.to_block
        self._persist_cursor(block_range.to_block)
        report.cursor_after = block_range.to_block

        if report.fallback_checkpoints:
            logger.warning(
                "Cursor advanced to %s with incomplete ranges; fallback checkpoints=%s",
                block_range.to_block,
                sorted(set(report.fallback_checkpoints)),
            )

        logger.info(
            "Tick done: blocks=[%s, %s] head=%s tokens=%s marketplaces=%s events=%s grants=%s",
            block_range.from_block,
            block_range.to_block,
            head,
            len(tokens),
            len(marketplaces),
            report.events_decoded,
            report.grants_dispatched,
        )
        return report

    async def _process_contract(
        self,
        contract: WatchedContract,
        *,
        block_range: BlockRange,
        snapshot: Mapping[str, DatasetRecord],
        report: TickReport,
        stop_event: asyncio.Event | None,
    ) -> bool:
        """Fetch + dispatch one contract. Returns False when a stop interrupted it."""
        try:
            result = await self._fetcher.fetch(
                address=contract.address,
                from_block=block_range.from_block,
                to_block=block_range.to_block,
                topics=contract.topic_set,
                stop_event=stop_event,
            )
        except Exception as exc:
            log_contained_error(
                logger,
                "indexer.contract_fetch_failed",
                address=contract.address,
                kind=contract.kind.value,
                from_block=block_range.from_block,
                to_block=block_range.to_block,
                err_type=type(exc).__name__,
                err=str(exc),
            )
            report.failed_contracts.append(contract.address)
            report.fallback_checkpoints.append(block_range.to_block)
            return True

        if result.cancelled:
            return False

        if result.failed_ranges:
            report.failed_contracts.append(contract.address)
            report.fallback_checkpoints.extend(result.fallback_checkpoints)

        stats = await self._dispatcher.process_logs(result.logs, snapshot=snapshot)
        report.events_decoded += stats.decoded
        report.grants_dispatched += stats.grants
        return True

    def _ensure_cursor(self, head: int) -> int:
        if not self._cursor_loaded:
            self._cursor = self._cursor_store.get()
            self._cursor_loaded = True
            if self._cursor is not None:
                logger.info("Resuming from cursor %s", self._cursor)

        if self._cursor is None:
            self._cursor = initial_cursor(head=head, confirmation_lag=self._confirmation_lag)
            logger.info(
                "No cursor found; starting at head %s - %s = %s",
                head,
                self._confirmation_lag,
                self._cursor,
            )
            self._persist_cursor(self._cursor)

        return self._cursor

    def _persist_cursor(self, block_number: int) -> None:
        try:
            self._cursor_store.set(block_number)
        except CursorStoreError as exc:
            log_contained_error(
                logger,
                "indexer.cursor_persist_failed",
                block_number=block_number,
                err=str(exc),
            )
