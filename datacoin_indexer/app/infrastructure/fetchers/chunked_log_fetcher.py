from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Final, Sequence

from datacoin_indexer.app.domain.errors import AllProvidersFailedError
from datacoin_indexer.app.domain.models import BlockRange, LogFetchResult
from datacoin_indexer.app.domain.ports.out import LogFetcher, LogSource
from datacoin_indexer.app.observability import log_contained_error


logger = logging.getLogger(__name__)

_DEFAULT_MAX_RANGE_PER_CALL: Final[int] = 10
_DEFAULT_INTER_CHUNK_DELAY: Final[float] = 1.0

Sleep = Callable[[float], Awaitable[None]]


class ChunkedLogFetcher(LogFetcher):
    """
    eth_getLogs over arbitrary block spans, within provider range limits.

    Strategy:
    - span <= max_range_per_call: one pool call, failure propagates.
    - otherwise: consecutive sub-ranges of max_range_per_call blocks,
      fetched one after another with a fixed delay in between. A sub-range
      that fails on every endpoint is recorded (its end block becomes a
      fallback checkpoint hint) and skipped; the batch never aborts.

    Sub-ranges are sequential on purpose: the shared RPC quota is the
    bottleneck, not CPU.
    """

    def __init__(
        self,
        *,
        pool: LogSource,
        max_range_per_call: int = _DEFAULT_MAX_RANGE_PER_CALL,
        inter_chunk_delay: float = _DEFAULT_INTER_CHUNK_DELAY,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_range_per_call <= 0:
            raise ValueError("max_range_per_call must be positive")
        if inter_chunk_delay < 0:
            raise ValueError("inter_chunk_delay must be non-negative")
        self._pool = pool
        self._max_range_per_call = max_range_per_call
        self._inter_chunk_delay = inter_chunk_delay
        self._sleep = sleep

    @property
    def max_range_per_call(self) -> int:
        return self._max_range_per_call

    async def fetch(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[bytes],
        stop_event: asyncio.Event | None = None,
    ) -> LogFetchResult:
        block_range = BlockRange(from_block=from_block, to_block=to_block)
        block_range.validate()

        if block_range.width <= self._max_range_per_call:
            logs = await self._pool.logs(
                address=address,
                from_block=from_block,
                to_block=to_block,
                topics=topics,
            )
            return LogFetchResult(logs=list(logs))

        result = LogFetchResult()
        chunks = list(block_range.split(self._max_range_per_call))

        logger.debug(
            "Fetching logs in chunks: address=%s, blocks=[%s, %s], chunks=%s",
            address,
            from_block,
            to_block,
            len(chunks),
        )

        for idx, chunk in enumerate(chunks):
            if idx > 0 and self._inter_chunk_delay > 0:
                await self._sleep(self._inter_chunk_delay)

            if stop_event is not None and stop_event.is_set():
                result.cancelled = True
                logger.info(
                    "Stop requested; abandoning log fetch at blocks=[%s, %s] for %s",
                    chunk.from_block,
                    to_block,
                    address,
                )
                break

            try:
                logs = await self._pool.logs(
                    address=address,
                    from_block=chunk.from_block,
                    to_block=chunk.to_block,
                    topics=topics,
                )
            except AllProvidersFailedError as exc:
                result.failed_ranges.append(chunk)
                log_contained_error(
                    logger,
                    "fetcher.chunk_failed",
                    address=address,
                    from_block=chunk.from_block,
                    to_block=chunk.to_block,
                    fallback_checkpoint=chunk.to_block,
                    err=str(exc),
                )
                continue

            result.logs.extend(logs)

        if result.failed_ranges:
            logger.warning(
                "Incomplete log fetch for %s over [%s, %s]: %s/%s chunks failed",
                address,
                from_block,
                to_block,
                len(result.failed_ranges),
                len(chunks),
            )

        return result
