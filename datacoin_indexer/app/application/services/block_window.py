from __future__ import annotations

from dataclasses import dataclass

from datacoin_indexer.app.domain.models import BlockRange


@dataclass(frozen=True)
class FetchWindow:
    """
    Blocks one tick will read: (cursor, window_end].

    cursor is the effective cursor after any skip-ahead; skipped_ahead_from
    holds the pre-skip value when a skip happened.
    """

    cursor: int
    window_end: int
    skipped_ahead_from: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.window_end <= self.cursor

    @property
    def block_range(self) -> BlockRange | None:
        if self.is_empty:
            return None
        return BlockRange(from_block=self.cursor + 1, to_block=self.window_end)


def initial_cursor(*, head: int, confirmation_lag: int) -> int:
    """Cold-start cursor: a few blocks below head, never genesis."""
    if confirmation_lag < 0:
        raise ValueError("confirmation_lag must be non-negative")
    return max(0, head - confirmation_lag)


def compute_fetch_window(
    *,
    cursor: int,
    head: int,
    max_range_per_call: int,
    max_chunks_per_tick: int,
    max_backfill_blocks: int,
) -> FetchWindow:
    """
    Bound what a single tick may read.

    - head - cursor > max_backfill_blocks: jump to head - max_backfill_blocks.
      Events older than that are never read; this caps catch-up after an
      outage in favour of provider quota.
    - window_end = min(head, cursor + max_range_per_call * max_chunks_per_tick).

    A head at or behind the cursor gives an empty window; the cursor is
    never moved backwards.
    """
    if cursor < 0 or head < 0:
        raise ValueError("Block numbers must be non-negative")
    if max_range_per_call <= 0 or max_chunks_per_tick <= 0:
        raise ValueError("max_range_per_call and max_chunks_per_tick must be positive")
    if max_backfill_blocks <= 0:
        raise ValueError("max_backfill_blocks must be positive")

    skipped_ahead_from: int | None = None
    if head - cursor > max_backfill_blocks:
        skipped_ahead_from = cursor
        cursor = head - max_backfill_blocks

    window_end = min(head, cursor + max_range_per_call * max_chunks_per_tick)
    return FetchWindow(
        cursor=cursor,
        window_end=window_end,
        skipped_ahead_from=skipped_ahead_from,
    )
