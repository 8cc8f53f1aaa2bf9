from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator


ZERO_ADDRESS = "0x" + "00" * 20


@dataclass(frozen=True)
class BlockRange:
    from_block: int
    to_block: int

    def validate(self) -> None:
        if self.from_block < 0 or self.to_block < 0:
            raise ValueError("Block numbers must be non-negative")
        if self.from_block > self.to_block:
            raise ValueError("from_block must be <= to_block")

    @property
    def width(self) -> int:
        return self.to_block - self.from_block + 1

    def split(self, max_width: int) -> Iterator["BlockRange"]:
        """
        Yield consecutive sub-ranges of at most ``max_width`` blocks.

        The last sub-range may be shorter. [1, 35] split by 10 gives
        [1, 10], [11, 20], [21, 30], [31, 35].
        """
        if max_width <= 0:
            raise ValueError("max_width must be positive")
        current = self.from_block
        while current <= self.to_block:
            end = min(current + max_width - 1, self.to_block)
            yield BlockRange(from_block=current, to_block=end)
            current = end + 1


@dataclass(frozen=True)
class ProviderEndpoint:
    url: str
    ordinal: int


@dataclass(frozen=True)
class RawLog:
    """
    Contract log as returned by eth_getLogs / a logs subscription.

    address is a lower-case 0x hex string, topics are raw 32-byte values.
    """

    address: str
    topics: tuple[bytes, ...]
    data: bytes
    block_number: int
    transaction_hash: bytes = b""
    log_index: int = 0

    @property
    def topic0(self) -> bytes | None:
        return self.topics[0] if self.topics else None


class ContractKind(str, Enum):
    TOKEN = "token"
    MARKETPLACE = "marketplace"


@dataclass(frozen=True)
class WatchedContract:
    address: str
    kind: ContractKind
    topic_set: tuple[bytes, ...]


@dataclass(frozen=True)
class DatasetRecord:
    """Registry view of a data coin. Owned by the registry; read-only here."""

    token_address: str
    symbol: str
    content_id: str
    marketplace_address: str | None = None
    creator: str | None = None
    total_supply: int | None = None
    description: str | None = None
    created_at: datetime | None = None
    name: str | None = None


@dataclass(frozen=True)
class AccessGrant:
    user: str
    symbol: str
    token_address: str
    amount: int
    download_url: str
    timestamp: datetime


@dataclass
class LogFetchResult:
    logs: list[RawLog] = field(default_factory=list)
    failed_ranges: list[BlockRange] = field(default_factory=list)
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return not self.failed_ranges and not self.cancelled

    @property
    def fallback_checkpoints(self) -> list[int]:
        return [r.to_block for r in self.failed_ranges]

    @property
    def fallback_checkpoint(self) -> int | None:
        # Lowest failed end block: everything up to the range before it was read.
        hints = self.fallback_checkpoints
        return min(hints) if hints else None


@dataclass
class TickReport:
    cursor_before: int | None
    cursor_after: int | None
    head: int | None = None
    window: BlockRange | None = None
    skipped_ahead_from: int | None = None
    events_decoded: int = 0
    grants_dispatched: int = 0
    fallback_checkpoints: list[int] = field(default_factory=list)
    failed_contracts: list[str] = field(default_factory=list)
    cancelled: bool = False
    aborted: bool = False
