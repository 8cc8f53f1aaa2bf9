from __future__ import annotations

import asyncio
from typing import AsyncIterator, Mapping, Protocol, Sequence

from datacoin_indexer.app.domain.events import DomainEvent
from datacoin_indexer.app.domain.models import (
    AccessGrant,
    ContractKind,
    DatasetRecord,
    LogFetchResult,
    RawLog,
)


class ChainRpcClient(Protocol):
    """
    Port for a single JSON-RPC endpoint.

    Implementations issue eth_blockNumber / eth_getLogs and raise on any
    transport or provider error; failover is the pool's job, not theirs.
    """

    url: str

    async def block_number(self) -> int:
        ...

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[bytes],
    ) -> list[RawLog]:
        ...


class LogSource(Protocol):
    """Anything that can serve head + logs (the provider pool)."""

    async def head(self) -> int:
        ...

    async def logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[bytes],
    ) -> list[RawLog]:
        ...


class LogFetcher(Protocol):
    async def fetch(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[bytes],
        stop_event: asyncio.Event | None = None,
    ) -> LogFetchResult:
        ...


class BlockCursorStore(Protocol):
    """
    Port for the durable "last fully attempted block" checkpoint.

    set() must be atomic: a crash mid-write leaves either the old or the
    new value on disk, never a partial record.
    """

    def get(self) -> int | None:
        ...

    def set(self, block_number: int) -> None:
        ...


class DatasetRegistry(Protocol):
    """
    Read side of the dataset registry.

    get_all() keys are lower-case token addresses.
    """

    async def get_all(self) -> Mapping[str, DatasetRecord]:
        ...

    async def get_by_token_address(self, token_address: str) -> DatasetRecord | None:
        ...


class AccessLog(Protocol):
    async def save_access(self, grant: AccessGrant) -> None:
        ...

    async def find_access(self, *, user: str, symbol: str) -> AccessGrant | None:
        ...


class DownloadUrlSigner(Protocol):
    def sign_download_url(self, content_id: str, user_address: str) -> str:
        ...


class AccessGranter(Protocol):
    """
    Issues time-boxed download URLs and persists access records.

    save_access is idempotent on (user, symbol).
    """

    def sign_download_url(self, content_id: str, user_address: str) -> str:
        ...

    async def save_access(self, grant: AccessGrant) -> None:
        ...


class EventDecoder(Protocol):
    def decode(self, topic0: bytes | None, raw_log: RawLog) -> DomainEvent | None:
        """
        Return:
          - DomainEvent for a recognised, well-formed log
          - None for unknown topics or logs that do not fit the event ABI
        """
        ...

    def topics_for(self, kind: ContractKind) -> tuple[bytes, ...]:
        ...


class LogSubscriber(Protocol):
    """
    Push-based log feed (eth_subscribe "logs").

    Used as an async context manager around the connection lifetime.
    """

    async def __aenter__(self) -> "LogSubscriber":
        ...

    async def __aexit__(self, *exc_info: object) -> None:
        ...

    async def subscribe(self, *, address: str, topics: Sequence[bytes]) -> str:
        ...

    def stream(self) -> AsyncIterator[RawLog]:
        ...


class ChainEventSource(Protocol):
    """
    Transport-agnostic event source: polling or subscriptions.

    run() returns only once stop_event is set.
    """

    async def run(self, stop_event: asyncio.Event) -> None:
        ...
