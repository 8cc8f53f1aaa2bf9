from __future__ import annotations

import asyncio
from typing import AsyncIterator, Mapping, Sequence

from datacoin_indexer.app.domain.errors import CursorStoreError
from datacoin_indexer.app.domain.models import AccessGrant, DatasetRecord, RawLog


class FakeRpcClient:
    """
    In-memory ChainRpcClient.

    Serves ``logs`` filtered by address / block range / topic0 and records
    every call as ("block_number",) or ("get_logs", address, from, to).
    """

    def __init__(
        self,
        url: str,
        *,
        head: int = 0,
        logs: Sequence[RawLog] = (),
        error: BaseException | None = None,
        fail_ranges: Sequence[tuple[int, int]] = (),
        delay: float = 0.0,
    ) -> None:
        self.url = url
        self.head = head
        self.logs = list(logs)
        self.error = error
        self.fail_ranges = set(fail_ranges)
        self.delay = delay
        self.calls: list[tuple] = []

    async def block_number(self) -> int:
        self.calls.append(("block_number",))
        await self._maybe_fail()
        return self.head

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[bytes],
    ) -> list[RawLog]:
        self.calls.append(("get_logs", address, from_block, to_block))
        await self._maybe_fail()
        if (from_block, to_block) in self.fail_ranges:
            raise ConnectionError(f"{self.url} refused [{from_block}, {to_block}]")
        wanted = set(topics)
        return [
            log
            for log in self.logs
            if log.address == address.lower()
            and from_block <= log.block_number <= to_block
            and (not wanted or log.topic0 in wanted)
        ]

    @property
    def get_logs_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "get_logs"]

    async def _maybe_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error


class InMemoryCursorStore:
    def __init__(self, value: int | None = None, *, fail_on_set: bool = False) -> None:
        self.value = value
        self.fail_on_set = fail_on_set
        self.writes: list[int] = []

    def get(self) -> int | None:
        return self.value

    def set(self, block_number: int) -> None:
        if self.fail_on_set:
            raise CursorStoreError("disk full")
        self.value = block_number
        self.writes.append(block_number)


class StaticRegistry:
    def __init__(self, records: Sequence[DatasetRecord] = (), *, fail: bool = False) -> None:
        self.records = {r.token_address.lower(): r for r in records}
        self.fail = fail
        self.calls = 0

    async def get_all(self) -> Mapping[str, DatasetRecord]:
        self.calls += 1
        if self.fail:
            raise ConnectionError("registry offline")
        return dict(self.records)

    async def get_by_token_address(self, token_address: str) -> DatasetRecord | None:
        return self.records.get(token_address.lower())


class RecordingAccessGranter:
    def __init__(self, *, fail_on_save: bool = False) -> None:
        self.fail_on_save = fail_on_save
        self.signed: list[tuple[str, str]] = []
        self.grants: list[AccessGrant] = []

    def sign_download_url(self, content_id: str, user_address: str) -> str:
        self.signed.append((content_id, user_address))
        return f"https://download.test/{content_id}?user={user_address.lower()}"

    async def save_access(self, grant: AccessGrant) -> None:
        if self.fail_on_save:
            raise OSError("access log unavailable")
        self.grants.append(grant)


class FakeLogSubscriber:
    """
    LogSubscriber backed by an asyncio.Queue.

    Push RawLogs with ``feed``; ``close`` ends the stream the way a dropped
    websocket does.
    """

    _CLOSED = object()

    def __init__(self, *, fail_subscribe_for: Sequence[str] = ()) -> None:
        self.fail_subscribe_for = {a.lower() for a in fail_subscribe_for}
        self.subscriptions: list[tuple[str, tuple[bytes, ...]]] = []
        self.entered = 0
        self.exited = 0
        self._queue: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self) -> "FakeLogSubscriber":
        self.entered += 1
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.exited += 1

    async def subscribe(self, *, address: str, topics: Sequence[bytes]) -> str:
        if address.lower() in self.fail_subscribe_for:
            raise ConnectionError(f"subscribe refused for {address}")
        self.subscriptions.append((address, tuple(topics)))
        return f"0xsub{len(self.subscriptions)}"

    def feed(self, raw_log: RawLog) -> None:
        self._queue.put_nowait(raw_log)

    def close(self) -> None:
        self._queue.put_nowait(self._CLOSED)

    async def stream(self) -> AsyncIterator[RawLog]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item
