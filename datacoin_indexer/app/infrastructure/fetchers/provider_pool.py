from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from datacoin_indexer.app.domain.errors import AllProvidersFailedError, ProviderError
from datacoin_indexer.app.domain.models import ProviderEndpoint, RawLog
from datacoin_indexer.app.domain.ports.out import ChainRpcClient, LogSource
from datacoin_indexer.app.observability import log_contained_error


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderPool(LogSource):
    """
    Ordered set of RPC endpoints with per-call failover.

    Every call walks the endpoints in priority order and returns the first
    success. When all of them fail the call raises AllProvidersFailedError
    and the advisory "current" pointer moves to the next endpoint. There is
    no breaker: a failed endpoint is tried again on the very next call.
    """

    def __init__(
        self,
        clients: Sequence[ChainRpcClient],
        *,
        attempt_timeout: float | None = 10.0,
    ) -> None:
        if not clients:
            raise ValueError("ProviderPool needs at least one RPC client")
        if attempt_timeout is not None and attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be positive")
        self._clients = list(clients)
        self._attempt_timeout = attempt_timeout
        self._current = 0

    @property
    def endpoints(self) -> list[ProviderEndpoint]:
        return [ProviderEndpoint(url=c.url, ordinal=i) for i, c in enumerate(self._clients)]

    @property
    def current_ordinal(self) -> int:
        return self._current

    @property
    def current_endpoint(self) -> ProviderEndpoint:
        return self.endpoints[self._current]

    async def head(self) -> int:
        return await self._call("eth_blockNumber", lambda c: c.block_number())

    async def logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[bytes],
    ) -> list[RawLog]:
        return await self._call(
            f"eth_getLogs({address}, [{from_block}, {to_block}])",
            lambda c: c.get_logs(
                address=address,
                from_block=from_block,
                to_block=to_block,
                topics=topics,
            ),
        )

    async def _call(
        self,
        operation: str,
        fn: Callable[[ChainRpcClient], Awaitable[T]],
    ) -> T:
        errors: list[ProviderError] = []
        for ordinal, client in enumerate(self._clients):
            try:
                if self._attempt_timeout is None:
                    return await fn(client)
                return await asyncio.wait_for(fn(client), timeout=self._attempt_timeout)
            except Exception as exc:
                errors.append(ProviderError(client.url, exc))
                log_contained_error(
                    logger,
                    "rpc.endpoint_failed",
                    operation=operation,
                    url=client.url,
                    ordinal=ordinal,
                    err_type=type(exc).__name__,
                    err=str(exc),
                )

        self._rotate()
        raise AllProvidersFailedError(operation, errors)

    def _rotate(self) -> None:
        previous = self._current
        self._current = (self._current + 1) % len(self._clients)
        logger.warning(
            "All RPC endpoints failed; current endpoint %s -> %s (%s)",
            previous,
            self._current,
            self._clients[self._current].url,
        )
