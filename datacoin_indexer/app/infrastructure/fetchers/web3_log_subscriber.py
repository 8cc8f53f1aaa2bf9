from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Sequence

from web3 import AsyncWeb3, WebSocketProvider

from datacoin_indexer.app.domain.models import RawLog
from datacoin_indexer.app.domain.ports.out import LogSubscriber
from datacoin_indexer.app.infrastructure.fetchers.web3_rpc_client import raw_log_from_web3


logger = logging.getLogger(__name__)


class Web3LogSubscriber(LogSubscriber):
    """
    eth_subscribe("logs") over a persistent websocket connection.

    One subscription per contract address; all notifications arrive on a
    single stream() iterator.
    """

    def __init__(self, *, ws_url: str) -> None:
        self._ws_url = ws_url
        self._w3: AsyncWeb3 | None = None

    async def __aenter__(self) -> "Web3LogSubscriber":
        self._w3 = await AsyncWeb3(WebSocketProvider(self._ws_url))
        logger.info("Websocket connected: %s", self._ws_url)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._w3 is not None:
            await self._w3.provider.disconnect()
            self._w3 = None
            logger.info("Websocket disconnected: %s", self._ws_url)

    def _require_w3(self) -> AsyncWeb3:
        if self._w3 is None:
            raise RuntimeError("Web3LogSubscriber used outside of its async context")
        return self._w3

    async def subscribe(self, *, address: str, topics: Sequence[bytes]) -> str:
        w3 = self._require_w3()
        params: dict[str, Any] = {
            "address": w3.to_checksum_address(address),
            "topics": [["0x" + bytes(t).hex() for t in topics]],
        }
        subscription_id = await w3.eth.subscribe("logs", params)
        return str(subscription_id)

    async def stream(self) -> AsyncIterator[RawLog]:
        w3 = self._require_w3()
        async for payload in w3.socket.process_subscriptions():
            result = payload.get("result")
            if not result:
                continue
            yield raw_log_from_web3(result)
