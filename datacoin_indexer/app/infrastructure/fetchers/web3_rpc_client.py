from __future__ import annotations

from typing import Any, Mapping, Sequence

from eth_utils import to_bytes, to_normalized_address
from web3 import AsyncHTTPProvider, AsyncWeb3

from datacoin_indexer.app.domain.models import RawLog
from datacoin_indexer.app.domain.ports.out import ChainRpcClient


def _as_bytes(value: Any) -> bytes:
    # web3 formats log fields as HexBytes; raw websocket payloads may carry hex strings.
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def _as_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def raw_log_from_web3(entry: Mapping[str, Any]) -> RawLog:
    """Convert a web3 LogReceipt (AttributeDict or plain dict) into a RawLog."""
    return RawLog(
        address=to_normalized_address(entry["address"]),
        topics=tuple(_as_bytes(t) for t in entry.get("topics", ())),
        data=_as_bytes(entry.get("data", b"")),
        block_number=_as_int(entry["blockNumber"]),
        transaction_hash=_as_bytes(entry.get("transactionHash", b"")),
        log_index=_as_int(entry.get("logIndex", 0)),
    )


class Web3RpcClient(ChainRpcClient):
    """
    Single HTTP JSON-RPC endpoint using AsyncWeb3.

    Errors are not caught here: the provider pool decides what a failure
    means for the logical call.
    """

    def __init__(self, *, url: str, w3: AsyncWeb3 | None = None, timeout: float = 30) -> None:
        self.url = url
        self._w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                url,
                request_kwargs={"timeout": timeout},
            )
        )

    async def block_number(self) -> int:
        return int(await self._w3.eth.block_number)

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
        topics: Sequence[bytes],
    ) -> list[RawLog]:
        # web3 expects checksum hex string
        addr_hex = self._w3.to_checksum_address(address)
        filter_params: dict[str, Any] = {
            "address": addr_hex,
            "fromBlock": from_block,
            "toBlock": to_block,
            # Single topic slot with OR semantics: topic0 in {...}
            "topics": [["0x" + bytes(t).hex() for t in topics]],
        }
        entries = await self._w3.eth.get_logs(filter_params)
        return [raw_log_from_web3(e) for e in entries]

    def __repr__(self) -> str:
        return f"Web3RpcClient(url={self.url!r})"
