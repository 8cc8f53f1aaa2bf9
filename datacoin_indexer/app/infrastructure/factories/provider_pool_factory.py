from __future__ import annotations

from typing import Sequence

from datacoin_indexer.app.infrastructure.fetchers.provider_pool import ProviderPool
from datacoin_indexer.app.infrastructure.fetchers.web3_rpc_client import Web3RpcClient


def provider_pool_factory(
    *,
    rpc_urls: Sequence[str],
    attempt_timeout: float,
) -> ProviderPool:
    """
    Wire one AsyncWeb3 HTTP client per endpoint, in priority order.

    The transport timeout sits a little above the per-attempt deadline so
    the pool's asyncio deadline is what normally fires.
    """
    clients = [
        Web3RpcClient(url=url, timeout=attempt_timeout + 5)
        for url in rpc_urls
    ]
    return ProviderPool(clients, attempt_timeout=attempt_timeout)
