from __future__ import annotations

from typing import Mapping

from datacoin_indexer.app.domain.models import ContractKind, DatasetRecord, WatchedContract
from datacoin_indexer.app.domain.ports.out import EventDecoder


def derive_watched_contracts(
    snapshot: Mapping[str, DatasetRecord],
    *,
    decoder: EventDecoder,
) -> tuple[list[WatchedContract], list[WatchedContract]]:
    """
    Token and marketplace contracts referenced by a registry snapshot.

    Addresses are lower-cased and de-duplicated, keeping registry order.
    Several tokens usually share one marketplace.
    """
    token_topics = decoder.topics_for(ContractKind.TOKEN)
    market_topics = decoder.topics_for(ContractKind.MARKETPLACE)

    token_addresses = dict.fromkeys(addr.lower() for addr in snapshot)
    market_addresses = dict.fromkeys(
        record.marketplace_address.lower()
        for record in snapshot.values()
        if record.marketplace_address
    )

    tokens = [
        WatchedContract(address=addr, kind=ContractKind.TOKEN, topic_set=token_topics)
        for addr in token_addresses
    ]
    marketplaces = [
        WatchedContract(address=addr, kind=ContractKind.MARKETPLACE, topic_set=market_topics)
        for addr in market_addresses
    ]
    return tokens, marketplaces
