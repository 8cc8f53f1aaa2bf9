from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from eth_abi.exceptions import DecodingError

from datacoin_indexer.app.domain.events import (
    AccessGranted,
    Bought,
    DomainEvent,
    Redeemed,
    Sold,
    TokensBurned,
    Transfer,
)
from datacoin_indexer.app.domain.models import ContractKind, RawLog
from datacoin_indexer.app.domain.ports.out import EventDecoder
from datacoin_indexer.app.infrastructure.decoders.abi_event import AbiEvent, load_abi, find_event
from datacoin_indexer.app.observability import log_contained_error


logger = logging.getLogger(__name__)

DEFAULT_ABI_DIR = Path(__file__).resolve().parents[3] / "registry" / "abi"

_ABI_FILES: dict[ContractKind, str] = {
    ContractKind.TOKEN: "DataCoin.json",
    ContractKind.MARKETPLACE: "Marketplace.json",
}

_KIND_EVENTS: dict[ContractKind, tuple[str, ...]] = {
    ContractKind.TOKEN: ("Transfer", "Redeemed"),
    ContractKind.MARKETPLACE: ("AccessGranted", "Bought", "Sold", "TokensBurned"),
}

_BUILDERS: dict[str, Callable[[dict[str, Any]], DomainEvent]] = {
    "Transfer": lambda f: Transfer(
        from_address=f["from"],
        to_address=f["to"],
        value=f["value"],
    ),
    "Redeemed": lambda f: Redeemed(
        user=f["user"],
        amount=f["amount"],
        ticker=f["ticker"],
    ),
    "AccessGranted": lambda f: AccessGranted(
        token=f["token"],
        buyer=f["buyer"],
    ),
    "Bought": lambda f: Bought(
        token=f["token"],
        buyer=f["buyer"],
        usdc_in=f["usdcIn"],
        fee=f["fee"],
        tokens_out=f["tokensOut"],
    ),
    "Sold": lambda f: Sold(
        token=f["token"],
        seller=f["seller"],
        tokens_in=f["tokenIn"],
        usdc_out=f["usdcOut"],
    ),
    "TokensBurned": lambda f: TokensBurned(
        token=f["token"],
        burner=f["burner"],
        amount_burned=f["amountBurned"],
        new_price=f["newPrice"],
    ),
}


class DataCoinEventDecoder(EventDecoder):
    """
    ABI-based decoder for DataCoin token and marketplace events.

    Maps topic0 -> AbiEvent -> typed DomainEvent. Logs with an unknown
    topic0 yield None; an OR-combined topic filter may legitimately return
    them.
    """

    def __init__(self, *, abi_dir: Path = DEFAULT_ABI_DIR) -> None:
        self._events_by_topic: dict[bytes, AbiEvent] = {}
        self._topics_by_kind: dict[ContractKind, tuple[bytes, ...]] = {}

        for kind, filename in _ABI_FILES.items():
            abi = load_abi(abi_dir / filename)
            topics: list[bytes] = []
            for event_name in _KIND_EVENTS[kind]:
                event = AbiEvent(find_event(abi, event_name))
                self._events_by_topic[event.topic0] = event
                topics.append(event.topic0)
            self._topics_by_kind[kind] = tuple(topics)

    def topics_for(self, kind: ContractKind) -> tuple[bytes, ...]:
        return self._topics_by_kind[kind]

    def topic_of(self, event_name: str) -> bytes:
        for topic0, event in self._events_by_topic.items():
            if event.name == event_name:
                return topic0
        raise KeyError(event_name)

    def decode(self, topic0: bytes | None, raw_log: RawLog) -> DomainEvent | None:
        if topic0 is None:
            return None
        event = self._events_by_topic.get(bytes(topic0))
        if event is None:
            return None

        try:
            fields = event.decode_fields(raw_log)
        except (DecodingError, ValueError, TypeError) as exc:
            log_contained_error(
                logger,
                "decoder.malformed_log",
                event_name=event.name,
                address=raw_log.address,
                block_number=raw_log.block_number,
                log_index=raw_log.log_index,
                err=str(exc),
            )
            return None

        return _BUILDERS[event.name](fields)

    def decode_all(self, logs: list[RawLog]) -> list[DomainEvent]:
        out: list[DomainEvent] = []
        for raw_log in logs:
            decoded = self.decode(raw_log.topic0, raw_log)
            if decoded is not None:
                out.append(decoded)
        return out
