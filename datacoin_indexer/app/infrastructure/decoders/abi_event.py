from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from eth_abi import decode as abi_decode
from eth_utils import keccak, to_normalized_address

from datacoin_indexer.app.domain.models import RawLog


_DYNAMIC_TYPES = ("string", "bytes")


def load_abi(abi_path: Path) -> list[dict[str, Any]]:
    if not abi_path.exists():
        raise FileNotFoundError(f"ABI file not found: {abi_path}")
    raw = abi_path.read_text(encoding="utf-8")
    data = json.loads(raw)

    # Common formats:
    # - [ ... ] (ABI list)
    # - { "abi": [ ... ] } (hardhat artifact)
    if isinstance(data, list):
        abi = data
    elif isinstance(data, dict) and "abi" in data and isinstance(data["abi"], list):
        abi = data["abi"]
    else:
        raise ValueError(
            f"Unsupported ABI JSON format in {abi_path}. Expected list or dict with 'abi' list."
        )

    return [x for x in abi if isinstance(x, dict)]


def find_event(abi: list[dict[str, Any]], event_name: str) -> dict[str, Any]:
    events = [x for x in abi if x.get("type") == "event" and x.get("name") == event_name]
    if not events:
        names = sorted({x.get("name") for x in abi if x.get("type") == "event"})
        raise ValueError(
            f"Event {event_name!r} not found in ABI. Available events: {names}"
        )
    if len(events) > 1:
        raise ValueError(
            f"Multiple events named {event_name!r} found in ABI. "
            "Disambiguation by full signature is required."
        )
    return events[0]


def event_signature(event_abi: Mapping[str, Any]) -> str:
    name = event_abi.get("name")
    inputs = event_abi.get("inputs", [])
    if not isinstance(name, str) or not isinstance(inputs, list):
        raise ValueError("Invalid event ABI: missing name/inputs")
    types = []
    for inp in inputs:
        if not isinstance(inp, dict) or "type" not in inp:
            raise ValueError("Invalid event ABI inputs")
        types.append(inp["type"])
    return f"{name}({','.join(types)})"


class AbiEvent:
    """
    One event ABI entry, ready to decode raw logs.

    It:
    - computes topic0 = keccak("EventName(type1,type2,...)"),
    - decodes indexed args from topics[1:] (addresses from the low 20 bytes,
      static values via eth_abi, dynamic values kept as their 32-byte hash),
    - decodes non-indexed args from `data` with eth_abi.

    decode_fields() raises on logs that do not fit the ABI; callers decide
    whether that is fatal.
    """

    def __init__(self, event_abi: Mapping[str, Any]) -> None:
        self._event_abi = dict(event_abi)
        self._name: str = self._event_abi["name"]
        self._signature = event_signature(self._event_abi)
        self._topic0 = keccak(text=self._signature)

        inputs: list[dict[str, Any]] = list(self._event_abi.get("inputs", []))
        self._indexed_inputs = [i for i in inputs if i.get("indexed") is True]
        self._non_indexed_inputs = [i for i in inputs if not i.get("indexed")]

        self._non_indexed_types = [i["type"] for i in self._non_indexed_inputs]
        self._non_indexed_names = [i["name"] for i in self._non_indexed_inputs]

    @classmethod
    def from_file(cls, abi_path: Path, event_name: str) -> "AbiEvent":
        return cls(find_event(load_abi(abi_path), event_name))

    @property
    def name(self) -> str:
        return self._name

    @property
    def topic0(self) -> bytes:
        return self._topic0

    @property
    def event_signature(self) -> str:
        return self._signature

    def decode_fields(self, raw_log: RawLog) -> dict[str, Any]:
        topics = raw_log.topics
        if not topics or topics[0] != self._topic0:
            raise ValueError(f"topic0 does not match {self._signature}")

        # Same topic0 with a different indexed layout (e.g. ERC-721 Transfer
        # indexes tokenId) is a different event for our purposes.
        expected = 1 + len(self._indexed_inputs)
        if len(topics) != expected:
            raise ValueError(
                f"{self._name}: expected {expected} topics, got {len(topics)}"
            )

        out: dict[str, Any] = {}
        for inp, topic in zip(self._indexed_inputs, topics[1:], strict=True):
            out[inp["name"]] = self._decode_topic(inp["type"], topic)

        out.update(self._decode_non_indexed_data(raw_log.data))
        return out

    # ---------------------------------------------------------------------
    # Topic / ABI value normalization
    # ---------------------------------------------------------------------

    def _decode_non_indexed_data(self, data: bytes) -> dict[str, Any]:
        if not self._non_indexed_inputs:
            return {}

        values = abi_decode(self._non_indexed_types, data)

        out: dict[str, Any] = {}
        for name, typ, val in zip(self._non_indexed_names, self._non_indexed_types, values, strict=True):
            out[name] = self._normalize_abi_value(typ, val)
        return out

    def _decode_topic(self, typ: str, topic: bytes) -> Any:
        t = self._as_bytes32(topic)
        if typ == "address":
            return to_normalized_address(t[-20:])
        if typ in _DYNAMIC_TYPES or typ.endswith("]") or typ.startswith("("):
            # Indexed dynamic values are stored as keccak(value).
            return t
        (val,) = abi_decode([typ], t)
        return self._normalize_abi_value(typ, val)

    @staticmethod
    def _as_bytes32(b: bytes) -> bytes:
        bb = bytes(b)
        if len(bb) != 32:
            raise ValueError(f"Expected 32 bytes (bytes32 topic), got len={len(bb)}")
        return bb

    @staticmethod
    def _normalize_abi_value(typ: str, val: Any) -> Any:
        if typ == "address":
            return to_normalized_address(val)

        if typ.startswith("uint") or typ.startswith("int"):
            return int(val)

        if typ.startswith("bytes"):
            if isinstance(val, (bytes, bytearray, memoryview)):
                return bytes(val)
            return val

        return val
