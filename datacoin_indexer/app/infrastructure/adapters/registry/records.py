from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from datacoin_indexer.app.domain.models import DatasetRecord


def _lower_or_none(value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip().lower()


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _datetime_or_none(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def dataset_record_from_mapping(token_address: str, meta: Mapping[str, Any]) -> DatasetRecord | None:
    """
    Build a DatasetRecord from a datasets.json entry or a coins row.

    Accepts both the short keys written by the upload flow (cid, marketplace,
    creator, total_supply) and the column names of the coins table.
    Returns None when the entry has no symbol.
    """
    symbol = meta.get("symbol")
    if not isinstance(symbol, str) or not symbol:
        return None

    return DatasetRecord(
        token_address=token_address.lower(),
        symbol=symbol,
        content_id=str(meta.get("cid") or meta.get("content_id") or ""),
        marketplace_address=_lower_or_none(
            meta.get("marketplace") or meta.get("marketplace_address")
        ),
        creator=_lower_or_none(meta.get("creator") or meta.get("creator_address")),
        total_supply=_int_or_none(meta.get("total_supply", meta.get("totalSupply"))),
        description=meta.get("description") or None,
        created_at=_datetime_or_none(meta.get("created_at") or meta.get("createdAt")),
        name=meta.get("name") or None,
    )
