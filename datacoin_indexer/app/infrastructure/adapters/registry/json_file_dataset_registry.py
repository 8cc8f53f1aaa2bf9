from __future__ import annotations

import json
import logging
from pathlib import Path

from datacoin_indexer.app.domain.models import DatasetRecord
from datacoin_indexer.app.domain.ports.out import DatasetRegistry
from datacoin_indexer.app.infrastructure.adapters.registry.records import dataset_record_from_mapping


logger = logging.getLogger(__name__)


class JsonFileDatasetRegistry(DatasetRegistry):
    """
    Registry backed by datasets.json: {"0xtoken": {"symbol": ..., "cid": ...}, ...}.

    The file is re-read on every call so new tokens show up on the next tick.
    A missing file is an empty registry.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    async def get_all(self) -> dict[str, DatasetRecord]:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Unsupported datasets file format in {self._path}: expected an object")

        out: dict[str, DatasetRecord] = {}
        for token_address, meta in raw.items():
            if not isinstance(meta, dict):
                continue
            record = dataset_record_from_mapping(token_address, meta)
            if record is None:
                logger.warning("Skipping dataset without symbol: %s", token_address)
                continue
            out[record.token_address] = record
        return out

    async def get_by_token_address(self, token_address: str) -> DatasetRecord | None:
        return (await self.get_all()).get(token_address.lower())
