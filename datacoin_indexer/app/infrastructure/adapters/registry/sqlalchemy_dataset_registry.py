from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from datacoin_indexer.app.domain.models import DatasetRecord
from datacoin_indexer.app.domain.ports.out import DatasetRegistry
from datacoin_indexer.app.infrastructure.adapters.registry.records import dataset_record_from_mapping


logger = logging.getLogger(__name__)


_SELECT_COLUMNS = """
    token_address,
    name,
    symbol,
    cid,
    description,
    creator_address,
    marketplace_address,
    total_supply,
    created_at
"""

_SELECT_ALL_COINS_SQL = text(
    f"""
    SELECT {_SELECT_COLUMNS}
    FROM coins
    ORDER BY created_at DESC
    """
)

_SELECT_COIN_BY_TOKEN_SQL = text(
    f"""
    SELECT {_SELECT_COLUMNS}
    FROM coins
    WHERE token_address = :token_address
    """
)


class SqlAlchemyDatasetRegistry(DatasetRegistry):
    """
    PostgreSQL/SQLAlchemy implementation of DatasetRegistry over the coins table.

    token_address is stored lower-case by the dataset API; lookups lower-case
    their input to match.
    """

    def __init__(self, *, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_all(self) -> dict[str, DatasetRecord]:
        async with self._engine.connect() as conn:
            result = await conn.execute(_SELECT_ALL_COINS_SQL)
            rows = result.mappings().all()

        out: dict[str, DatasetRecord] = {}
        for row in rows:
            record = dataset_record_from_mapping(row["token_address"], row)
            if record is None:
                logger.warning("Skipping coin without symbol: %s", row["token_address"])
                continue
            out[record.token_address] = record

        logger.debug("Loaded %s coins from registry", len(out))
        return out

    async def get_by_token_address(self, token_address: str) -> DatasetRecord | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                _SELECT_COIN_BY_TOKEN_SQL,
                {"token_address": token_address.lower()},
            )
            row = result.mappings().one_or_none()

        if row is None:
            return None
        return dataset_record_from_mapping(row["token_address"], row)
