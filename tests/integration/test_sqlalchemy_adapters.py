from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from datacoin_indexer.app.domain.models import AccessGrant
from datacoin_indexer.app.infrastructure.adapters.access.sqlalchemy_access_log import SqlAlchemyAccessLog
from datacoin_indexer.app.infrastructure.adapters.registry.sqlalchemy_dataset_registry import (
    SqlAlchemyDatasetRegistry,
)
from datacoin_indexer.app.infrastructure.db.db_base import BaseDB
from datacoin_indexer.app.infrastructure.db.models.access_grants import AccessGrantsDB  # noqa: F401
from datacoin_indexer.app.infrastructure.db.models.coins import CoinsDB
from tests.helpers.logs import ALICE, BOB, MARKET, TOKEN_A, TOKEN_B


async def _engine(tmp_path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(BaseDB.metadata.create_all)
    return engine


def _coin(token: str, symbol: str, created_at: datetime, cid: str | None = "ipfs://bafy") -> dict:
    return {
        "token_address": token,
        "name": f"{symbol} data",
        "symbol": symbol,
        "cid": cid,
        "description": None,
        "creator_address": ALICE,
        "marketplace_address": MARKET,
        "total_supply": 1_000_000,
        "created_at": created_at,
    }


@pytest.mark.asyncio
async def test_coins_table_backs_the_registry(tmp_path):
    engine = await _engine(tmp_path)
    try:
        async with engine.begin() as conn:
            await conn.execute(
                insert(CoinsDB),
                [
                    _coin(TOKEN_A, "WTHR", datetime(2025, 1, 1, tzinfo=timezone.utc)),
                    _coin(TOKEN_B, "RAIN", datetime(2025, 2, 1, tzinfo=timezone.utc), cid="bafyrain"),
                ],
            )

        registry = SqlAlchemyDatasetRegistry(engine=engine)
        snapshot = await registry.get_all()

        assert list(snapshot) == [TOKEN_B, TOKEN_A]
        assert snapshot[TOKEN_A].symbol == "WTHR"
        assert snapshot[TOKEN_A].marketplace_address == MARKET
        assert snapshot[TOKEN_B].content_id == "bafyrain"
        assert snapshot[TOKEN_A].total_supply == 1_000_000

        found = await registry.get_by_token_address(TOKEN_A.upper().replace("0X", "0x"))
        assert found is not None and found.symbol == "WTHR"
        assert await registry.get_by_token_address("0x" + "00" * 20) is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_access_grants_upsert_on_user_and_symbol(tmp_path):
    engine = await _engine(tmp_path)
    try:
        access_log = SqlAlchemyAccessLog(engine=engine)
        first = AccessGrant(
            user=ALICE,
            symbol="WTHR",
            token_address=TOKEN_A,
            amount=10**30,
            download_url="https://dl/1",
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        second = AccessGrant(
            user=ALICE,
            symbol="WTHR",
            token_address=TOKEN_A,
            amount=3,
            download_url="https://dl/2",
            timestamp=datetime(2025, 1, 2, tzinfo=timezone.utc),
        )

        await access_log.save_access(first)
        assert await access_log.find_access(user=ALICE, symbol="WTHR") == first

        await access_log.save_access(second)
        assert await access_log.find_access(user=ALICE, symbol="WTHR") == second
        assert await access_log.find_access(user=BOB, symbol="WTHR") is None
    finally:
        await engine.dispose()
