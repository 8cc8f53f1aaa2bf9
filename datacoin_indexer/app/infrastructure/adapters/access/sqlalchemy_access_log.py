from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from datacoin_indexer.app.domain.models import AccessGrant
from datacoin_indexer.app.domain.ports.out import AccessLog


logger = logging.getLogger(__name__)


_UPSERT_ACCESS_GRANT_SQL = text(
    """
    INSERT INTO access_grants (
        user_address,
        symbol,
        token_address,
        amount,
        download_url,
        granted_at
    )
    VALUES (
        :user_address,
        :symbol,
        :token_address,
        :amount,
        :download_url,
        :granted_at
    )
    ON CONFLICT (user_address, symbol) DO UPDATE SET
        token_address = EXCLUDED.token_address,
        amount = EXCLUDED.amount,
        download_url = EXCLUDED.download_url,
        granted_at = EXCLUDED.granted_at
    """
)

_SELECT_ACCESS_GRANT_SQL = text(
    """
    SELECT
        user_address,
        symbol,
        token_address,
        amount,
        download_url,
        granted_at
    FROM access_grants
    WHERE user_address = :user_address
      AND symbol = :symbol
    """
)


def _as_aware_datetime(value: datetime | str) -> datetime:
    # SQLite hands timestamps back as naive strings/datetimes; PostgreSQL as aware datetimes.
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class SqlAlchemyAccessLog(AccessLog):
    """
    SQLAlchemy implementation of AccessLog over access_grants.

    Idempotent via INSERT ... ON CONFLICT (user_address, symbol) DO UPDATE.
    """

    def __init__(self, *, engine: AsyncEngine) -> None:
        self._engine = engine

    async def save_access(self, grant: AccessGrant) -> None:
        params = {
            "user_address": grant.user.lower(),
            "symbol": grant.symbol,
            "token_address": grant.token_address.lower(),
            "amount": str(grant.amount),
            "download_url": grant.download_url,
            "granted_at": grant.timestamp,
        }
        async with self._engine.begin() as conn:
            await conn.execute(_UPSERT_ACCESS_GRANT_SQL, params)

        logger.debug(
            "Access upserted: user=%s symbol=%s token=%s",
            params["user_address"],
            params["symbol"],
            params["token_address"],
        )

    async def find_access(self, *, user: str, symbol: str) -> AccessGrant | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                _SELECT_ACCESS_GRANT_SQL,
                {"user_address": user.lower(), "symbol": symbol},
            )
            row = result.mappings().one_or_none()

        if row is None:
            return None
        return AccessGrant(
            user=row["user_address"],
            symbol=row["symbol"],
            token_address=row["token_address"],
            amount=int(row["amount"]),
            download_url=row["download_url"],
            timestamp=_as_aware_datetime(row["granted_at"]),
        )
