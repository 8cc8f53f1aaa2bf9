from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from datacoin_indexer.app.config import settings


def create_app_async_engine(*, database_url: str | None = None, echo: bool = False) -> AsyncEngine:
    """
    Factory for AsyncEngine used by the registry / access-log adapters.

    Centralizing engine creation keeps connection handling consistent
    across tasks and makes it easier to tweak pool settings in one place.
    """
    url = database_url or settings.database_url
    if not url:
        raise RuntimeError(
            "DATABASE_URL (or POSTGRES_* settings) is required for the sqlalchemy backends"
        )
    return create_async_engine(
        url,  # postgresql+asyncpg://...
        echo=echo,
        pool_pre_ping=True,
    )
