from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine

from datacoin_indexer.app.config import Settings
from datacoin_indexer.app.domain.ports.out import AccessGranter, DatasetRegistry
from datacoin_indexer.app.infrastructure.db.engine import create_app_async_engine
from datacoin_indexer.app.infrastructure.factories.access_granter_factory import (
    access_granter_factory,
)
from datacoin_indexer.app.infrastructure.factories.dataset_registry_factory import (
    dataset_registry_factory,
)


@asynccontextmanager
async def collaborators(settings: Settings) -> AsyncIterator[tuple[DatasetRegistry, AccessGranter]]:
    """
    Registry + Access Granter for the configured backends.

    A database engine is only created when a sqlalchemy backend is selected,
    and is disposed on exit.
    """
    engine: AsyncEngine | None = None
    if "sqlalchemy" in (settings.registry_backend, settings.access_log_backend):
        engine = create_app_async_engine(database_url=settings.database_url)
    try:
        registry = dataset_registry_factory(
            backend=settings.registry_backend,
            settings=settings,
            engine=engine,
        )
        access_granter = access_granter_factory(
            backend=settings.access_log_backend,
            settings=settings,
            engine=engine,
        )
        yield registry, access_granter
    finally:
        if engine is not None:
            await engine.dispose()
