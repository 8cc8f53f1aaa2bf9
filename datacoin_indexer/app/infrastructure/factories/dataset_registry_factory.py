from __future__ import annotations

from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from datacoin_indexer.app.config import Settings
from datacoin_indexer.app.domain.errors import UnsupportedBackendError
from datacoin_indexer.app.domain.ports.out import DatasetRegistry
from datacoin_indexer.app.infrastructure.adapters.registry.json_file_dataset_registry import (
    JsonFileDatasetRegistry,
)
from datacoin_indexer.app.infrastructure.adapters.registry.sqlalchemy_dataset_registry import (
    SqlAlchemyDatasetRegistry,
)


DatasetRegistryFactory = Callable[[Settings, AsyncEngine | None], DatasetRegistry]


def _make_sqlalchemy_registry(settings: Settings, engine: AsyncEngine | None) -> DatasetRegistry:
    if engine is None:
        raise ValueError("sqlalchemy registry backend requires a database engine")
    return SqlAlchemyDatasetRegistry(engine=engine)


_DATASET_REGISTRY_REGISTRY: Dict[str, DatasetRegistryFactory] = {
    "json": lambda settings, engine: JsonFileDatasetRegistry(settings.datasets_file),
    "sqlalchemy": _make_sqlalchemy_registry,
}


def dataset_registry_factory(
    *,
    backend: str,
    settings: Settings,
    engine: AsyncEngine | None = None,
) -> DatasetRegistry:
    try:
        factory = _DATASET_REGISTRY_REGISTRY[backend]
    except KeyError:
        raise UnsupportedBackendError(f"Unsupported dataset registry backend: {backend!r}")
    return factory(settings, engine)
