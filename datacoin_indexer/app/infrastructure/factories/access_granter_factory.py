from __future__ import annotations

from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from datacoin_indexer.app.config import Settings
from datacoin_indexer.app.domain.errors import UnsupportedBackendError
from datacoin_indexer.app.domain.ports.out import AccessLog
from datacoin_indexer.app.infrastructure.adapters.access.access_granter import (
    SignedUrlAccessGranter,
)
from datacoin_indexer.app.infrastructure.adapters.access.hmac_download_url_signer import (
    HmacDownloadUrlSigner,
)
from datacoin_indexer.app.infrastructure.adapters.access.json_file_access_log import (
    JsonFileAccessLog,
)
from datacoin_indexer.app.infrastructure.adapters.access.sqlalchemy_access_log import (
    SqlAlchemyAccessLog,
)


AccessLogFactory = Callable[[Settings, AsyncEngine | None], AccessLog]


def _make_sqlalchemy_access_log(settings: Settings, engine: AsyncEngine | None) -> AccessLog:
    if engine is None:
        raise ValueError("sqlalchemy access log backend requires a database engine")
    return SqlAlchemyAccessLog(engine=engine)


_ACCESS_LOG_REGISTRY: Dict[str, AccessLogFactory] = {
    "json": lambda settings, engine: JsonFileAccessLog(settings.access_db_file),
    "sqlalchemy": _make_sqlalchemy_access_log,
}


def access_granter_factory(
    *,
    backend: str,
    settings: Settings,
    engine: AsyncEngine | None = None,
) -> SignedUrlAccessGranter:
    """
    Wire the Access Granter:
    - HMAC signer for time-boxed download URLs,
    - access log backend selected by name.
    """
    try:
        factory = _ACCESS_LOG_REGISTRY[backend]
    except KeyError:
        raise UnsupportedBackendError(f"Unsupported access log backend: {backend!r}")

    signer = HmacDownloadUrlSigner(
        secret=settings.download_secret.get_secret_value(),
        base_url=settings.download_base_url,
        ttl_seconds=settings.download_url_ttl_seconds,
    )
    return SignedUrlAccessGranter(signer=signer, access_log=factory(settings, engine))
