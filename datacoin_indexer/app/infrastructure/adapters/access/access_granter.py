from __future__ import annotations

from datacoin_indexer.app.domain.models import AccessGrant
from datacoin_indexer.app.domain.ports.out import AccessGranter, AccessLog, DownloadUrlSigner


class SignedUrlAccessGranter(AccessGranter):
    """Access Granter = URL signer + access log."""

    def __init__(self, *, signer: DownloadUrlSigner, access_log: AccessLog) -> None:
        self._signer = signer
        self._access_log = access_log

    def sign_download_url(self, content_id: str, user_address: str) -> str:
        return self._signer.sign_download_url(content_id, user_address)

    async def save_access(self, grant: AccessGrant) -> None:
        await self._access_log.save_access(grant)

    async def find_access(self, *, user: str, symbol: str) -> AccessGrant | None:
        return await self._access_log.find_access(user=user, symbol=symbol)
