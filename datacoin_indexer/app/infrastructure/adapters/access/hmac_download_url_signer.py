from __future__ import annotations

import hashlib
import hmac
import time
from typing import Callable
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from datacoin_indexer.app.domain.ports.out import DownloadUrlSigner


class HmacDownloadUrlSigner(DownloadUrlSigner):
    """
    Time-boxed, user-scoped download URLs.

    URL shape: {base_url}/{cid}?user=<addr>&expires=<unix>&sig=<hex>
    sig = HMAC-SHA256(secret, "{cid}:{user}:{expires}")
    """

    def __init__(
        self,
        *,
        secret: str,
        base_url: str,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("secret must not be empty")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._secret = secret.encode("utf-8")
        self._base_url = base_url.rstrip("/")
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def sign_download_url(self, content_id: str, user_address: str) -> str:
        user = user_address.lower()
        expires = int(self._clock()) + self._ttl_seconds
        sig = self._signature(content_id, user, expires)
        query = urlencode({"user": user, "expires": expires, "sig": sig})
        return f"{self._base_url}/{quote(content_id, safe='')}?{query}"

    def verify(self, url: str) -> bool:
        parts = urlsplit(url)
        params = parse_qs(parts.query)
        try:
            user = params["user"][0]
            expires = int(params["expires"][0])
            sig = params["sig"][0]
        except (KeyError, IndexError, ValueError):
            return False

        content_id = unquote(parts.path.rsplit("/", 1)[-1])
        expected = self._signature(content_id, user, expires)
        if not hmac.compare_digest(expected, sig):
            return False
        return expires >= int(self._clock())

    def _signature(self, content_id: str, user: str, expires: int) -> str:
        message = f"{content_id}:{user}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()
