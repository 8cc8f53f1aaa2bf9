from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from datacoin_indexer.app.domain.models import AccessGrant
from datacoin_indexer.app.domain.ports.out import AccessLog
from datacoin_indexer.app.infrastructure.files import atomic_write_json


logger = logging.getLogger(__name__)


def _entry_from_grant(grant: AccessGrant) -> dict[str, Any]:
    return {
        "user": grant.user.lower(),
        "symbol": grant.symbol,
        "token": grant.token_address.lower(),
        "amount": str(grant.amount),
        "downloadUrl": grant.download_url,
        "ts": int(grant.timestamp.timestamp() * 1000),
    }


def _grant_from_entry(entry: dict[str, Any]) -> AccessGrant:
    return AccessGrant(
        user=entry["user"],
        symbol=entry["symbol"],
        token_address=entry.get("token", ""),
        amount=int(entry.get("amount") or 0),
        download_url=entry["downloadUrl"],
        timestamp=datetime.fromtimestamp(int(entry.get("ts", 0)) / 1000, tz=timezone.utc),
    )


class JsonFileAccessLog(AccessLog):
    """
    Access log stored as a JSON list in db.json, read by the /access route.

    One entry per (user, symbol): saving a grant for an existing pair
    replaces the old entry, so replays are harmless.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _load(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"Unsupported access log format in {self._path}: expected a list")
        return [x for x in data if isinstance(x, dict)]

    async def save_access(self, grant: AccessGrant) -> None:
        entry = _entry_from_grant(grant)
        entries = [
            e
            for e in self._load()
            if not (e.get("user", "").lower() == entry["user"] and e.get("symbol") == entry["symbol"])
        ]
        entries.append(entry)
        atomic_write_json(self._path, entries)

        logger.debug(
            "Access saved: user=%s symbol=%s token=%s",
            entry["user"],
            entry["symbol"],
            entry["token"],
        )

    async def find_access(self, *, user: str, symbol: str) -> AccessGrant | None:
        user = user.lower()
        for entry in reversed(self._load()):
            if entry.get("user", "").lower() == user and entry.get("symbol") == symbol:
                return _grant_from_entry(entry)
        return None
