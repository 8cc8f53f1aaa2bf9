from __future__ import annotations

import json
import logging
from pathlib import Path

from datacoin_indexer.app.domain.errors import CursorStoreError
from datacoin_indexer.app.domain.ports.out import BlockCursorStore
from datacoin_indexer.app.infrastructure.files import atomic_write_json
from datacoin_indexer.app.observability import log_contained_error


logger = logging.getLogger(__name__)


class JsonFileCursorStore(BlockCursorStore):
    """
    Block cursor persisted as {"lastBlock": n} in a single JSON file.

    set() goes through atomic_write_json, so a crash mid-write leaves the
    previous value in place. get() treats a missing or unreadable file as
    "no cursor yet".
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> int | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            value = payload["lastBlock"]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            log_contained_error(
                logger,
                "cursor.unreadable",
                path=str(self._path),
                err_type=type(exc).__name__,
                err=str(exc),
            )
            return None

        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            log_contained_error(
                logger,
                "cursor.unreadable",
                path=str(self._path),
                err=f"invalid lastBlock value {value!r}",
            )
            return None
        return value

    def set(self, block_number: int) -> None:
        if block_number < 0:
            raise ValueError("block_number must be non-negative")
        try:
            atomic_write_json(self._path, {"lastBlock": int(block_number)})
        except OSError as exc:
            raise CursorStoreError(f"Failed to persist cursor to {self._path}: {exc}") from exc

        logger.debug("Cursor persisted: lastBlock=%s path=%s", block_number, self._path)
