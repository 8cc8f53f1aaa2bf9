from __future__ import annotations

import logging

from datacoin_indexer.app.config import settings
from datacoin_indexer.app.infrastructure.adapters.cursor.json_file_cursor_store import (
    JsonFileCursorStore,
)


logger = logging.getLogger(__name__)


async def show_cursor_task() -> None:
    store = JsonFileCursorStore(settings.cursor_file)
    value = store.get()
    if value is None:
        logger.info("No cursor stored at %s (next start seeds from head)", store.path)
    else:
        logger.info("Cursor at %s: lastBlock=%s", store.path, value)


async def set_cursor_task(*, block_number: int) -> None:
    """
    Task: overwrite the cursor (operator override, e.g. to replay a range).

    Only safe while the listener is stopped; the running scheduler keeps its
    in-memory cursor and would overwrite this on its next tick.
    """
    if block_number < 0:
        raise ValueError("block_number must be non-negative")
    store = JsonFileCursorStore(settings.cursor_file)
    previous = store.get()
    store.set(block_number)
    logger.info("Cursor at %s: %s -> %s", store.path, previous, block_number)
