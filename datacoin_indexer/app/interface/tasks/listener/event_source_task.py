from __future__ import annotations

import asyncio
import logging
import signal

from datacoin_indexer.app.config import settings
from datacoin_indexer.app.infrastructure.factories.event_source_factory import (
    event_source_factory,
)
from datacoin_indexer.app.interface.tasks.wiring import collaborators


logger = logging.getLogger(__name__)


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; Ctrl+C still raises.
            pass


async def run_event_source_task(*, source: str | None = None) -> None:
    """
    Task: run the chain event listener until SIGINT/SIGTERM.

    - source: "poll" | "subscribe" (defaults to EVENT_SOURCE),
    - stop is checked between chunks and ticks, so a cursor write is never
      interrupted halfway.
    """
    backend = source or settings.event_source
    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)

    async with collaborators(settings) as (registry, access_granter):
        event_source = event_source_factory(
            backend=backend,
            settings=settings,
            registry=registry,
            access_granter=access_granter,
        )
        logger.info("Starting %s event source", backend)
        await event_source.run(stop_event)
