from __future__ import annotations

import logging

from datacoin_indexer.app.application.services.dispatcher import EventDispatcher
from datacoin_indexer.app.config import settings
from datacoin_indexer.app.infrastructure.decoders.datacoin.event_decoder import (
    DataCoinEventDecoder,
)
from datacoin_indexer.app.infrastructure.factories.event_source_factory import (
    make_poll_scheduler,
)
from datacoin_indexer.app.interface.tasks.wiring import collaborators


logger = logging.getLogger(__name__)


async def run_single_tick_task() -> None:
    """Task: run exactly one poll tick and report what it did."""
    async with collaborators(settings) as (registry, access_granter):
        decoder = DataCoinEventDecoder()
        dispatcher = EventDispatcher(decoder=decoder, access_granter=access_granter)
        scheduler = make_poll_scheduler(settings, registry, decoder, dispatcher)

        report = await scheduler.run_tick()

    logger.info(
        "Tick report: cursor %s -> %s, head=%s, window=%s, skipped_from=%s, events=%s, grants=%s, "
        "failed_contracts=%s, fallback_checkpoints=%s, aborted=%s",
        report.cursor_before,
        report.cursor_after,
        report.head,
        report.window,
        report.skipped_ahead_from,
        report.events_decoded,
        report.grants_dispatched,
        report.failed_contracts,
        report.fallback_checkpoints,
        report.aborted,
    )
