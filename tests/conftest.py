from __future__ import annotations

import pytest

from datacoin_indexer.app.infrastructure.decoders.datacoin.event_decoder import DataCoinEventDecoder
from datacoin_indexer.app.observability import reset_contained_error_counts


@pytest.fixture(autouse=True)
def _reset_contained_errors():
    reset_contained_error_counts()
    yield
    reset_contained_error_counts()


@pytest.fixture(scope="session")
def decoder() -> DataCoinEventDecoder:
    return DataCoinEventDecoder()
