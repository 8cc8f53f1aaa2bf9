from __future__ import annotations


class IndexerError(Exception):
    """Base class for indexer failures."""


class ProviderError(IndexerError):
    """A single RPC endpoint failed to serve a call."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"{url}: {type(cause).__name__}: {cause}")
        self.url = url
        self.cause = cause


class AllProvidersFailedError(IndexerError):
    """Every endpoint in the pool failed for one logical call."""

    def __init__(self, operation: str, errors: list[ProviderError]) -> None:
        details = "; ".join(str(e) for e in errors) or "no endpoints configured"
        super().__init__(f"All RPC endpoints failed for {operation}: {details}")
        self.operation = operation
        self.errors = errors


class CursorStoreError(IndexerError):
    """The block cursor could not be persisted."""


class UnsupportedBackendError(ValueError):
    pass
