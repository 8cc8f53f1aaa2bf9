from __future__ import annotations

import logging
from collections import Counter
from typing import Any


_CONTAINED_ERRORS: Counter[str] = Counter()


def log_contained_error(
    logger: logging.Logger,
    event: str,
    *,
    exc_info: bool = False,
    **context: Any,
) -> None:
    """
    Log an error that is absorbed instead of propagated, and count it.

    The worker keeps running after these, so each one must stay visible:
    ``event`` is a stable dotted name (e.g. "rpc.endpoint_failed") and is
    used both as the log message prefix and as the counter key.
    """
    _CONTAINED_ERRORS[event] += 1
    rendered = " ".join(f"{k}={v}" for k, v in context.items())
    logger.warning(
        "%s %s",
        event,
        rendered,
        exc_info=exc_info,
        extra={"event": event, "context": context},
    )


def contained_error_counts() -> dict[str, int]:
    return dict(_CONTAINED_ERRORS)


def reset_contained_error_counts() -> None:
    _CONTAINED_ERRORS.clear()
