"""Bounded reconnect-and-replay wrapper for best-effort durable writes."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_BACKOFF_SECONDS = 0.025


def write_with_reconnect(  # noqa: PLR0913
    write: Callable[[], object],
    *,
    reconnect: Callable[[], None],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    retry_on: tuple[type[BaseException], ...] = (DBAPIError,),
    sleep: Callable[[float], None] = time.sleep,
    description: str = "write",
) -> bool:
    """Run ``write``; on failure sleep, reconnect and replay the same write.

    Gives up after ``max_attempts`` and logs the last store error. Never
    raises for errors listed in ``retry_on``: callers treat the write as
    best-effort.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            write()
        except retry_on as error:
            if attempt >= max_attempts:
                logger.error(
                    "Dropping %s after %s attempts: %s",
                    description,
                    attempt,
                    error,
                )
                return False
            logger.warning(
                "%s failed (attempt %s of %s), reconnecting: %s",
                description,
                attempt,
                max_attempts,
                error,
            )
            sleep(backoff_seconds)
            try:
                reconnect()
            except retry_on as reconnect_error:
                logger.warning("Reconnect failed: %s", reconnect_error)
            continue
        return True
    return False
