"""Venue error taxonomy and bounded retry for transient failures.

NotFound and Transient must never be conflated: a missing market means
"not yet", while a transient failure means "unknown, ask again".
"""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VenueError(Exception):
    """Base for errors raised by venue collaborators."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MarketNotFoundError(VenueError):
    """Market does not exist (yet). Expected near period boundaries."""


class TransientError(VenueError):
    """Network failure, timeout or rate limit. Retry later."""


class OrderRejectedError(VenueError):
    """Venue refused the order. Treated as a non-fill."""


class AlreadyRedeemedError(VenueError):
    """Nothing left to redeem for the condition. Treated as success."""


class ConfigurationError(Exception):
    """Invalid or incomplete configuration detected at startup."""


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def retry_transient(
    fn: Callable[[], T],
    attempts: int = 3,
    backoff_seconds: float = 0.5,
    label: str = "",
) -> T:
    """Call fn, retrying TransientError with exponential backoff.

    Any other exception propagates immediately. After the last attempt the
    TransientError is re-raised to the caller.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TransientError as e:
            if attempt >= attempts:
                raise
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.debug(
                "Transient failure %s (attempt %d/%d): %s, retrying in %.2fs",
                label, attempt, attempts, e, delay,
            )
            if delay > 0:
                time.sleep(delay)
    raise AssertionError("unreachable")
