"""Shared httpx GET helper mapping responses onto the venue error taxonomy."""

import logging
from typing import Any

import httpx

from updown.execution.errors import (
    MarketNotFoundError,
    TransientError,
    VenueError,
    is_transient_status,
)

logger = logging.getLogger(__name__)


def get_json(url: str, params: dict | None = None, timeout: float = 15.0) -> Any:
    """GET `url` and decode the JSON body.

    404 raises MarketNotFoundError; timeouts, connection failures, 429 and
    5xx raise TransientError; any other 4xx raises VenueError.
    """
    try:
        resp = httpx.get(url, params=params, timeout=timeout)
    except httpx.RequestError as e:
        logger.warning("Request failed for %s: %s", url, e)
        raise TransientError(f"Request failed: {e}") from e

    if resp.status_code == 404:
        raise MarketNotFoundError(f"Not found: {url}", resp.status_code)
    if resp.status_code >= 400:
        body = resp.text[:200]
        if is_transient_status(resp.status_code):
            logger.warning("HTTP %d from %s: %s", resp.status_code, url, body)
            raise TransientError(f"HTTP {resp.status_code}: {body}", resp.status_code)
        logger.error("HTTP %d from %s: %s", resp.status_code, url, body)
        raise VenueError(f"HTTP {resp.status_code}: {body}", resp.status_code)

    try:
        return resp.json()
    except ValueError as e:
        raise TransientError(f"Invalid JSON from {url}") from e
