"""Gamma API client for Polymarket market discovery."""

import logging

from updown.execution.errors import MarketNotFoundError, retry_transient
from updown.ingest.http import get_json

logger = logging.getLogger(__name__)

GAMMA_BASE_URL = "https://gamma-api.polymarket.com"


class GammaClient:
    def __init__(
        self,
        base_url: str = GAMMA_BASE_URL,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    def get_market_by_slug(self, slug: str) -> dict:
        """Fetch a single market by slug.

        Raises MarketNotFoundError when Gamma has no such market (an empty
        list or a 404), TransientError when it could not be asked.
        """
        url = f"{self.base_url}/markets"
        data = retry_transient(
            lambda: get_json(url, {"slug": slug}, self.timeout),
            attempts=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            label=f"gamma slug={slug}",
        )
        # Gamma returns a list; we want the first match
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise MarketNotFoundError(f"No market for slug {slug}")
        return data
