"""CLOB API client for token prices and market resolution state."""

import logging

from updown.execution.errors import MarketNotFoundError, retry_transient
from updown.ingest.http import get_json
from updown.models.common import Side
from updown.models.market import MarketDescriptor, PriceQuote

logger = logging.getLogger(__name__)

CLOB_BASE_URL = "https://clob.polymarket.com"


class ClobClient:
    def __init__(
        self,
        base_url: str = CLOB_BASE_URL,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    def _get(self, path: str, params: dict | None = None, label: str = ""):
        url = f"{self.base_url}{path}"
        return retry_transient(
            lambda: get_json(url, params, self.timeout),
            attempts=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            label=label or path,
        )

    def get_token_price(self, token_id: str, side: str = "SELL") -> float | None:
        """Current price for a token. None when the book has no price."""
        try:
            data = self._get(
                "/price", {"token_id": token_id, "side": side}, f"price {token_id[:12]}"
            )
        except MarketNotFoundError:
            return None
        raw = data.get("price") if isinstance(data, dict) else None
        if raw in (None, ""):
            return None
        return float(raw)

    def get_prices(self, market: MarketDescriptor) -> PriceQuote:
        return PriceQuote(
            up_price=self.get_token_price(market.up_token),
            down_price=self.get_token_price(market.down_token),
        )

    def get_market(self, condition_id: str) -> dict:
        """Fetch CLOB market details (tokens with winner flags, closed flag)."""
        return self._get(f"/markets/{condition_id}", label=f"market {condition_id[:12]}")

    def get_resolution(self, market: MarketDescriptor) -> tuple[bool, Side | None]:
        """Return (closed, winning side) for a market."""
        data = self.get_market(market.condition_id)
        closed = bool(data.get("closed", False))
        winner = None
        for token in data.get("tokens", []):
            if token.get("winner"):
                winner = market.side_of(str(token.get("token_id", "")))
        return closed, winner
