"""Data API client: wallet positions and redeemable conditions."""

import logging

from updown.execution.errors import MarketNotFoundError, retry_transient
from updown.ingest.http import get_json
from updown.models.market import normalize_condition_id

logger = logging.getLogger(__name__)

DATA_API_BASE_URL = "https://data-api.polymarket.com"


class DataApiClient:
    def __init__(
        self,
        base_url: str = DATA_API_BASE_URL,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    def get_positions(self, wallet: str) -> list[dict]:
        url = f"{self.base_url}/positions"
        try:
            data = retry_transient(
                lambda: get_json(url, {"user": wallet}, self.timeout),
                attempts=self.max_retries,
                backoff_seconds=self.backoff_seconds,
                label=f"positions {wallet[:10]}",
            )
        except MarketNotFoundError:
            return []
        return data if isinstance(data, list) else []

    def get_redeemable_positions(self, wallet: str) -> list[dict]:
        return [p for p in self.get_positions(wallet) if p.get("redeemable")]

    def list_redeemable(self, wallet: str) -> set[str]:
        """Condition ids (0x-prefixed) with at least one redeemable position."""
        return {
            normalize_condition_id(str(p["conditionId"]))
            for p in self.get_redeemable_positions(wallet)
            if p.get("conditionId")
        }

    def redeemable_value(self, wallet: str) -> dict[str, float]:
        """Current value per redeemable condition id."""
        values: dict[str, float] = {}
        for p in self.get_redeemable_positions(wallet):
            if not p.get("conditionId"):
                continue
            cid = normalize_condition_id(str(p["conditionId"]))
            values[cid] = values.get(cid, 0.0) + float(p.get("currentValue") or 0.0)
        return values
