"""Deterministic market keys per (asset, period start) and their resolution."""

import json
import logging
import threading
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from updown.config.schema import AssetConfig
from updown.execution.errors import MarketNotFoundError, VenueError
from updown.ingest.clob_client import ClobClient
from updown.ingest.gamma_client import GammaClient
from updown.models.common import Side
from updown.models.market import MarketDescriptor

logger = logging.getLogger(__name__)

MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)
CACHE_RETENTION = timedelta(days=1)


def build_short_slug(symbol: str, period_start: datetime, period_minutes: int) -> str:
    """Sub-hour markets: btc-updown-15m-1767225600."""
    return f"{symbol.lower()}-updown-{period_minutes}m-{int(period_start.timestamp())}"


def build_hourly_slug(asset_slug: str, period_start: datetime, zone: ZoneInfo) -> str:
    """Hourly markets: bitcoin-up-or-down-january-5-3pm-et."""
    local = period_start.astimezone(zone)
    hour12 = local.hour % 12 or 12
    am_pm = "am" if local.hour < 12 else "pm"
    month = MONTHS[local.month - 1]
    return f"{asset_slug}-up-or-down-{month}-{local.day}-{hour12}{am_pm}-et"


def _as_list(value: object) -> list:
    # Gamma encodes token ids and outcomes as JSON strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return list(value) if isinstance(value, list) else []


def _outcome_side(label: str) -> Side | None:
    label = label.strip().upper()
    if "UP" in label or label == "1":
        return Side.UP
    if "DOWN" in label or label == "0":
        return Side.DOWN
    return None


def parse_market(raw: dict, slug: str = "") -> MarketDescriptor:
    """Build a descriptor from a Gamma market object.

    Tokens are paired to sides by outcome label, never by position.
    """
    tokens = _as_list(raw.get("clobTokenIds"))
    outcomes = _as_list(raw.get("outcomes"))
    by_side: dict[Side, str] = {}
    for token, label in zip(tokens, outcomes):
        side = _outcome_side(str(label))
        if side is not None:
            by_side[side] = str(token)
    if Side.UP not in by_side or Side.DOWN not in by_side:
        raise VenueError(f"Market {slug or raw.get('id')} has no Up/Down token pair")

    descriptor = MarketDescriptor(
        market_id=str(raw.get("id", "")),
        slug=slug or str(raw.get("slug", "")),
        up_token=by_side[Side.UP],
        down_token=by_side[Side.DOWN],
        condition_id=str(raw.get("conditionId", "")),
    )
    descriptor.mark_resolved(bool(raw.get("closed", False)), None)
    return descriptor


class MarketLocator:
    """Resolves (asset, period start) to a market descriptor.

    Resolved descriptors are cached, so every caller for the same period
    shares one descriptor object and sees its closure facts.
    """

    def __init__(
        self,
        gamma: GammaClient,
        clob: ClobClient,
        assets: list[AssetConfig],
        period_minutes: int = 15,
        zone: ZoneInfo | None = None,
    ):
        self.gamma = gamma
        self.clob = clob
        self.period_minutes = period_minutes
        self.zone = zone or ZoneInfo("America/New_York")
        self._assets = {a.symbol: a for a in assets}
        self._cache: dict[tuple[str, datetime], MarketDescriptor] = {}
        self._lock = threading.Lock()

    def market_key(self, asset: str, period_start: datetime) -> str:
        if self.period_minutes == 60:
            asset_cfg = self._assets.get(asset)
            slug = asset_cfg.slug if asset_cfg is not None else asset.lower()
            return build_hourly_slug(slug, period_start, self.zone)
        return build_short_slug(asset, period_start, self.period_minutes)

    def resolve(self, asset: str, period_start: datetime) -> MarketDescriptor:
        """Raises MarketNotFoundError (not created yet) or TransientError."""
        key = (asset, period_start)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        slug = self.market_key(asset, period_start)
        raw = self.gamma.get_market_by_slug(slug)
        if not raw.get("active", True):
            raise MarketNotFoundError(f"Market {slug} is not active")
        descriptor = parse_market(raw, slug)
        logger.debug("Resolved %s -> condition %s", slug, descriptor.condition_id[:18])

        with self._lock:
            self._prune(period_start - CACHE_RETENTION)
            return self._cache.setdefault(key, descriptor)

    def refresh(self, descriptor: MarketDescriptor) -> MarketDescriptor:
        """Pull closure and winner from the CLOB; applied monotonically."""
        closed, winner = self.clob.get_resolution(descriptor)
        descriptor.mark_resolved(closed, winner)
        return descriptor

    def _prune(self, before: datetime) -> None:
        for key in [k for k in self._cache if k[1] < before]:
            del self._cache[key]
