"""Market data models for Up/Down period markets."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from updown.models.common import Side

logger = logging.getLogger(__name__)


def normalize_condition_id(condition_id: str) -> str:
    cid = condition_id.strip()
    return cid if cid.startswith("0x") else f"0x{cid}"


@dataclass(frozen=True)
class Period:
    """One fixed-length trading window. Instants are UTC.

    Equality and hashing use (asset, start) only.
    """

    asset: str
    start: datetime
    end: datetime = field(compare=False)

    @property
    def start_ts(self) -> int:
        return int(self.start.timestamp())

    @property
    def length(self) -> timedelta:
        return self.end - self.start


@dataclass
class MarketDescriptor:
    market_id: str
    slug: str
    up_token: str
    down_token: str
    condition_id: str
    is_closed: bool = False
    winning_outcome: Side | None = None

    def token_for(self, side: Side) -> str:
        return self.up_token if side is Side.UP else self.down_token

    def side_of(self, token_id: str) -> Side | None:
        if token_id == self.up_token:
            return Side.UP
        if token_id == self.down_token:
            return Side.DOWN
        return None

    def mark_resolved(self, is_closed: bool, winner: Side | None) -> None:
        """Apply closure facts. Both fields only ever move forward."""
        if is_closed:
            self.is_closed = True
        if winner is None:
            return
        if self.winning_outcome is None:
            self.winning_outcome = winner
        elif self.winning_outcome != winner:
            logger.warning(
                "Ignoring winner change for %s: %s -> %s",
                self.condition_id, self.winning_outcome, winner,
            )


@dataclass(frozen=True)
class PriceQuote:
    up_price: float | None
    down_price: float | None

    @property
    def complete(self) -> bool:
        return self.up_price is not None and self.down_price is not None

    def price_for(self, side: Side) -> float | None:
        return self.up_price if side is Side.UP else self.down_price
