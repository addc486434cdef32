"""PnL ledger and redemption models."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from updown.models.common import Side


class LedgerKind(StrEnum):
    BUY = "BUY"
    SELL = "SELL"
    REDEEM = "REDEEM"


@dataclass(frozen=True)
class LedgerEntry:
    asset: str
    period_start: datetime | None
    condition_id: str
    kind: LedgerKind
    side: Side | None
    shares: float
    price: float
    recorded_at: datetime

    @property
    def amount(self) -> float:
        return self.shares * self.price

    @property
    def signed_amount(self) -> float:
        """Cash flow: negative for cost basis, positive for proceeds."""
        return -self.amount if self.kind == LedgerKind.BUY else self.amount


@dataclass(frozen=True)
class RedemptionRecord:
    condition_id: str
    asset: str
    period_start: datetime | None
    winning_side: Side | None
    shares: float
    redeemed_at: datetime
