"""Execution and order models."""

from dataclasses import dataclass, replace
from enum import StrEnum

from updown.models.common import Side
from updown.models.market import Period


class OrderStatus(StrEnum):
    PENDING = "PENDING"
    FILLED = "FILLED"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.FILLED, OrderStatus.REJECTED, OrderStatus.CANCELLED, OrderStatus.EXPIRED}
)


class OrderKind(StrEnum):
    PRE_ORDER = "PRE_ORDER"    # next period's market, fixed price_limit
    MID_MARKET = "MID_MARKET"  # current period's market, derived prices


@dataclass(frozen=True)
class OrderIntent:
    asset: str
    period: Period
    side: Side
    token_id: str
    target_price: float
    size: float
    kind: OrderKind
    idempotency_key: str


@dataclass(frozen=True)
class OrderHandle:
    intent: OrderIntent
    external_id: str
    status: OrderStatus
    filled_size: float = 0.0

    @property
    def is_filled(self) -> bool:
        return self.status == OrderStatus.FILLED

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def shares(self) -> float:
        """Shares held from this order.

        A FILLED order holds its full size; any other status holds whatever
        was matched before it stopped (partial fills, cancelled or expired
        remainders).
        """
        if self.is_filled:
            return self.filled_size or self.intent.size
        return self.filled_size

    def with_status(
        self, status: OrderStatus, filled_size: float | None = None
    ) -> "OrderHandle":
        return replace(
            self,
            status=status,
            filled_size=self.filled_size if filled_size is None else filled_size,
        )
