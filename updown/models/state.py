"""Per-asset orchestrator state."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from updown.models.common import Side
from updown.models.execution import OrderHandle, OrderIntent, OrderKind
from updown.models.market import MarketDescriptor, Period
from updown.models.signal import Signal


class PositionPhase(StrEnum):
    IDLE = "IDLE"
    AWAITING_PLACEMENT_WINDOW = "AWAITING_PLACEMENT_WINDOW"
    PRE_ORDERS_PLACED = "PRE_ORDERS_PLACED"
    UNFILLED = "UNFILLED"
    ONE_SIDE_FILLED = "ONE_SIDE_FILLED"
    BOTH_FILLED = "BOTH_FILLED"
    RESOLVED = "RESOLVED"


@dataclass(eq=False)
class PeriodPosition:
    """Orders and holdings for one pair placed on one period's market.

    `intents` holds every side we meant to place; a side with an intent
    but no handle has not been accepted by the venue yet.
    """

    period: Period
    market: MarketDescriptor
    kind: OrderKind
    intents: dict[Side, OrderIntent] = field(default_factory=dict)
    up: OrderHandle | None = None
    down: OrderHandle | None = None
    sold_side: Side | None = None        # loser sold while holding both
    risk_exit_side: Side | None = None   # lone filled side sold early
    cancel_pending: bool = False
    recorded_shares: dict[Side, float] = field(default_factory=dict)  # BUYs in the ledger
    redeemed: bool = False
    redeem_in_flight: bool = False
    phase: PositionPhase = PositionPhase.PRE_ORDERS_PLACED

    def handle(self, side: Side) -> OrderHandle | None:
        return self.up if side is Side.UP else self.down

    def set_handle(self, side: Side, handle: OrderHandle) -> None:
        if side is Side.UP:
            self.up = handle
        else:
            self.down = handle
        self.update_phase()

    def handles(self) -> list[OrderHandle]:
        return [h for h in (self.up, self.down) if h is not None]

    def filled_sides(self) -> list[Side]:
        sides = []
        for side in Side:
            handle = self.handle(side)
            if handle is not None and handle.is_filled:
                sides.append(side)
        return sides

    def matched_sides(self) -> list[Side]:
        """Sides with any matched shares, filled in full or not."""
        sides = []
        for side in Side:
            handle = self.handle(side)
            if handle is not None and handle.shares > 0:
                sides.append(side)
        return sides

    def unplaced_sides(self) -> list[Side]:
        return [s for s in self.intents if self.handle(s) is None]

    def has_open_orders(self) -> bool:
        return any(not h.is_terminal for h in self.handles())

    def held_shares(self, side: Side) -> float:
        """Filled shares of `side` still held (not sold)."""
        if side in (self.sold_side, self.risk_exit_side):
            return 0.0
        handle = self.handle(side)
        return handle.shares if handle is not None else 0.0

    def update_phase(self) -> None:
        if self.phase == PositionPhase.RESOLVED:
            return
        filled = self.filled_sides()
        if len(filled) == 2:
            self.phase = PositionPhase.BOTH_FILLED
        elif len(filled) == 1:
            self.phase = PositionPhase.ONE_SIDE_FILLED
        elif self.has_open_orders() or self.unplaced_sides():
            self.phase = PositionPhase.PRE_ORDERS_PLACED
        else:
            self.phase = PositionPhase.UNFILLED


@dataclass
class AssetState:
    asset: str
    current_period: Period | None = None
    next_period: Period | None = None
    positions: list[PeriodPosition] = field(default_factory=list)
    pre_decided_for: datetime | None = None  # next-period start already decided
    mid_placed_for: datetime | None = None   # current-period start already traded
    last_signal: Signal = Signal.UNKNOWN
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def position_for(self, period: Period | None, kind: OrderKind) -> PeriodPosition | None:
        if period is None:
            return None
        for p in self.positions:
            if p.kind == kind and p.period == period:
                return p
        return None

    @property
    def pre_orders(self) -> PeriodPosition | None:
        return self.position_for(self.next_period, OrderKind.PRE_ORDER)

    @property
    def mid_orders(self) -> PeriodPosition | None:
        return self.position_for(self.current_period, OrderKind.MID_MARKET)


class TickAction(StrEnum):
    NONE = "NONE"
    PLACED_PRE_ORDERS = "PLACED_PRE_ORDERS"
    PLACED_MID_ORDERS = "PLACED_MID_ORDERS"
    RETRIED_PLACEMENT = "RETRIED_PLACEMENT"
    SKIPPED_SIGNAL = "SKIPPED_SIGNAL"
    SOLD_LOSER = "SOLD_LOSER"
    RISK_EXIT = "RISK_EXIT"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class TickOutcome:
    asset: str
    action: TickAction = TickAction.NONE
    detail: str = ""

    @property
    def acted(self) -> bool:
        return self.action != TickAction.NONE
