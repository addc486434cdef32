"""Per-asset period lifecycle: placement, fill tracking and risk exits.

One AssetOrchestrator owns one AssetState. Each tick runs under the
state's lock in a fixed order:

    1. settle positions whose period ended
    2. refresh fills of started positions
    3. manage positions (loser sale, one-side risk exit, pending cancel)
    4. next-period pre-order placement
    5. current-period mid-market placement

and issues at most one order command.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from updown.config.schema import RiskManagementMode, StrategyConfig
from updown.execution.errors import (
    MarketNotFoundError,
    OrderRejectedError,
    TransientError,
    VenueError,
)
from updown.execution.idempotency import generate_idempotency_key
from updown.ingest.period_clock import (
    current_and_next,
    minutes_elapsed,
    minutes_remaining,
    minutes_until,
)
from updown.models.common import Side, utc_now
from updown.models.execution import OrderHandle, OrderIntent, OrderKind, OrderStatus
from updown.models.ledger import LedgerKind
from updown.models.market import MarketDescriptor, Period, PriceQuote
from updown.models.signal import Signal
from updown.models.state import (
    AssetState,
    PeriodPosition,
    PositionPhase,
    TickAction,
    TickOutcome,
)
from updown.signal.evaluator import evaluate, is_danger_price
from updown.signal.pricing import mid_market_prices

logger = logging.getLogger(__name__)


class AssetOrchestrator:
    def __init__(
        self,
        asset: str,
        config: StrategyConfig,
        locator,
        prices,
        execution,
        ledger=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.asset = asset
        self.config = config
        self.locator = locator
        self.prices = prices
        self.execution = execution
        self.ledger = ledger
        self.clock = clock
        self.state = AssetState(asset=asset)

    def tick(self, now: datetime | None = None) -> TickOutcome:
        now = now or self.clock()
        with self.state.lock:
            self._advance_periods(now)
            self._settle_ended(now)
            self._drop_missed(now)
            self._refresh_fills(now)
            outcome = (
                self._manage_positions(now)
                or self._maybe_place_pre_orders(now)
                or self._maybe_place_mid_orders(now)
            )
        return outcome or TickOutcome(self.asset)

    def current_phase(self, now: datetime | None = None) -> PositionPhase:
        """Phase of the most relevant position, for status reporting."""
        now = now or self.clock()
        with self.state.lock:
            for pos in (self.state.pre_orders, self.state.mid_orders,
                        self.state.position_for(self.state.current_period, OrderKind.PRE_ORDER)):
                if pos is not None:
                    return pos.phase
            nxt = self.state.next_period
            if nxt is not None and minutes_until(nxt.start, now) <= self.config.place_order_before_mins:
                return PositionPhase.AWAITING_PLACEMENT_WINDOW
        return PositionPhase.IDLE

    # --- Period bookkeeping ---

    def _advance_periods(self, now: datetime) -> None:
        current, nxt = current_and_next(
            now, self.config.period_minutes, self.config.zone, self.asset
        )
        if self.state.current_period == current:
            return
        if self.state.current_period is not None:
            logger.info(
                "%s | Period rollover -> %s", self.asset, current.start.isoformat()
            )
        self.state.current_period = current
        self.state.next_period = nxt

    def _settle_ended(self, now: datetime) -> None:
        """Drop ended positions that hold no shares.

        Positions holding shares, partial fills included, stay until the
        redemption loop resolves them. Open orders are re-polled first; if
        that poll fails the position is kept, since a timeout says nothing
        about fills.
        """
        for pos in list(self.state.positions):
            if now < pos.period.end:
                continue
            if pos.has_open_orders() and not self._refresh_position(pos):
                continue
            if pos.matched_sides():
                continue
            logger.info(
                "%s | %s for %s ended with no fills",
                self.asset, pos.kind, pos.period.start.isoformat(),
            )
            self.state.positions.remove(pos)

    def _refresh_fills(self, now: datetime) -> None:
        for pos in self.state.positions:
            # fills are only tracked once the market has started
            if now < pos.period.start or now >= pos.period.end:
                continue
            if pos.has_open_orders():
                self._refresh_position(pos)

    def _refresh_position(self, pos: PeriodPosition) -> bool:
        """Re-poll open handles. Returns False if any poll failed."""
        ok = True
        for side in Side:
            handle = pos.handle(side)
            if handle is None or handle.is_terminal:
                continue
            try:
                updated = self.execution.query_status(handle)
            except VenueError as e:
                logger.debug("%s | status poll for %s failed: %s", self.asset, side, e)
                ok = False
                continue
            pos.set_handle(side, updated)
            self._record_matched(pos, side, updated)
        return ok

    def _record_matched(self, pos: PeriodPosition, side: Side, handle: OrderHandle) -> None:
        """Write a BUY for shares matched since the last recorded amount."""
        new_shares = handle.shares - pos.recorded_shares.get(side, 0.0)
        if new_shares <= 0:
            return
        pos.recorded_shares[side] = handle.shares
        logger.info(
            "%s | %s %s %s: %.2f @ $%.2f",
            self.asset, pos.kind, side,
            "filled" if handle.is_filled else "partially filled",
            new_shares, handle.intent.target_price,
        )
        self._record(pos, LedgerKind.BUY, side, new_shares, handle.intent.target_price)

    # --- Position management ---

    def _manage_positions(self, now: datetime) -> TickOutcome | None:
        for pos in self.state.positions:
            if now < pos.period.start or now >= pos.period.end:
                continue
            outcome = (
                self._retry_cancel(pos)
                or self._sell_opposite(pos, now)
                or self._one_side_exit(pos, now)
            )
            if outcome is not None:
                return outcome
        return None

    def _sell_opposite(self, pos: PeriodPosition, now: datetime) -> TickOutcome | None:
        """Both sides filled: once one side is nearly certain late in the
        period, sell the other and hold the winner to resolution."""
        if pos.phase != PositionPhase.BOTH_FILLED:
            return None
        if pos.sold_side is not None or pos.risk_exit_side is not None:
            return None
        remaining = minutes_remaining(pos.period, now)
        if remaining > self.config.sell_opposite_time_remaining:
            return None
        quote = self._quote(pos.market)
        if quote is None:
            return None

        threshold = self.config.sell_opposite_above
        if quote.up_price is not None and quote.up_price >= threshold:
            winner = Side.UP
        elif quote.down_price is not None and quote.down_price >= threshold:
            winner = Side.DOWN
        else:
            return None

        loser = winner.opposite
        shares = pos.held_shares(loser)
        fill_price = self._market_sell(pos, loser, shares)
        if fill_price is None:
            return None
        pos.sold_side = loser
        logger.info(
            "%s | Both filled, %s $%.2f >= %.2f with %.1fmin left: sold %s, holding %s",
            self.asset, winner, quote.price_for(winner), threshold, remaining, loser, winner,
        )
        self._record(pos, LedgerKind.SELL, loser, shares, fill_price or quote.price_for(loser) or 0.0)
        return TickOutcome(self.asset, TickAction.SOLD_LOSER, f"sold {loser}")

    def _one_side_exit(self, pos: PeriodPosition, now: datetime) -> TickOutcome | None:
        if pos.phase != PositionPhase.ONE_SIDE_FILLED or pos.risk_exit_side is not None:
            return None
        signal_cfg = self.config.signal
        mode = signal_cfg.one_side_buy_risk_management
        if mode == RiskManagementMode.NONE:
            return None

        filled = pos.filled_sides()[0]
        quote = None
        if mode == RiskManagementMode.PRICE:
            quote = self._quote(pos.market)
            price = quote.price_for(filled) if quote is not None else None
            if not is_danger_price(price, signal_cfg):
                return None
            reason = f"price ${price:.2f} <= danger ${signal_cfg.danger_price:.2f}"
        else:
            elapsed = minutes_elapsed(pos.period, now)
            if elapsed < signal_cfg.danger_time_passed:
                return None
            reason = f"{elapsed:.1f}min since start >= {signal_cfg.danger_time_passed}min"

        shares = pos.held_shares(filled)
        fill_price = self._market_sell(pos, filled, shares)
        if fill_price is None:
            return None
        pos.risk_exit_side = filled
        logger.warning(
            "%s | Only %s filled, %s: sold %.2f shares", self.asset, filled, reason, shares
        )
        quoted = quote.price_for(filled) if quote is not None else None
        self._record(pos, LedgerKind.SELL, filled, shares, fill_price or quoted or 0.0)

        unfilled = pos.handle(filled.opposite)
        if unfilled is not None and not unfilled.is_terminal:
            pos.cancel_pending = True
            self._cancel_unfilled(pos)
        return TickOutcome(self.asset, TickAction.RISK_EXIT, f"sold {filled}")

    def _retry_cancel(self, pos: PeriodPosition) -> TickOutcome | None:
        if not pos.cancel_pending:
            return None
        self._cancel_unfilled(pos)
        return TickOutcome(self.asset, TickAction.CANCELLED, "retried cancel")

    def _cancel_unfilled(self, pos: PeriodPosition) -> None:
        side = pos.risk_exit_side.opposite if pos.risk_exit_side else None
        handle = pos.handle(side) if side is not None else None
        if handle is None or handle.is_terminal:
            pos.cancel_pending = False
            return
        try:
            self.execution.cancel_order(handle)
        except VenueError as e:
            logger.warning("%s | Cancel of %s order failed, will retry: %s", self.asset, side, e)
            return
        pos.set_handle(side, handle.with_status(OrderStatus.CANCELLED))
        pos.cancel_pending = False
        logger.info("%s | Cancelled unfilled %s order %s", self.asset, side, handle.external_id)

    def _market_sell(self, pos: PeriodPosition, side: Side, shares: float) -> float | None:
        """Returns the fill price (0.0 if unknown), or None if the sale failed."""
        if shares <= 0:
            return None
        try:
            price = self.execution.market_sell(pos.market.token_for(side), shares)
        except VenueError as e:
            logger.error("%s | Failed to sell %s: %s", self.asset, side, e)
            return None
        return price or 0.0

    # --- Placement ---

    def _maybe_place_pre_orders(self, now: datetime) -> TickOutcome | None:
        nxt = self.state.next_period
        existing = self.state.pre_orders
        if existing is not None:
            return self._retry_unplaced(existing, now)
        if self.state.pre_decided_for == nxt.start:
            return None
        if minutes_until(nxt.start, now) > self.config.place_order_before_mins:
            return None

        signal = self._placement_signal(self.state.current_period, now)
        if signal is None:
            return None
        self.state.last_signal = signal
        if signal != Signal.GOOD:
            self.state.pre_decided_for = nxt.start
            if signal == Signal.UNKNOWN:
                logger.warning(
                    "%s | No price data for current market, skipping pre-orders for %s",
                    self.asset, nxt.start.isoformat(),
                )
            else:
                logger.info(
                    "%s | Bad signal for current market, skipping pre-orders for %s",
                    self.asset, nxt.start.isoformat(),
                )
            return TickOutcome(self.asset, TickAction.SKIPPED_SIGNAL, signal.value)

        market = self._resolve(nxt)
        if market is None:
            return None

        price = self.config.price_limit
        position = PeriodPosition(period=nxt, market=market, kind=OrderKind.PRE_ORDER)
        self.state.positions.append(position)
        self.state.pre_decided_for = nxt.start
        logger.info(
            "%s | Placing pre-orders for %s: Up/Down @ $%.2f x %.2f (starts in %.1fmin)",
            self.asset, market.slug, price, self.config.shares, minutes_until(nxt.start, now),
        )
        self._place_pair(position, {Side.UP: price, Side.DOWN: price}, self.config.shares)
        return TickOutcome(self.asset, TickAction.PLACED_PRE_ORDERS, market.slug)

    def _maybe_place_mid_orders(self, now: datetime) -> TickOutcome | None:
        if not self.config.signal.mid_market_enabled:
            return None
        current = self.state.current_period
        existing = self.state.mid_orders
        if existing is not None:
            return self._retry_unplaced(existing, now)
        if self.state.mid_placed_for == current.start:
            return None
        if minutes_until(self.state.next_period.start, now) <= self.config.place_order_before_mins:
            return None
        if minutes_remaining(current, now) < self.config.signal.danger_time_passed:
            return None

        market = self._resolve(current)
        if market is None or market.is_closed:
            return None
        quote = self._quote(market)
        if quote is None or not quote.complete:
            return None

        if self.config.signal.enabled:
            signal = evaluate(
                quote.up_price, quote.down_price, minutes_remaining(current, now), self.config.signal
            )
        else:
            signal = Signal.GOOD
        self.state.last_signal = signal
        if signal != Signal.GOOD:
            return None

        up_price, down_price = mid_market_prices(quote.up_price, quote.down_price)
        shares = self.config.effective_mid_market_shares
        position = PeriodPosition(period=current, market=market, kind=OrderKind.MID_MARKET)
        self.state.positions.append(position)
        self.state.mid_placed_for = current.start
        logger.info(
            "%s | Good signal, placing mid-market orders: Up @ $%.2f, Down @ $%.2f "
            "(current Up $%.2f, Down $%.2f)",
            self.asset, up_price, down_price, quote.up_price, quote.down_price,
        )
        self._place_pair(position, {Side.UP: up_price, Side.DOWN: down_price}, shares)
        return TickOutcome(self.asset, TickAction.PLACED_MID_ORDERS, market.slug)

    def _placement_open(self, pos: PeriodPosition, now: datetime) -> bool:
        if pos.kind == OrderKind.PRE_ORDER:
            return now < pos.period.start
        return minutes_remaining(pos.period, now) >= self.config.signal.danger_time_passed

    def _drop_missed(self, now: datetime) -> None:
        """Forget sides whose placement window closed before the venue took them."""
        for pos in self.state.positions:
            unplaced = pos.unplaced_sides()
            if not unplaced or self._placement_open(pos, now):
                continue
            for side in unplaced:
                logger.warning(
                    "%s | Missed %s %s order for %s, proceeding with what filled",
                    self.asset, pos.kind, side, pos.period.start.isoformat(),
                )
                del pos.intents[side]
            pos.update_phase()

    def _retry_unplaced(self, pos: PeriodPosition, now: datetime) -> TickOutcome | None:
        unplaced = pos.unplaced_sides()
        if not unplaced or not self._placement_open(pos, now):
            return None
        for side in unplaced:
            self._submit(pos, pos.intents[side])
        return TickOutcome(self.asset, TickAction.RETRIED_PLACEMENT, ",".join(unplaced))

    def _place_pair(
        self, pos: PeriodPosition, prices: dict[Side, float], size: float
    ) -> None:
        for side in Side:
            intent = OrderIntent(
                asset=self.asset,
                period=pos.period,
                side=side,
                token_id=pos.market.token_for(side),
                target_price=prices[side],
                size=size,
                kind=pos.kind,
                idempotency_key=generate_idempotency_key(
                    self.asset, pos.period.start, pos.kind, side
                ),
            )
            pos.intents[side] = intent
            self._submit(pos, intent)

    def _submit(self, pos: PeriodPosition, intent: OrderIntent) -> None:
        try:
            handle = self.execution.place_limit_buy(intent)
        except OrderRejectedError as e:
            logger.warning("%s | %s order rejected: %s", self.asset, intent.side, e)
            handle = OrderHandle(intent=intent, external_id="", status=OrderStatus.REJECTED)
        except TransientError as e:
            logger.warning(
                "%s | Placing %s failed, will retry next tick: %s", self.asset, intent.side, e
            )
            return
        pos.set_handle(intent.side, handle)
        self._record_matched(pos, intent.side, handle)

    # --- Collaborator helpers ---

    def _placement_signal(self, period: Period, now: datetime) -> Signal | None:
        """Signal on `period`'s market. None means "ask again next tick".

        A market or price the venue refuses to serve counts as UNKNOWN.
        """
        if not self.config.signal.enabled:
            return Signal.GOOD
        try:
            market = self.locator.resolve(self.asset, period.start)
        except MarketNotFoundError:
            return Signal.UNKNOWN
        except TransientError as e:
            logger.warning("%s | Market lookup failed: %s", self.asset, e)
            return None
        except VenueError as e:
            logger.error("%s | Market lookup refused: %s", self.asset, e)
            return Signal.UNKNOWN
        if market.is_closed:
            return Signal.UNKNOWN
        try:
            quote = self.prices.get_prices(market)
        except TransientError as e:
            logger.warning("%s | Price fetch failed: %s", self.asset, e)
            return None
        except VenueError as e:
            logger.error("%s | Price fetch refused: %s", self.asset, e)
            return Signal.UNKNOWN
        return evaluate(
            quote.up_price, quote.down_price, minutes_remaining(period, now), self.config.signal
        )

    def _resolve(self, period: Period) -> MarketDescriptor | None:
        try:
            return self.locator.resolve(self.asset, period.start)
        except MarketNotFoundError:
            logger.debug("%s | Market for %s not available yet", self.asset, period.start.isoformat())
        except VenueError as e:
            logger.warning("%s | Market lookup failed: %s", self.asset, e)
        return None

    def _quote(self, market: MarketDescriptor) -> PriceQuote | None:
        try:
            return self.prices.get_prices(market)
        except VenueError as e:
            logger.warning("%s | Price fetch failed: %s", self.asset, e)
            return None

    def _record(
        self, pos: PeriodPosition, kind: LedgerKind, side: Side, shares: float, price: float
    ) -> None:
        if self.ledger is None:
            return
        self.ledger.record(
            asset=self.asset,
            kind=kind,
            condition_id=pos.market.condition_id,
            side=side,
            shares=shares,
            price=price,
            period_start=pos.period.start,
        )
