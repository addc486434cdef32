"""Tests for market, order and position models."""

from datetime import timedelta

from updown.models.common import Side
from updown.models.execution import OrderHandle, OrderIntent, OrderKind, OrderStatus
from updown.models.ledger import LedgerEntry, LedgerKind
from updown.models.market import (
    MarketDescriptor,
    Period,
    PriceQuote,
    normalize_condition_id,
)
from updown.models.state import AssetState, PeriodPosition, PositionPhase
from updown.tests.conftest import BASE


def _market() -> MarketDescriptor:
    return MarketDescriptor("m1", "btc-updown-15m-1", "tok-up", "tok-down", "0xc1")


def _period() -> Period:
    return Period("BTC", BASE, BASE + timedelta(minutes=15))


def _handle(side: Side, status: OrderStatus, filled: float = 0.0) -> OrderHandle:
    intent = OrderIntent("BTC", _period(), side, f"tok-{side.lower()}", 0.45, 5.0,
                         OrderKind.PRE_ORDER, f"key-{side}")
    return OrderHandle(intent, f"ord-{side}", status, filled)


class TestPeriod:
    def test_equality_by_asset_and_start(self):
        a = Period("BTC", BASE, BASE + timedelta(minutes=15))
        b = Period("BTC", BASE, BASE + timedelta(minutes=16))
        assert a == b
        assert hash(a) == hash(b)
        assert a != Period("ETH", BASE, BASE + timedelta(minutes=15))

    def test_length_and_timestamp(self):
        p = _period()
        assert p.length == timedelta(minutes=15)
        assert p.start_ts == int(BASE.timestamp())


class TestMarketDescriptor:
    def test_tokens(self):
        m = _market()
        assert m.token_for(Side.UP) == "tok-up"
        assert m.side_of("tok-down") == Side.DOWN
        assert m.side_of("other") is None

    def test_resolution_monotonic(self):
        m = _market()
        m.mark_resolved(True, Side.UP)
        m.mark_resolved(False, None)
        assert m.is_closed
        assert m.winning_outcome == Side.UP

        m.mark_resolved(True, Side.DOWN)
        assert m.winning_outcome == Side.UP

    def test_normalize_condition_id(self):
        assert normalize_condition_id("abc") == "0xabc"
        assert normalize_condition_id(" 0xabc ") == "0xabc"


class TestOrders:
    def test_side_opposite(self):
        assert Side.UP.opposite == Side.DOWN
        assert Side.DOWN.opposite == Side.UP

    def test_handle_shares(self):
        assert _handle(Side.UP, OrderStatus.FILLED).shares == 5.0
        assert _handle(Side.UP, OrderStatus.FILLED, 4.0).shares == 4.0
        assert _handle(Side.UP, OrderStatus.PARTIALLY_FILLED, 2.0).shares == 2.0
        assert _handle(Side.UP, OrderStatus.CANCELLED, 3.0).shares == 3.0
        assert _handle(Side.UP, OrderStatus.PENDING).shares == 0.0

    def test_terminal_statuses(self):
        assert not _handle(Side.UP, OrderStatus.PENDING).is_terminal
        assert not _handle(Side.UP, OrderStatus.PARTIALLY_FILLED).is_terminal
        for status in (OrderStatus.FILLED, OrderStatus.REJECTED,
                       OrderStatus.CANCELLED, OrderStatus.EXPIRED):
            assert _handle(Side.UP, status).is_terminal

    def test_with_status_keeps_fill(self):
        h = _handle(Side.UP, OrderStatus.PENDING, 1.0)
        assert h.with_status(OrderStatus.CANCELLED).filled_size == 1.0
        assert h.with_status(OrderStatus.FILLED, filled_size=5.0).filled_size == 5.0

    def test_quote(self):
        q = PriceQuote(0.4, None)
        assert not q.complete
        assert q.price_for(Side.UP) == 0.4


class TestPeriodPosition:
    def test_phase_transitions(self):
        pos = PeriodPosition(_period(), _market(), OrderKind.PRE_ORDER)
        pos.set_handle(Side.UP, _handle(Side.UP, OrderStatus.PENDING))
        pos.set_handle(Side.DOWN, _handle(Side.DOWN, OrderStatus.PENDING))
        assert pos.phase == PositionPhase.PRE_ORDERS_PLACED

        pos.set_handle(Side.UP, _handle(Side.UP, OrderStatus.FILLED))
        assert pos.phase == PositionPhase.ONE_SIDE_FILLED

        pos.set_handle(Side.DOWN, _handle(Side.DOWN, OrderStatus.FILLED))
        assert pos.phase == PositionPhase.BOTH_FILLED

    def test_both_expired_is_unfilled(self):
        pos = PeriodPosition(_period(), _market(), OrderKind.PRE_ORDER)
        pos.set_handle(Side.UP, _handle(Side.UP, OrderStatus.EXPIRED))
        pos.set_handle(Side.DOWN, _handle(Side.DOWN, OrderStatus.REJECTED))
        assert pos.phase == PositionPhase.UNFILLED
        assert not pos.has_open_orders()

    def test_resolved_is_sticky(self):
        pos = PeriodPosition(_period(), _market(), OrderKind.PRE_ORDER)
        pos.phase = PositionPhase.RESOLVED
        pos.set_handle(Side.UP, _handle(Side.UP, OrderStatus.FILLED))
        assert pos.phase == PositionPhase.RESOLVED

    def test_held_shares_excludes_sold(self):
        pos = PeriodPosition(_period(), _market(), OrderKind.PRE_ORDER)
        pos.set_handle(Side.UP, _handle(Side.UP, OrderStatus.FILLED))
        pos.set_handle(Side.DOWN, _handle(Side.DOWN, OrderStatus.FILLED))
        pos.sold_side = Side.DOWN
        assert pos.held_shares(Side.UP) == 5.0
        assert pos.held_shares(Side.DOWN) == 0.0

    def test_partial_fill_is_held(self):
        pos = PeriodPosition(_period(), _market(), OrderKind.PRE_ORDER)
        pos.set_handle(Side.UP, _handle(Side.UP, OrderStatus.CANCELLED, 3.0))
        pos.set_handle(Side.DOWN, _handle(Side.DOWN, OrderStatus.EXPIRED))
        assert pos.filled_sides() == []
        assert pos.matched_sides() == [Side.UP]
        assert pos.held_shares(Side.UP) == 3.0

    def test_asset_state_lookup(self):
        state = AssetState("BTC", current_period=_period())
        pos = PeriodPosition(_period(), _market(), OrderKind.MID_MARKET)
        state.positions.append(pos)
        assert state.mid_orders is pos
        assert state.pre_orders is None


class TestLedgerEntry:
    def test_signed_amount(self):
        buy = LedgerEntry("BTC", BASE, "0xc1", LedgerKind.BUY, Side.UP, 5, 0.45, BASE)
        sell = LedgerEntry("BTC", BASE, "0xc1", LedgerKind.SELL, Side.UP, 5, 0.60, BASE)
        assert buy.signed_amount == -buy.amount
        assert sell.signed_amount == sell.amount
