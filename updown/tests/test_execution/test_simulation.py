"""Tests for simulated execution and redemption."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from updown.execution.simulation import SimulatedRedeemer, SimulationAdapter
from updown.models.common import Side
from updown.models.execution import OrderIntent, OrderKind, OrderStatus
from updown.models.market import Period
from updown.tests.conftest import BASE, at


def _intent() -> OrderIntent:
    period = Period("BTC", BASE, BASE + timedelta(minutes=15))
    return OrderIntent("BTC", period, Side.UP, "tok-up", 0.45, 5.0, OrderKind.PRE_ORDER, "k")


@pytest.fixture
def prices():
    p = MagicMock()
    p.get_token_price.return_value = 0.50
    return p


class TestSimulationAdapter:
    def test_place_is_pending(self, prices):
        adapter = SimulationAdapter(prices, clock=lambda: at(1))
        first = adapter.place_limit_buy(_intent())
        second = adapter.place_limit_buy(_intent())
        assert first.status == OrderStatus.PENDING
        assert first.external_id != second.external_id

    def test_fills_when_price_reaches_limit(self, prices):
        adapter = SimulationAdapter(prices, clock=lambda: at(5))
        handle = adapter.place_limit_buy(_intent())
        assert adapter.query_status(handle).status == OrderStatus.PENDING

        prices.get_token_price.return_value = 0.44
        filled = adapter.query_status(handle)
        assert filled.status == OrderStatus.FILLED
        assert filled.shares == 5.0

    def test_no_fill_above_limit(self, prices):
        prices.get_token_price.return_value = 0.46
        adapter = SimulationAdapter(prices, clock=lambda: at(5))
        handle = adapter.place_limit_buy(_intent())
        assert adapter.query_status(handle).status == OrderStatus.PENDING

    def test_expires_after_period_end(self, prices):
        prices.get_token_price.return_value = 0.10
        adapter = SimulationAdapter(prices, clock=lambda: at(15))
        handle = adapter.place_limit_buy(_intent())
        assert adapter.query_status(handle).status == OrderStatus.EXPIRED

    def test_market_sell_uses_quote(self, prices):
        prices.get_token_price.return_value = 0.04
        adapter = SimulationAdapter(prices)
        assert adapter.market_sell("tok-down", 5.0) == 0.04


class TestSimulatedRedeemer:
    def test_returns_reference(self):
        assert SimulatedRedeemer().redeem("0xabcdef1234", None).startswith("sim-redeem-")
