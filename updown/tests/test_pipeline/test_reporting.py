"""Tests for reporting formatters."""

import json

import pytest

from updown.models.common import Side
from updown.models.ledger import RedemptionRecord
from updown.models.state import PositionPhase, TickAction, TickOutcome
from updown.reporting.formatters import (
    format_pnl_json,
    format_pnl_text,
    format_status_text,
    format_tick_line,
)
from updown.tests.conftest import BASE

SUMMARY = {
    "BTC": {"BUY": 4.5, "SELL": 0.7, "REDEEM": 5.0, "pnl": 1.2},
    "ETH": {"BUY": 4.5, "SELL": 0.0, "REDEEM": 0.0, "pnl": -4.5},
}


class TestTickLine:
    def test_no_actions(self):
        line = format_tick_line([TickOutcome("BTC"), TickOutcome("ETH")])
        assert line == "Tick: 2 assets, no actions"

    def test_actions_listed(self):
        line = format_tick_line([
            TickOutcome("BTC", TickAction.SOLD_LOSER, "sold DOWN"),
            TickOutcome("ETH"),
        ])
        assert "BTC SOLD_LOSER (sold DOWN)" in line
        assert "ETH" not in line


class TestStatus:
    def test_phases_and_pnl(self):
        text = format_status_text(
            BASE, {"ETH": PositionPhase.IDLE, "BTC": PositionPhase.BOTH_FILLED}, -1.5, "simulation"
        )
        lines = text.splitlines()
        assert "simulation" in lines[0]
        assert "BTC" in lines[1] and "BOTH_FILLED" in lines[1]
        assert lines[-1] == "Realized P&L: $-1.50"


class TestPnl:
    def test_text(self):
        text = format_pnl_text(SUMMARY, [])
        assert "Total realized P&L: $-3.30" in text
        assert "Redemptions recorded: 0" in text

    def test_text_empty(self):
        assert format_pnl_text({}, []) == "No ledger entries"

    def test_json(self):
        record = RedemptionRecord("0x01", "BTC", BASE, Side.UP, 5.0, BASE)
        data = json.loads(format_pnl_json(SUMMARY, [record]))
        assert data["total_pnl"] == pytest.approx(-3.3)
        assert data["redemptions"][0]["winning_side"] == "UP"
        assert data["assets"]["BTC"]["REDEEM"] == 5.0
