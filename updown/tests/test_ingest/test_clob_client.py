"""Tests for the CLOB and Data API read clients."""

import httpx
import pytest
import respx

from updown.execution.errors import TransientError
from updown.ingest.clob_client import ClobClient
from updown.ingest.data_client import DataApiClient
from updown.models.common import Side
from updown.models.market import MarketDescriptor

CLOB = "https://test-clob.example.com"
DATA = "https://test-data.example.com"


@pytest.fixture
def clob() -> ClobClient:
    return ClobClient(base_url=CLOB, backoff_seconds=0)


@pytest.fixture
def market() -> MarketDescriptor:
    return MarketDescriptor("m1", "btc-updown-15m-1", "111", "222", "0xcond")


class TestPrices:
    @respx.mock
    def test_token_price(self, clob: ClobClient):
        respx.get(f"{CLOB}/price", params={"token_id": "111", "side": "SELL"}).mock(
            return_value=httpx.Response(200, json={"price": "0.47"})
        )
        assert clob.get_token_price("111") == pytest.approx(0.47)

    @respx.mock
    def test_no_book_is_none(self, clob: ClobClient):
        respx.get(f"{CLOB}/price").mock(return_value=httpx.Response(404))
        assert clob.get_token_price("111") is None

    @respx.mock
    def test_empty_price_is_none(self, clob: ClobClient):
        respx.get(f"{CLOB}/price").mock(return_value=httpx.Response(200, json={"price": ""}))
        assert clob.get_token_price("111") is None

    @respx.mock
    def test_quote_for_market(self, clob: ClobClient, market: MarketDescriptor):
        respx.get(f"{CLOB}/price", params={"token_id": "111"}).mock(
            return_value=httpx.Response(200, json={"price": "0.55"})
        )
        respx.get(f"{CLOB}/price", params={"token_id": "222"}).mock(
            return_value=httpx.Response(200, json={"price": "0.46"})
        )
        quote = clob.get_prices(market)
        assert quote.up_price == pytest.approx(0.55)
        assert quote.down_price == pytest.approx(0.46)

    @respx.mock
    def test_outage_is_transient(self, clob: ClobClient):
        respx.get(f"{CLOB}/price").mock(return_value=httpx.Response(503))
        with pytest.raises(TransientError):
            clob.get_token_price("111")


class TestResolution:
    @respx.mock
    def test_winner(self, clob: ClobClient, market: MarketDescriptor):
        respx.get(f"{CLOB}/markets/0xcond").mock(return_value=httpx.Response(200, json={
            "closed": True,
            "tokens": [
                {"token_id": "111", "outcome": "Up", "winner": False},
                {"token_id": "222", "outcome": "Down", "winner": True},
            ],
        }))
        assert clob.get_resolution(market) == (True, Side.DOWN)

    @respx.mock
    def test_open_market(self, clob: ClobClient, market: MarketDescriptor):
        respx.get(f"{CLOB}/markets/0xcond").mock(return_value=httpx.Response(200, json={
            "closed": False,
            "tokens": [{"token_id": "111", "winner": False}, {"token_id": "222", "winner": False}],
        }))
        assert clob.get_resolution(market) == (False, None)


class TestDataApi:
    POSITIONS = [
        {"conditionId": "aa", "redeemable": True, "currentValue": 3.0},
        {"conditionId": "0xaa", "redeemable": True, "currentValue": 2.0},
        {"conditionId": "0xbb", "redeemable": False, "currentValue": 9.0},
        {"conditionId": "0xcc", "redeemable": True, "currentValue": None},
    ]

    @respx.mock
    def test_list_redeemable(self):
        respx.get(f"{DATA}/positions", params={"user": "0xw"}).mock(
            return_value=httpx.Response(200, json=self.POSITIONS)
        )
        client = DataApiClient(base_url=DATA, backoff_seconds=0)
        assert client.list_redeemable("0xw") == {"0xaa", "0xcc"}

    @respx.mock
    def test_redeemable_value(self):
        respx.get(f"{DATA}/positions").mock(return_value=httpx.Response(200, json=self.POSITIONS))
        client = DataApiClient(base_url=DATA, backoff_seconds=0)
        assert client.redeemable_value("0xw") == {"0xaa": 5.0, "0xcc": 0.0}

    @respx.mock
    def test_unknown_wallet(self):
        respx.get(f"{DATA}/positions").mock(return_value=httpx.Response(404))
        client = DataApiClient(base_url=DATA, backoff_seconds=0)
        assert client.get_positions("0xw") == []
