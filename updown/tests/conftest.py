"""Shared test fixtures and venue fakes."""

import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

from updown.config.defaults import DEFAULT_ASSETS
from updown.config.schema import EngineConfig, SignalConfig, StrategyConfig
from updown.execution.errors import MarketNotFoundError, TransientError
from updown.models.execution import OrderHandle, OrderStatus
from updown.models.market import MarketDescriptor, PriceQuote
from updown.pipeline.orchestrator import AssetOrchestrator
from updown.storage.database import connect, run_migrations
from updown.storage.ledger import PnlLedger

# 10:00 America/New_York, start of a 15-minute period
BASE = datetime(2026, 1, 5, 15, 0, tzinfo=UTC)


def at(minutes: float) -> datetime:
    return BASE + timedelta(minutes=minutes)


class FakeLocator:
    """Deterministic markets per (asset, start); resolution set per condition."""

    def __init__(self):
        self.markets: dict[tuple[str, datetime], MarketDescriptor] = {}
        self.missing: set[datetime] = set()
        self.transient: set[datetime] = set()
        self.resolutions: dict[str, tuple[bool, object]] = {}
        self.refresh_calls = 0

    def market(self, asset: str, start: datetime) -> MarketDescriptor:
        key = (asset, start)
        if key not in self.markets:
            ts = int(start.timestamp())
            self.markets[key] = MarketDescriptor(
                market_id=f"m-{ts}",
                slug=f"{asset.lower()}-updown-15m-{ts}",
                up_token=f"{asset}-{ts}-UP",
                down_token=f"{asset}-{ts}-DOWN",
                condition_id=f"0x{ts:064x}",
            )
        return self.markets[key]

    def resolve(self, asset: str, period_start: datetime) -> MarketDescriptor:
        if period_start in self.missing:
            raise MarketNotFoundError(f"no market at {period_start}")
        if period_start in self.transient:
            raise TransientError("gamma timeout")
        return self.market(asset, period_start)

    def refresh(self, descriptor: MarketDescriptor) -> MarketDescriptor:
        self.refresh_calls += 1
        closed, winner = self.resolutions.get(descriptor.condition_id, (False, None))
        descriptor.mark_resolved(closed, winner)
        return descriptor


class FakePrices:
    def __init__(self, default: float | None = 0.5):
        self.prices: dict[str, float | None] = {}
        self.default = default
        self.fail = False

    def set(self, market: MarketDescriptor, up: float | None, down: float | None) -> None:
        self.prices[market.up_token] = up
        self.prices[market.down_token] = down

    def get_token_price(self, token_id: str, side: str = "SELL") -> float | None:
        if self.fail:
            raise TransientError("clob timeout")
        return self.prices.get(token_id, self.default)

    def get_prices(self, market: MarketDescriptor) -> PriceQuote:
        return PriceQuote(
            up_price=self.get_token_price(market.up_token),
            down_price=self.get_token_price(market.down_token),
        )


class FakeExecution:
    """Records every command; fills whatever token is in `fill_tokens`.

    `statuses` forces a status and matched size per token, for partial fills.
    """

    def __init__(self):
        self.placed = []
        self.cancelled = []
        self.sold: list[tuple[str, float]] = []
        self.fill_tokens: set[str] = set()
        self.statuses: dict[str, tuple[OrderStatus, float]] = {}  # token -> (status, matched)
        self.place_errors: dict = {}
        self.cancel_error: Exception | None = None
        self.sell_price: float | None = None

    def place_limit_buy(self, intent):
        error = self.place_errors.get(intent.side)
        if error is not None:
            raise error
        self.placed.append(intent)
        return OrderHandle(intent=intent, external_id=f"ord-{len(self.placed)}",
                           status=OrderStatus.PENDING)

    def query_status(self, handle):
        if handle.is_terminal:
            return handle
        if handle.intent.token_id in self.statuses:
            status, matched = self.statuses[handle.intent.token_id]
            return handle.with_status(status, filled_size=matched)
        if handle.intent.token_id in self.fill_tokens:
            return handle.with_status(OrderStatus.FILLED, filled_size=handle.intent.size)
        return handle

    def cancel_order(self, handle):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(handle)

    def market_sell(self, token_id, size):
        self.sold.append((token_id, size))
        return self.sell_price


@pytest.fixture
def tmp_db(tmp_path: Path) -> sqlite3.Connection:
    """Create a migrated temporary SQLite database."""
    conn = connect(tmp_path / "test.db")
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def default_config() -> EngineConfig:
    """Return default EngineConfig with default assets."""
    return EngineConfig(assets=DEFAULT_ASSETS)


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "strategy": {"price_limit": 0.45, "simulation_mode": True},
        "assets": [{"symbol": "btc", "slug": "bitcoin"}],
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def ledger(tmp_path: Path):
    ledger = PnlLedger.open(tmp_path / "test.db")
    yield ledger
    ledger.close()


@pytest.fixture
def locator() -> FakeLocator:
    return FakeLocator()


@pytest.fixture
def prices() -> FakePrices:
    return FakePrices()


@pytest.fixture
def execution() -> FakeExecution:
    return FakeExecution()


@pytest.fixture
def make_orchestrator(locator, prices, execution, ledger):
    """Build a BTC orchestrator over the fakes with strategy overrides."""
    def _make(signal: dict | None = None, **strategy) -> AssetOrchestrator:
        config = StrategyConfig(signal=SignalConfig(**(signal or {})), **strategy)
        return AssetOrchestrator(
            "BTC", config, locator, prices, execution, ledger, clock=lambda: BASE
        )
    return _make
