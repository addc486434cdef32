"""Simulation adapters: price-crossing fills, no venue order or chain calls."""

import itertools
import logging
import threading
from collections.abc import Callable
from datetime import datetime

from updown.ingest.clob_client import ClobClient
from updown.models.common import utc_now
from updown.models.execution import OrderHandle, OrderIntent, OrderStatus

logger = logging.getLogger(__name__)

FILL_TOLERANCE = 0.001


class SimulationAdapter:
    """Execution collaborator for simulation mode.

    A pending intent is FILLED once the observed price for its token is at
    or below its limit; it EXPIRES when its period ends unfilled. Prices
    come from the read-only CLOB client.
    """

    def __init__(
        self,
        prices: ClobClient,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.prices = prices
        self.clock = clock
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def place_limit_buy(self, intent: OrderIntent) -> OrderHandle:
        with self._lock:
            external_id = f"sim-{next(self._ids)}"
        logger.info(
            "SIMULATION: BUY %s %s %.2f @ $%.2f (%s)",
            intent.asset, intent.side, intent.size, intent.target_price, external_id,
        )
        return OrderHandle(intent=intent, external_id=external_id, status=OrderStatus.PENDING)

    def query_status(self, handle: OrderHandle) -> OrderHandle:
        if handle.is_terminal:
            return handle
        intent = handle.intent
        if self.clock() >= intent.period.end:
            return handle.with_status(OrderStatus.EXPIRED)
        price = self.prices.get_token_price(intent.token_id)
        if price is not None and price <= intent.target_price + FILL_TOLERANCE:
            logger.info(
                "SIMULATION: %s %s filled (price $%.4f <= limit $%.2f)",
                intent.asset, intent.side, price, intent.target_price,
            )
            return handle.with_status(OrderStatus.FILLED, filled_size=intent.size)
        return handle

    def cancel_order(self, handle: OrderHandle) -> None:
        logger.info("SIMULATION: cancel %s (%s %s)", handle.external_id, handle.intent.asset, handle.intent.side)

    def market_sell(self, token_id: str, size: float) -> float | None:
        price = self.prices.get_token_price(token_id)
        logger.info(
            "SIMULATION: SELL %.2f of %s at $%s",
            size, token_id[:12], f"{price:.4f}" if price is not None else "?",
        )
        return price


class SimulatedRedeemer:
    def redeem(self, condition_id: str, wallet: str | None) -> str:
        logger.info("SIMULATION: redeem condition %s for %s", condition_id[:18], wallet or "-")
        return f"sim-redeem-{condition_id[:10]}"
