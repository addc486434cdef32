"""Live execution adapter: routes orders through the Polymarket CLOB SDK.

py-clob-client performs order signing; this module maps its responses and
exceptions onto OrderHandle and the venue error taxonomy.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

from py_clob_client.client import ClobClient as SdkClobClient
from py_clob_client.clob_types import ApiCreds, MarketOrderArgs, OrderArgs, OrderType
from py_clob_client.exceptions import PolyApiException
from py_clob_client.order_builder.constants import BUY, SELL

from updown.config.schema import VenueConfig
from updown.execution.errors import (
    ConfigurationError,
    OrderRejectedError,
    TransientError,
    is_transient_status,
)
from updown.execution.idempotency import IdempotencyStore
from updown.models.execution import OrderHandle, OrderIntent, OrderStatus

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def map_order_status(order: dict, requested_size: float) -> tuple[OrderStatus, float]:
    """Translate a CLOB order record into (status, matched size)."""
    status = str(order.get("status", "")).upper()
    matched = _to_float(order.get("size_matched"))
    original = _to_float(order.get("original_size")) or requested_size

    if matched > 0 and matched >= original:
        return OrderStatus.FILLED, matched
    if status.startswith("CANCELED") or status.startswith("CANCELLED"):
        return OrderStatus.CANCELLED, matched
    if status == "EXPIRED":
        return OrderStatus.EXPIRED, matched
    if status == "MATCHED":
        return OrderStatus.FILLED, matched or original
    if matched > 0:
        return OrderStatus.PARTIALLY_FILLED, matched
    return OrderStatus.PENDING, matched


class LiveAdapter:
    """Execute orders on the Polymarket CLOB.

    Every SDK call is serialized through one lock so per-asset worker
    threads can share the adapter. With an IdempotencyStore, an intent
    already submitted (same asset, period, kind and side) returns the
    stored handle instead of placing a second order.
    """

    def __init__(
        self,
        venue: VenueConfig,
        store: IdempotencyStore | None = None,
        client: Any = None,
    ):
        self.venue = venue
        self.store = store
        self._client = client
        self._lock = threading.RLock()

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self.venue.private_key:
            raise ConfigurationError("Live trading requires venue.private_key")
        private_key = self.venue.private_key
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key

        client = SdkClobClient(
            host=self.venue.clob_api_url,
            chain_id=self.venue.chain_id,
            key=private_key,
            funder=self.venue.proxy_wallet_address or "",
            signature_type=self.venue.signature_type,
        )
        if self.venue.api_key and self.venue.api_secret and self.venue.api_passphrase:
            client.set_api_creds(ApiCreds(
                api_key=self.venue.api_key,
                api_secret=self.venue.api_secret,
                api_passphrase=self.venue.api_passphrase,
            ))
            logger.info("CLOB client initialized with provided API credentials")
        else:
            client.set_api_creds(client.create_or_derive_api_creds())
            logger.info("CLOB client initialized with derived API credentials")
        self._client = client
        return client

    def _call(self, label: str, fn: Callable[[Any], Any]) -> Any:
        with self._lock:
            try:
                return fn(self._get_client())
            except PolyApiException as e:
                status = getattr(e, "status_code", None)
                if status is not None and not is_transient_status(status):
                    raise OrderRejectedError(f"{label}: {e}", status) from e
                raise TransientError(f"{label}: {e}", status) from e

    # --- Orders ---

    def place_limit_buy(self, intent: OrderIntent) -> OrderHandle:
        if self.store is not None:
            existing = self.store.existing_handle(intent)
            if existing is not None:
                return existing
            self.store.begin(intent)

        logger.info(
            "LIVE: BUY %s %s %.2f @ $%.2f (%s)",
            intent.asset, intent.side, intent.size, intent.target_price, intent.kind,
        )
        try:
            handle = self._submit_buy(intent)
        except TransientError as e:
            # no status: the venue may hold the order, keep the marker
            if self.store is not None and e.status_code is not None:
                self.store.release(intent)
            raise
        except OrderRejectedError:
            if self.store is not None:
                self.store.mark_rejected(intent)
            raise

        if self.store is not None:
            self.store.record(handle)
        return handle

    def _submit_buy(self, intent: OrderIntent) -> OrderHandle:
        args = OrderArgs(
            token_id=intent.token_id,
            price=intent.target_price,
            size=intent.size,
            side=BUY,
        )

        def post(client: Any) -> Any:
            signed = client.create_order(args)
            return client.post_order(signed, OrderType.GTC)

        response = self._call(f"place {intent.asset} {intent.side}", post)
        if not isinstance(response, dict) or not response.get("success", False):
            error = response.get("errorMsg", "") if isinstance(response, dict) else ""
            logger.warning("LIVE REJECTED: %s %s -> %s", intent.asset, intent.side, error)
            raise OrderRejectedError(error or "Order not accepted")

        order_id = str(response.get("orderID") or response.get("id") or "")
        status = OrderStatus.PENDING
        filled = 0.0
        if str(response.get("status", "")).lower() == "matched":
            status, filled = OrderStatus.FILLED, intent.size
        logger.info("LIVE ACCEPTED: %s %s order %s (%s)", intent.asset, intent.side, order_id, status)
        return OrderHandle(intent=intent, external_id=order_id, status=status, filled_size=filled)

    def query_status(self, handle: OrderHandle) -> OrderHandle:
        if handle.is_terminal or not handle.external_id:
            return handle
        order = self._call(
            f"status {handle.external_id[:12]}", lambda c: c.get_order(handle.external_id)
        )
        if not isinstance(order, dict):
            raise TransientError(f"No order record for {handle.external_id}")
        status, matched = map_order_status(order, handle.intent.size)
        updated = handle.with_status(status, filled_size=matched)
        if updated != handle and self.store is not None:
            self.store.record(updated)
        return updated

    def cancel_order(self, handle: OrderHandle) -> None:
        if not handle.external_id:
            return
        response = self._call(
            f"cancel {handle.external_id[:12]}", lambda c: c.cancel(handle.external_id)
        )
        not_canceled = response.get("not_canceled", {}) if isinstance(response, dict) else {}
        if handle.external_id in not_canceled:
            logger.warning(
                "Cancel of %s not applied: %s",
                handle.external_id, not_canceled[handle.external_id],
            )
        else:
            logger.info("Cancelled order %s", handle.external_id)
        if self.store is not None:
            self.store.record(handle.with_status(OrderStatus.CANCELLED))

    def market_sell(self, token_id: str, size: float) -> float | None:
        """Sell `size` shares at market (fill-or-kill). Returns the fill
        price when the venue reports amounts."""
        args = MarketOrderArgs(token_id=token_id, amount=size, side=SELL)

        def post(client: Any) -> Any:
            signed = client.create_market_order(args)
            return client.post_order(signed, OrderType.FOK)

        logger.info("LIVE: SELL %.2f of %s at market", size, token_id[:12])
        response = self._call(f"sell {token_id[:12]}", post)
        if not isinstance(response, dict) or not response.get("success", False):
            error = response.get("errorMsg", "") if isinstance(response, dict) else ""
            raise OrderRejectedError(error or "Market sell not accepted")

        making = _to_float(response.get("makingAmount"))
        taking = _to_float(response.get("takingAmount"))
        if making > 0 and taking > 0:
            return taking / making
        return None
