"""Idempotency key generation and persisted order lookup."""

import hashlib
import logging
import sqlite3
import threading
from datetime import datetime

from updown.execution.errors import OrderRejectedError
from updown.models.common import Side
from updown.models.execution import OrderHandle, OrderIntent, OrderKind, OrderStatus
from updown.storage import order_repo

logger = logging.getLogger(__name__)


def generate_idempotency_key(
    asset: str, period_start: datetime, kind: OrderKind, side: Side
) -> str:
    """Generate a deterministic idempotency key.

    Same asset + period + kind + side = same key = the same order.
    """
    raw = f"{asset}|{int(period_start.timestamp())}|{kind.value}|{side.value}"
    return hashlib.sha256(raw.encode()).hexdigest()[:32]


class IdempotencyStore:
    """Persists submitted intents so a restarted process reuses its orders."""

    def __init__(self, conn: sqlite3.Connection, lock: "threading.Lock | None" = None):
        self.conn = conn
        self.lock = lock or threading.Lock()

    def existing_handle(self, intent: OrderIntent) -> OrderHandle | None:
        """Handle for an intent submitted earlier, or None if it is new.

        A submission whose outcome was never recorded raises
        OrderRejectedError: placing it again could double the position.
        """
        with self.lock:
            row = order_repo.get_order_by_key(self.conn, intent.idempotency_key)
            if row is None:
                return None
            if row["status"] == order_repo.SUBMITTING:
                order_repo.update_order(
                    self.conn, intent.idempotency_key, OrderStatus.REJECTED
                )
                raise OrderRejectedError(
                    f"Unconfirmed earlier submission for {intent.idempotency_key}"
                )
        logger.info(
            "Reusing %s order %s for %s %s",
            row["status"], row["external_id"], intent.asset, intent.side,
        )
        return OrderHandle(
            intent=intent,
            external_id=row["external_id"] or "",
            status=OrderStatus(row["status"]),
            filled_size=row["filled_size"] or 0.0,
        )

    def begin(self, intent: OrderIntent) -> None:
        with self.lock:
            order_repo.save_order_intent(self.conn, intent)

    def release(self, intent: OrderIntent) -> None:
        """Forget a submission the venue answered with an error status.

        The key can then be submitted again. A submission that got no answer
        at all (timeout, dropped connection) may still have been accepted, so
        callers leave its row in place and the next attempt is refused by
        `existing_handle`.
        """
        with self.lock:
            order_repo.delete_order_intent(self.conn, intent.idempotency_key)

    def record(self, handle: OrderHandle) -> None:
        with self.lock:
            order_repo.update_order(
                self.conn,
                handle.intent.idempotency_key,
                handle.status,
                external_id=handle.external_id or None,
                filled_size=handle.filled_size,
            )

    def mark_rejected(self, intent: OrderIntent) -> None:
        with self.lock:
            order_repo.update_order(self.conn, intent.idempotency_key, OrderStatus.REJECTED)
