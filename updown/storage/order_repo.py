"""Repository for order intents keyed by idempotency key."""

import sqlite3

from updown.models.execution import OrderIntent, OrderStatus

# status written before the venue call returns; a row left in this state
# after a crash means the outcome of that submission is unknown
SUBMITTING = "SUBMITTING"


def save_order_intent(conn: sqlite3.Connection, intent: OrderIntent) -> bool:
    """Persist an intent as SUBMITTING. Returns False if the key exists."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO order_intents "
        "(idempotency_key, asset, period_start, kind, side, token_id, price, size, status) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            intent.idempotency_key,
            intent.asset,
            intent.period.start.isoformat(),
            intent.kind.value,
            intent.side.value,
            intent.token_id,
            intent.target_price,
            intent.size,
            SUBMITTING,
        ),
    )
    conn.commit()
    return cursor.rowcount == 1


def update_order(
    conn: sqlite3.Connection,
    idempotency_key: str,
    status: OrderStatus,
    external_id: str | None = None,
    filled_size: float | None = None,
) -> None:
    conn.execute(
        "UPDATE order_intents SET status = ?, "
        "external_id = COALESCE(?, external_id), "
        "filled_size = COALESCE(?, filled_size), "
        "updated_at = CURRENT_TIMESTAMP "
        "WHERE idempotency_key = ?",
        (status.value, external_id, filled_size, idempotency_key),
    )
    conn.commit()


def delete_order_intent(conn: sqlite3.Connection, idempotency_key: str) -> None:
    conn.execute(
        "DELETE FROM order_intents WHERE idempotency_key = ?", (idempotency_key,)
    )
    conn.commit()


def get_order_by_key(conn: sqlite3.Connection, idempotency_key: str) -> dict | None:
    """Get an order intent row by idempotency key."""
    row = conn.execute(
        "SELECT * FROM order_intents WHERE idempotency_key = ?",
        (idempotency_key,),
    ).fetchone()
    if row is None:
        return None
    return dict(row)


def get_orders_for_asset(conn: sqlite3.Connection, asset: str) -> list[dict]:
    rows = conn.execute(
        "SELECT * FROM order_intents WHERE asset = ? ORDER BY period_start, kind, side",
        (asset,),
    ).fetchall()
    return [dict(r) for r in rows]
