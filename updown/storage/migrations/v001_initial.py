"""Initial schema: order idempotency, PnL ledger, redemption records."""

import sqlite3

DDL = [
    # One row per placed intent; the key is deterministic per
    # (asset, period start, kind, side) so a restart finds earlier orders
    """
    CREATE TABLE IF NOT EXISTS order_intents (
        idempotency_key TEXT PRIMARY KEY,
        asset TEXT NOT NULL,
        period_start TEXT NOT NULL,
        kind TEXT NOT NULL,
        side TEXT NOT NULL,
        token_id TEXT NOT NULL,
        price REAL NOT NULL,
        size REAL NOT NULL,
        external_id TEXT,
        status TEXT NOT NULL,
        filled_size REAL NOT NULL DEFAULT 0.0,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    (
        "CREATE INDEX IF NOT EXISTS idx_order_intents_asset_period "
        "ON order_intents(asset, period_start)"
    ),

    # Append-only realized cash flows
    """
    CREATE TABLE IF NOT EXISTS ledger_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        asset TEXT NOT NULL,
        period_start TEXT,
        condition_id TEXT NOT NULL,
        kind TEXT NOT NULL CHECK (kind IN ('BUY', 'SELL', 'REDEEM')),
        side TEXT,
        shares REAL NOT NULL,
        price REAL NOT NULL,
        amount REAL NOT NULL,
        recorded_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_ledger_entries_asset ON ledger_entries(asset)",
    (
        "CREATE INDEX IF NOT EXISTS idx_ledger_entries_condition "
        "ON ledger_entries(condition_id)"
    ),

    # At most one redemption per condition
    """
    CREATE TABLE IF NOT EXISTS redemption_records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        condition_id TEXT NOT NULL UNIQUE,
        asset TEXT NOT NULL,
        period_start TEXT,
        winning_side TEXT,
        shares REAL NOT NULL,
        redeemed_at TEXT NOT NULL
    )
    """,
]


def up(conn: sqlite3.Connection) -> None:
    for stmt in DDL:
        conn.execute(stmt)
    conn.commit()
