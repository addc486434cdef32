"""Repository for ledger entries and redemption records."""

import sqlite3
from datetime import datetime

from updown.models.common import Side
from updown.models.ledger import LedgerEntry, LedgerKind, RedemptionRecord


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def save_entry(conn: sqlite3.Connection, entry: LedgerEntry) -> int:
    """Append a ledger entry. Returns the row id."""
    cursor = conn.execute(
        "INSERT INTO ledger_entries "
        "(asset, period_start, condition_id, kind, side, shares, price, amount, recorded_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            entry.asset,
            _iso(entry.period_start),
            entry.condition_id,
            entry.kind.value,
            entry.side.value if entry.side is not None else None,
            entry.shares,
            entry.price,
            entry.amount,
            entry.recorded_at.isoformat(),
        ),
    )
    conn.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def get_entries(conn: sqlite3.Connection, asset: str | None = None) -> list[LedgerEntry]:
    if asset is None:
        rows = conn.execute("SELECT * FROM ledger_entries ORDER BY id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM ledger_entries WHERE asset = ? ORDER BY id", (asset,)
        ).fetchall()
    return [_row_to_entry(r) for r in rows]


def _row_to_entry(row: sqlite3.Row) -> LedgerEntry:
    return LedgerEntry(
        asset=row["asset"],
        period_start=_dt(row["period_start"]),
        condition_id=row["condition_id"],
        kind=LedgerKind(row["kind"]),
        side=Side(row["side"]) if row["side"] else None,
        shares=row["shares"],
        price=row["price"],
        recorded_at=datetime.fromisoformat(row["recorded_at"]),
    )


def get_pnl_by_asset(conn: sqlite3.Connection) -> dict[str, dict[str, float]]:
    """Sum of amounts per asset and kind, plus realized PnL."""
    rows = conn.execute(
        "SELECT asset, kind, COALESCE(SUM(amount), 0.0) AS total "
        "FROM ledger_entries GROUP BY asset, kind"
    ).fetchall()
    result: dict[str, dict[str, float]] = {}
    for r in rows:
        totals = result.setdefault(
            r["asset"], {"BUY": 0.0, "SELL": 0.0, "REDEEM": 0.0}
        )
        totals[r["kind"]] = float(r["total"])
    for totals in result.values():
        totals["pnl"] = totals["SELL"] + totals["REDEEM"] - totals["BUY"]
    return result


def insert_redemption(conn: sqlite3.Connection, record: RedemptionRecord) -> bool:
    """Insert unless the condition id is already recorded. No commit.

    Returns True if a row was written.
    """
    cursor = conn.execute(
        "INSERT OR IGNORE INTO redemption_records "
        "(condition_id, asset, period_start, winning_side, shares, redeemed_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            record.condition_id,
            record.asset,
            _iso(record.period_start),
            record.winning_side.value if record.winning_side is not None else None,
            record.shares,
            record.redeemed_at.isoformat(),
        ),
    )
    return cursor.rowcount == 1


def has_redemption(conn: sqlite3.Connection, condition_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM redemption_records WHERE condition_id = ?", (condition_id,)
    ).fetchone()
    return row is not None


def get_redemptions(conn: sqlite3.Connection) -> list[RedemptionRecord]:
    rows = conn.execute(
        "SELECT * FROM redemption_records ORDER BY id"
    ).fetchall()
    return [
        RedemptionRecord(
            condition_id=r["condition_id"],
            asset=r["asset"],
            period_start=_dt(r["period_start"]),
            winning_side=Side(r["winning_side"]) if r["winning_side"] else None,
            shares=r["shares"],
            redeemed_at=datetime.fromisoformat(r["redeemed_at"]),
        )
        for r in rows
    ]
