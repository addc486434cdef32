"""PnL ledger: append-only realized outcomes shared by worker threads."""

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from updown.models.common import Side, utc_now
from updown.models.ledger import LedgerEntry, LedgerKind, RedemptionRecord
from updown.storage import ledger_repo
from updown.storage.database import connect, run_migrations

logger = logging.getLogger(__name__)

REDEMPTION_PAYOUT = 1.0  # USDC per winning share


class PnlLedger:
    """Thread-safe facade over ledger_repo.

    Written by orchestrators (BUY/SELL) and the redemption loop
    (REDEEM + redemption records); read by reporting.
    """

    def __init__(self, conn: sqlite3.Connection, lock: "threading.Lock | None" = None):
        self.conn = conn
        self.lock = lock or threading.Lock()

    @classmethod
    def open(cls, db_path: str | Path) -> "PnlLedger":
        conn = connect(db_path, check_same_thread=False)
        run_migrations(conn)
        return cls(conn)

    def record(
        self,
        asset: str,
        kind: LedgerKind,
        condition_id: str,
        side: Side | None,
        shares: float,
        price: float,
        period_start: datetime | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            asset=asset,
            period_start=period_start,
            condition_id=condition_id,
            kind=kind,
            side=side,
            shares=shares,
            price=price,
            recorded_at=utc_now(),
        )
        with self.lock:
            ledger_repo.save_entry(self.conn, entry)
        logger.info(
            "LEDGER %s %s %s %.2f @ $%.4f ($%.2f)",
            asset, kind.value, side.value if side else "-", shares, price, entry.amount,
        )
        return entry

    def has_redemption(self, condition_id: str) -> bool:
        with self.lock:
            return ledger_repo.has_redemption(self.conn, condition_id)

    def record_redemption(self, record: RedemptionRecord) -> bool:
        """Append a redemption record and its REDEEM entry in one transaction.

        Returns False (and writes nothing) if the condition id is already
        recorded. A failed write is rolled back and re-raised.
        """
        with self.lock:
            try:
                inserted = ledger_repo.insert_redemption(self.conn, record)
                if not inserted:
                    self.conn.commit()
                    logger.info("Redemption for %s already recorded", record.condition_id[:18])
                    return False
                if record.shares > 0:
                    ledger_repo.save_entry(self.conn, LedgerEntry(
                        asset=record.asset,
                        period_start=record.period_start,
                        condition_id=record.condition_id,
                        kind=LedgerKind.REDEEM,
                        side=record.winning_side,
                        shares=record.shares,
                        price=REDEMPTION_PAYOUT,
                        recorded_at=record.redeemed_at,
                    ))
                else:
                    self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise
        logger.info(
            "Recorded redemption %s (%s %.2f shares)",
            record.condition_id[:18], record.winning_side or "-", record.shares,
        )
        return True

    def entries(self, asset: str | None = None) -> list[LedgerEntry]:
        with self.lock:
            return ledger_repo.get_entries(self.conn, asset)

    def redemptions(self) -> list[RedemptionRecord]:
        with self.lock:
            return ledger_repo.get_redemptions(self.conn)

    def realized_pnl(self, asset: str | None = None) -> float:
        """Σ SELL + Σ REDEEM − Σ BUY."""
        return sum(e.signed_amount for e in self.entries(asset))

    def summary(self) -> dict[str, dict[str, float]]:
        with self.lock:
            return ledger_repo.get_pnl_by_asset(self.conn)

    def close(self) -> None:
        with self.lock:
            self.conn.close()
