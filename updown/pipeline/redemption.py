"""Redemption reconciliation: redeem winning holdings exactly once."""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from updown.execution.errors import AlreadyRedeemedError, VenueError
from updown.models.common import utc_now
from updown.models.ledger import RedemptionRecord
from updown.models.market import MarketDescriptor, normalize_condition_id
from updown.models.state import AssetState, PeriodPosition, PositionPhase

logger = logging.getLogger(__name__)


class RedemptionScheduler:
    """Periodic loop over ended positions.

    The check against the ledger and `redeemed` happens under the asset
    lock before the redeem call, and `redeem_in_flight` keeps a concurrent
    run from starting a second call for the same condition.
    """

    def __init__(
        self,
        locator,
        redeemer,
        ledger,
        wallet: str | None = None,
        interval_seconds: float = 120.0,
        data_client=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.locator = locator
        self.redeemer = redeemer
        self.ledger = ledger
        self.wallet = wallet
        self.interval_seconds = interval_seconds
        self.data_client = data_client
        self.clock = clock

    def run_forever(self, states: Iterable[AssetState], stop_event: threading.Event) -> None:
        states = list(states)
        logger.info("Redemption loop started (every %ss)", self.interval_seconds)
        while not stop_event.is_set():
            self.run_once(states)
            stop_event.wait(self.interval_seconds)
        logger.info("Redemption loop stopped")

    def run_once(self, states: Iterable[AssetState], now: datetime | None = None) -> int:
        """One reconciliation pass. Returns the number of conditions redeemed."""
        now = now or self.clock()
        redeemed = 0
        for state in states:
            try:
                redeemed += self._reconcile(state, now)
            except Exception:
                logger.exception("%s | Redemption pass failed", state.asset)
        return redeemed

    def _reconcile(self, state: AssetState, now: datetime) -> int:
        with state.lock:
            groups: dict[str, list[PeriodPosition]] = {}
            for pos in state.positions:
                if now < pos.period.end or pos.redeemed or pos.redeem_in_flight:
                    continue
                if not pos.matched_sides():
                    continue
                groups.setdefault(pos.market.condition_id, []).append(pos)

        redeemed = 0
        for condition_id, positions in groups.items():
            market = positions[0].market
            if not (market.is_closed and market.winning_outcome is not None):
                try:
                    self.locator.refresh(market)
                except VenueError as e:
                    logger.debug("%s | Closure check for %s failed: %s", state.asset, market.slug, e)
                    continue
                if not (market.is_closed and market.winning_outcome is not None):
                    continue
            if self._redeem_group(state, condition_id, market, positions):
                redeemed += 1
        return redeemed

    def _redeem_group(
        self,
        state: AssetState,
        condition_id: str,
        market: MarketDescriptor,
        positions: list[PeriodPosition],
    ) -> bool:
        winner = market.winning_outcome
        with state.lock:
            for pos in positions:
                pos.phase = PositionPhase.RESOLVED
            shares = sum(pos.held_shares(winner) for pos in positions)
            if shares <= 0:
                logger.info(
                    "%s | %s resolved %s, no winning shares held", state.asset, market.slug, winner
                )
                self._drop(state, positions)
                return False
            if any(pos.redeemed for pos in positions) or self.ledger.has_redemption(condition_id):
                logger.info("%s | %s already redeemed", state.asset, market.slug)
                for pos in positions:
                    pos.redeemed = True
                self._drop(state, positions)
                return False
            for pos in positions:
                pos.redeem_in_flight = True

        succeeded = False
        try:
            try:
                tx_id = self.redeemer.redeem(condition_id, self.wallet)
            except AlreadyRedeemedError:
                tx_id = ""
            succeeded = True
        except VenueError as e:
            logger.warning("%s | Redeem of %s failed, will retry: %s", state.asset, market.slug, e)
        finally:
            if not succeeded:
                with state.lock:
                    for pos in positions:
                        pos.redeem_in_flight = False
        if not succeeded:
            return False

        with state.lock:
            try:
                self.ledger.record_redemption(RedemptionRecord(
                    condition_id=condition_id,
                    asset=state.asset,
                    period_start=positions[0].period.start,
                    winning_side=winner,
                    shares=shares,
                    redeemed_at=self.clock(),
                ))
            finally:
                for pos in positions:
                    pos.redeem_in_flight = False
            # flags move only once the record is stored
            for pos in positions:
                pos.redeemed = True
            self._drop(state, positions)
        logger.info(
            "%s | Redeemed %.2f %s shares of %s %s",
            state.asset, shares, winner, market.slug, f"(tx {tx_id})" if tx_id else "",
        )
        return True

    @staticmethod
    def _drop(state: AssetState, positions: list[PeriodPosition]) -> None:
        for pos in positions:
            if pos in state.positions:
                state.positions.remove(pos)

    # --- Manual mode ---

    def redeem_manual(self, condition_id: str | None = None) -> tuple[int, int]:
        """Redeem one condition, or every redeemable one for the wallet.

        Returns (succeeded, failed).
        """
        values: dict[str, float] = {}
        if condition_id:
            targets = [normalize_condition_id(condition_id)]
        else:
            if self.data_client is None or not self.wallet:
                raise ValueError("Redeeming all positions needs a wallet and a data client")
            values = self.data_client.redeemable_value(self.wallet)
            targets = sorted(values)
            logger.info("Found %d redeemable condition(s) for %s", len(targets), self.wallet)

        succeeded = failed = 0
        for cid in targets:
            if self.ledger.has_redemption(cid):
                logger.info("Skipping %s: already recorded", cid[:18])
                continue
            try:
                self.redeemer.redeem(cid, self.wallet)
            except AlreadyRedeemedError:
                logger.info("%s was already redeemed on-chain", cid[:18])
            except VenueError as e:
                logger.error("Failed to redeem %s: %s", cid[:18], e)
                failed += 1
                continue
            self.ledger.record_redemption(RedemptionRecord(
                condition_id=cid,
                asset="",
                period_start=None,
                winning_side=None,
                shares=values.get(cid, 0.0),
                redeemed_at=self.clock(),
            ))
            succeeded += 1
        logger.info("Manual redeem finished: %d succeeded, %d failed", succeeded, failed)
        return succeeded, failed
