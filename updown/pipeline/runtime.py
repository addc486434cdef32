"""Wires config into clients, execution collaborators and orchestrators."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from updown.config.schema import EngineConfig
from updown.execution.idempotency import IdempotencyStore
from updown.execution.live_adapter import LiveAdapter
from updown.execution.redeemer import OnChainRedeemer
from updown.execution.simulation import SimulatedRedeemer, SimulationAdapter
from updown.ingest.clob_client import ClobClient
from updown.ingest.data_client import DataApiClient
from updown.ingest.gamma_client import GammaClient
from updown.ingest.market_locator import MarketLocator
from updown.models.state import AssetState
from updown.pipeline.orchestrator import AssetOrchestrator
from updown.pipeline.redemption import RedemptionScheduler
from updown.storage.ledger import PnlLedger

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: EngineConfig
    ledger: PnlLedger
    locator: MarketLocator
    scheduler: RedemptionScheduler
    orchestrators: list[AssetOrchestrator] = field(default_factory=list)

    @property
    def simulate(self) -> bool:
        return self.config.strategy.simulation_mode

    @property
    def states(self) -> list[AssetState]:
        return [o.state for o in self.orchestrators]

    def close(self) -> None:
        self.ledger.close()


def with_simulation(config: EngineConfig, simulate: bool) -> EngineConfig:
    if not simulate or config.strategy.simulation_mode:
        return config
    return config.model_copy(
        update={"strategy": config.strategy.model_copy(update={"simulation_mode": True})}
    )


def build_runtime(config: EngineConfig, db_path: str | Path) -> Runtime:
    """Build every collaborator for `config`.

    Simulation mode swaps in SimulationAdapter and SimulatedRedeemer; live
    mode persists order intents next to the ledger for restart safety.
    """
    ops = config.ops
    venue = config.venue
    client_args = {
        "timeout": ops.request_timeout_seconds,
        "max_retries": ops.max_retries,
        "backoff_seconds": ops.retry_backoff_seconds,
    }
    gamma = GammaClient(venue.gamma_api_url, **client_args)
    clob = ClobClient(venue.clob_api_url, **client_args)
    data = DataApiClient(venue.data_api_url, **client_args)

    strategy = config.strategy
    locator = MarketLocator(
        gamma, clob, config.assets, period_minutes=strategy.period_minutes, zone=strategy.zone
    )
    if strategy.simulation_mode:
        redeemer = SimulatedRedeemer()
    else:
        redeemer = OnChainRedeemer(venue, timeout=ops.request_timeout_seconds)

    ledger = PnlLedger.open(db_path)
    if strategy.simulation_mode:
        execution = SimulationAdapter(clob)
    else:
        execution = LiveAdapter(venue, store=IdempotencyStore(ledger.conn, ledger.lock))

    scheduler = RedemptionScheduler(
        locator,
        redeemer,
        ledger,
        wallet=venue.proxy_wallet_address,
        interval_seconds=strategy.market_closure_check_interval_seconds,
        data_client=data,
    )
    orchestrators = [
        AssetOrchestrator(a.symbol, strategy, locator, clob, execution, ledger)
        for a in config.enabled_assets
    ]
    logger.info(
        "Runtime ready: %d assets, %s mode, %dm periods",
        len(orchestrators), "simulation" if strategy.simulation_mode else "live",
        strategy.period_minutes,
    )
    return Runtime(config, ledger, locator, scheduler, orchestrators)
