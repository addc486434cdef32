"""CLI entry point for the Up/Down period trading engine."""

import argparse
import logging

from pydantic import ValidationError

from updown.config.loader import (
    get_config_value,
    load_config,
    redacted_dump,
    validate_for_redeem,
    validate_for_trading,
)
from updown.daemon import TradingDaemon, daemon_status, stop_daemon
from updown.execution.errors import ConfigurationError
from updown.pipeline.runtime import build_runtime, with_simulation
from updown.reporting.formatters import format_pnl_json, format_pnl_text
from updown.storage.ledger import PnlLedger

DEFAULT_CONFIG = "config.yaml"
DEFAULT_DB = "data/updown.db"

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="updown",
        description="Up/Down period market trading engine",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG, help="Config YAML path"
    )
    parser.add_argument("--db", default=DEFAULT_DB, help="SQLite DB path")

    sub = parser.add_subparsers(dest="command")

    # run
    run_p = sub.add_parser("run", help="Run the trading loop (default)")
    run_p.add_argument(
        "--simulate", action="store_true", help="Simulation mode, no real orders"
    )

    # redeem
    redeem_p = sub.add_parser("redeem", help="Redeem resolved positions and exit")
    redeem_p.add_argument(
        "--condition-id", help="Redeem only this condition (default: all redeemable)"
    )
    redeem_p.add_argument(
        "--simulate", action="store_true", help="Log instead of sending transactions"
    )

    # status / stop
    sub.add_parser("status", help="Show daemon status")
    sub.add_parser("stop", help="Stop a running daemon")

    # pnl
    pnl_p = sub.add_parser("pnl", help="Show realized P&L from the ledger")
    pnl_p.add_argument("--json", action="store_true", help="JSON output")

    # config show / config get
    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config (credentials masked)")
    get_p = config_sub.add_parser("get", help="Print one config value")
    get_p.add_argument("key", help="Dotted key, e.g. strategy.signal.danger_price")

    args = parser.parse_args(argv)
    command = args.command or "run"

    if command == "status":
        return daemon_status()
    if command == "stop":
        return stop_daemon()

    try:
        config = load_config(args.config)
    except ValidationError as e:
        print(f"Invalid config {args.config}:\n{e}")
        return 2

    logging.basicConfig(
        level=getattr(logging, config.ops.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        if command == "run":
            return _cmd_run(config, args)
        elif command == "redeem":
            return _cmd_redeem(config, args)
        elif command == "pnl":
            return _cmd_pnl(args)
        elif command == "config":
            return _cmd_config(config, args)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        print(f"Error: {e}")
        return 2
    parser.print_help()
    return 1


def _cmd_run(config, args) -> int:
    config = with_simulation(config, getattr(args, "simulate", False))
    validate_for_trading(config)
    if not config.strategy.simulation_mode:
        print("WARNING: Running in LIVE mode")
    daemon = TradingDaemon(config, args.db)
    daemon.start()
    return 0


def _cmd_redeem(config, args) -> int:
    config = with_simulation(config, args.simulate)
    if args.condition_id:
        wallet = config.venue.proxy_wallet_address
        if not config.strategy.simulation_mode and not config.venue.private_key:
            raise ConfigurationError("Redeem mode requires venue.private_key")
    else:
        wallet = validate_for_redeem(config)

    runtime = build_runtime(config, args.db)
    try:
        succeeded, failed = runtime.scheduler.redeem_manual(args.condition_id)
    finally:
        runtime.close()
    print(f"Redeemed: {succeeded} succeeded, {failed} failed (wallet {wallet or '-'})")
    return 0 if failed == 0 else 1


def _cmd_pnl(args) -> int:
    ledger = PnlLedger.open(args.db)
    try:
        summary = ledger.summary()
        redemptions = ledger.redemptions()
    finally:
        ledger.close()
    if args.json:
        print(format_pnl_json(summary, redemptions))
    else:
        print(format_pnl_text(summary, redemptions))
    return 0


def _cmd_config(config, args) -> int:
    if args.config_command == "show":
        print(redacted_dump(config))
        return 0
    elif args.config_command == "get":
        try:
            print(get_config_value(config, args.key))
        except (KeyError, IndexError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        return 0
    else:
        print("Use: config show | config get key")
        return 1
