"""Trading daemon: ticks every asset orchestrator on a shared timer.

Each asset ticks on a thread pool on its own schedule: a new tick starts
only once that asset's previous tick has finished, so one slow asset
never delays the others. The redemption loop runs on its own thread.

Usage:
    python -m updown run                 # live, per config
    python -m updown run --simulate      # simulation mode
    python -m updown stop                # stop running daemon
"""

import json
import logging
import os
import signal
import sys
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from pathlib import Path

from updown.config.loader import config_hash
from updown.config.schema import EngineConfig
from updown.models.state import TickOutcome
from updown.pipeline.orchestrator import AssetOrchestrator
from updown.pipeline.runtime import Runtime, build_runtime, with_simulation
from updown.reporting.formatters import format_status_text, format_tick_line

logger = logging.getLogger(__name__)

MAX_BACKOFF = 60  # seconds, after repeated all-asset failures
SHUTDOWN_TIMEOUT = 30
PID_DIR = Path("data")
PID_FILE = PID_DIR / "daemon.pid"
STATE_FILE = PID_DIR / "daemon_state.json"
LOG_DIR = Path("logs")
MAX_LOG_FILES = 100  # Keep last 100 run logs


class TradingDaemon:
    """Runs the per-asset tick loop with crash recovery and signal handling."""

    def __init__(
        self,
        config: EngineConfig,
        db_path: str = "data/updown.db",
        simulate: bool = False,
    ):
        self.config = with_simulation(config, simulate)
        self.db_path = db_path
        self.interval = self.config.strategy.check_interval_ms / 1000
        self.runtime: Runtime | None = None
        self.orchestrators: list[AssetOrchestrator] = []
        self._running = False
        self._stop_event = threading.Event()
        self._redemption_thread: threading.Thread | None = None
        self._in_flight: dict[str, Future] = {}  # asset -> running tick
        self._consecutive_failures = 0
        self._total_ticks = 0
        self._total_actions = 0
        self._total_failures = 0
        self._started_at: str | None = None
        self._last_status = 0.0
        self._log_handler: logging.Handler | None = None

    @property
    def mode(self) -> str:
        return "simulation" if self.config.strategy.simulation_mode else "live"

    def start(self) -> None:
        """Start the daemon loop."""
        self._check_not_already_running()
        self._write_pid()
        self._setup_signals()
        self._open_run_log()
        self._running = True
        self._started_at = datetime.now(UTC).isoformat()

        logger.info(
            "Daemon started: mode=%s interval=%.1fs pid=%d config=%s",
            self.mode, self.interval, os.getpid(), config_hash(self.config),
        )
        if self.mode == "live":
            logger.warning("LIVE MODE: real money at stake")

        print(f"Trading daemon started (pid {os.getpid()}, {self.mode.upper()}, every {self.interval:g}s)")
        print(f"   Logs: {LOG_DIR}/")
        print("   Stop: python -m updown stop")

        try:
            self._build()
            self._start_redemption_thread()
            self._loop()
        except KeyboardInterrupt:
            logger.info("Daemon interrupted by keyboard")
        finally:
            self._cleanup()

    def stop(self) -> None:
        self._running = False
        self._stop_event.set()

    def _build(self) -> None:
        self.runtime = build_runtime(self.config, self.db_path)
        self.orchestrators = self.runtime.orchestrators
        for o in self.orchestrators:
            logger.info("Tracking %s", o.asset)

    def _start_redemption_thread(self) -> None:
        if self.runtime is None:
            return
        self._redemption_thread = threading.Thread(
            target=self.runtime.scheduler.run_forever,
            args=(self.runtime.states, self._stop_event),
            name="redemption",
            daemon=True,
        )
        self._redemption_thread.start()

    def _loop(self) -> None:
        """Main tick loop with backoff when every asset fails."""
        with ThreadPoolExecutor(
            max_workers=max(len(self.orchestrators), 1), thread_name_prefix="asset"
        ) as pool:
            while self._running:
                tick_start = time.monotonic()
                success = self._run_one_tick(pool)

                if success:
                    self._consecutive_failures = 0
                    wait = self.interval
                else:
                    self._consecutive_failures += 1
                    wait = min(self.interval * (2 ** self._consecutive_failures), MAX_BACKOFF)
                    logger.warning(
                        "Tick failed for every asset (%d consecutive), backing off %.1fs",
                        self._consecutive_failures, wait,
                    )

                self._maybe_report()

                elapsed = time.monotonic() - tick_start
                self._stop_event.wait(max(0.0, wait - elapsed))
        # pool shutdown waited for in-flight ticks
        self._collect()

    def _run_one_tick(self, pool: ThreadPoolExecutor) -> bool:
        """Collect finished ticks, then start a tick for every idle asset.

        An asset whose previous tick is still running is left alone this
        round, so a slow venue call on one asset never holds back the rest.
        Returns False only if every tick collected this round failed.
        """
        self._total_ticks += 1
        collected, failures = self._collect()
        now = datetime.now(UTC)
        for orchestrator in self.orchestrators:
            if orchestrator.asset not in self._in_flight:
                self._in_flight[orchestrator.asset] = pool.submit(orchestrator.tick, now)
        return not collected or failures < collected

    def _collect(self) -> tuple[int, int]:
        """Harvest finished ticks. Returns (collected, failed)."""
        outcomes: list[TickOutcome] = []
        failures = 0
        for orchestrator in self.orchestrators:
            future = self._in_flight.get(orchestrator.asset)
            if future is None or not future.done():
                continue
            del self._in_flight[orchestrator.asset]
            try:
                outcomes.append(future.result())
            except Exception:
                failures += 1
                logger.exception("%s | Tick crashed", orchestrator.asset)

        acted = sum(1 for o in outcomes if o.acted)
        self._total_actions += acted
        if acted:
            logger.info(format_tick_line(outcomes))
        if failures:
            self._total_failures += 1
        return len(outcomes) + failures, failures

    def _maybe_report(self) -> None:
        now = time.monotonic()
        if now - self._last_status < self.config.ops.status_interval_seconds:
            return
        self._last_status = now
        self._save_state()
        if self.runtime is None:
            return
        phases = {o.asset: o.current_phase() for o in self.orchestrators}
        logger.info(
            format_status_text(
                datetime.now(UTC), phases, self.runtime.ledger.realized_pnl(), self.mode
            )
        )

    def _open_run_log(self) -> None:
        """Attach a per-run file handler to the root logger."""
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        self._rotate_logs()
        timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        handler = logging.FileHandler(LOG_DIR / f"run_{timestamp}.log")
        handler.setLevel(logging.INFO)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logging.getLogger().addHandler(handler)
        self._log_handler = handler

    def _close_run_log(self) -> None:
        if self._log_handler is None:
            return
        logging.getLogger().removeHandler(self._log_handler)
        self._log_handler.close()
        self._log_handler = None

    def _rotate_logs(self) -> None:
        """Keep only the most recent log files."""
        if not LOG_DIR.exists():
            return
        logs = sorted(LOG_DIR.glob("run_*.log"))
        if len(logs) >= MAX_LOG_FILES:
            for old in logs[: len(logs) - MAX_LOG_FILES + 1]:
                old.unlink(missing_ok=True)

    def _setup_signals(self) -> None:
        """Handle SIGTERM and SIGINT for graceful shutdown."""
        def _stop(signum: int, frame: object) -> None:
            sig_name = signal.Signals(signum).name
            logger.info("Received %s, shutting down gracefully...", sig_name)
            print(f"\nReceived {sig_name}, finishing current tick...")
            self.stop()

        signal.signal(signal.SIGTERM, _stop)
        signal.signal(signal.SIGINT, _stop)

    def _check_not_already_running(self) -> None:
        """Prevent duplicate daemons."""
        if PID_FILE.exists():
            try:
                pid = int(PID_FILE.read_text().strip())
                os.kill(pid, 0)
                print(f"Daemon already running (pid {pid}). Stop it first:")
                print("   python -m updown stop")
                sys.exit(1)
            except (ProcessLookupError, ValueError):
                # Stale PID file
                PID_FILE.unlink(missing_ok=True)
            except PermissionError:
                print(f"Daemon may be running (pid {pid}), can't verify.")
                sys.exit(1)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        """Persist daemon stats for status reporting."""
        state = {
            "pid": os.getpid(),
            "started_at": self._started_at,
            "interval": self.interval,
            "mode": self.mode,
            "assets": [o.asset for o in self.orchestrators],
            "total_ticks": self._total_ticks,
            "total_actions": self._total_actions,
            "total_failures": self._total_failures,
            "consecutive_failures": self._consecutive_failures,
            "last_update": datetime.now(UTC).isoformat(),
        }
        PID_DIR.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps(state, indent=2))

    def _cleanup(self) -> None:
        """Stop the redemption thread, close the ledger, remove the PID file."""
        self.stop()
        if self._redemption_thread is not None:
            self._redemption_thread.join(timeout=SHUTDOWN_TIMEOUT)
            if self._redemption_thread.is_alive():
                logger.warning("Redemption thread still running at shutdown")
        if self.runtime is not None:
            self.runtime.close()
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        logger.info(
            "Daemon stopped: %d ticks (%d actions, %d with failures)",
            self._total_ticks, self._total_actions, self._total_failures,
        )
        print(
            f"Daemon stopped: {self._total_ticks} ticks "
            f"({self._total_actions} actions, {self._total_failures} with failures)"
        )
        self._close_run_log()


def stop_daemon() -> int:
    """Stop a running daemon by sending SIGTERM."""
    if not PID_FILE.exists():
        print("No daemon running (no PID file found)")
        return 1

    try:
        pid = int(PID_FILE.read_text().strip())
    except ValueError:
        print("Corrupt PID file, removing")
        PID_FILE.unlink(missing_ok=True)
        return 1

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        print(f"Daemon not running (stale pid {pid}), cleaning up")
        PID_FILE.unlink(missing_ok=True)
        STATE_FILE.unlink(missing_ok=True)
        return 0

    print(f"Stopping daemon (pid {pid})...")
    os.kill(pid, signal.SIGTERM)

    # Wait up to 60s for in-flight ticks and redemption to finish
    for _ in range(60):
        time.sleep(1)
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            print("Daemon stopped")
            PID_FILE.unlink(missing_ok=True)
            return 0

    print("Daemon didn't stop in 60s, sending SIGKILL")
    os.kill(pid, signal.SIGKILL)
    PID_FILE.unlink(missing_ok=True)
    return 0


def daemon_status() -> int:
    """Print daemon status from state file."""
    if not STATE_FILE.exists():
        print("No daemon state found")
        if PID_FILE.exists():
            try:
                pid = int(PID_FILE.read_text().strip())
                os.kill(pid, 0)
                print(f"  (but PID file exists: {pid}, process running)")
            except (ProcessLookupError, ValueError):
                print("  (stale PID file found)")
        return 1

    state = json.loads(STATE_FILE.read_text())
    pid = state.get("pid", "?")

    running = False
    try:
        os.kill(int(pid), 0)
        running = True
    except (ProcessLookupError, ValueError, TypeError):
        pass

    print(f"Daemon {'running' if running else 'stopped'}")
    print(f"  PID: {pid}")
    print(f"  Mode: {state.get('mode', 'unknown').upper()}")
    print(f"  Interval: {state.get('interval', '?')}s")
    print(f"  Assets: {', '.join(state.get('assets', [])) or '-'}")
    print(f"  Started: {state.get('started_at', '?')}")
    print(f"  Total ticks: {state.get('total_ticks', 0)}")
    print(f"  Actions: {state.get('total_actions', 0)}")
    print(f"  Ticks with failures: {state.get('total_failures', 0)}")
    print(f"  Consecutive failures: {state.get('consecutive_failures', 0)}")
    print(f"  Last update: {state.get('last_update', '?')}")
    return 0
