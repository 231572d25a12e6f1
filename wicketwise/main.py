"""
Main orchestration module for the cricket market consensus engine.

This module wires the pipeline together:
1. Poll every configured source adapter through the aggregator
2. Apply the persisted execution config
3. Run the consensus engine for a match on request
4. Rank actionable edges into signals
5. Record and settle trades in the ledger
6. Print reports
"""

import argparse
import logging
import signal
import sys
import time
from dataclasses import dataclass
from typing import Optional

from wicketwise.aggregator import Aggregator
from wicketwise.bookmaker_adapter import BookmakerAdapter
from wicketwise.config import Config
from wicketwise.consensus import ConsensusEngine
from wicketwise.drift import BaselineTracker
from wicketwise.errors import WicketWiseError
from wicketwise.exchange_adapter import ExchangeAdapter
from wicketwise.filters import filter_matches
from wicketwise.ledger import TradeLedger
from wicketwise.models import ExecutionConfig, Match, TradeSide, TradeStatus
from wicketwise.notifier import send_consensus_alert
from wicketwise.oracle import HttpReasoningOracle
from wicketwise.ranker import rank_signals
from wicketwise.reporter import format_match_board, format_performance, format_signals
from wicketwise.scheduler import MarketScheduler
from wicketwise.source_adapter import SourceAdapter
from wicketwise.storage import Storage
from wicketwise.synthetic_adapter import SyntheticAdapter
from wicketwise.utils import measure_latency


def setup_logging() -> None:
    """Configure logging for the application."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if Config.LOG_FILE:
        Config.ensure_directories()
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(level=log_level, format=log_format, handlers=handlers)


logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Long-lived components shared by every CLI mode."""
    storage: Storage
    execution_config: ExecutionConfig
    aggregator: Aggregator
    engine: ConsensusEngine
    ledger: TradeLedger


def build_adapters(storage: Storage, execution_config: ExecutionConfig) -> list[SourceAdapter]:
    """
    Build the adapter list from the environment and the credentials document.

    Stored credentials take precedence over environment variables. The
    synthetic generator is used when the data source is MOCK or when no
    live source has credentials.
    """
    credentials = storage.load_credentials()
    betfair = credentials.get("betfair", {})
    jeebet = credentials.get("jeebet", {})

    adapters: list[SourceAdapter] = []

    app_key = betfair.get("appKey") or Config.BETFAIR_APP_KEY
    session_token = betfair.get("sessionToken") or Config.BETFAIR_SESSION_TOKEN
    if execution_config.data_source in ("BETFAIR", "LIVE_EXCHANGE") and app_key and session_token:
        adapters.append(ExchangeAdapter(
            app_key=app_key,
            session_token=session_token,
            forwarding_prefix=betfair.get("forwardingPrefix"),
        ))

    username = jeebet.get("username") or Config.JEEBET_USERNAME
    cookie = jeebet.get("sessionCookie") or Config.JEEBET_SESSION_COOKIE
    if execution_config.data_source == "JEEBET" and username and cookie:
        adapters.append(BookmakerAdapter(username=username, session_cookie=cookie))

    if not adapters:
        if execution_config.data_source != "MOCK":
            logger.warning(f"No credentials for data source {execution_config.data_source}, using synthetic feed")
        adapters.append(SyntheticAdapter())

    logger.info(f"Configured adapters: {', '.join(a.name for a in adapters)}")
    return adapters


def build_runtime(storage: Optional[Storage] = None) -> Runtime:
    storage = storage or Storage()
    execution_config = storage.load_execution_config()

    aggregator = Aggregator(build_adapters(storage, execution_config), baselines=BaselineTracker())
    engine = ConsensusEngine(
        HttpReasoningOracle(),
        threshold=execution_config.min_consensus_level,
        alert_dispatcher=send_consensus_alert,
        drift_threshold_pct=Config.DRIFT_THRESHOLD_PCT,
    )
    ledger = TradeLedger(storage, unit_value=execution_config.unit_value)

    return Runtime(
        storage=storage,
        execution_config=execution_config,
        aggregator=aggregator,
        engine=engine,
        ledger=ledger,
    )


def poll_matches(runtime: Runtime) -> list[Match]:
    """Aggregate every source and apply the execution config filters."""
    matches = runtime.aggregator.get_aggregated_matches()
    for name in runtime.aggregator.credential_failures():
        logger.error(f"Credentials rejected by {name}; update them to restore live data")
    return filter_matches(matches, runtime.execution_config)


def analyze_match(runtime: Runtime, match_id: str, user_context: str = "") -> int:
    """
    Analyze one match and print its ranked signals.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    matches = runtime.aggregator.get_aggregated_matches()
    match = next((m for m in matches if m.id == match_id), None)
    if match is None:
        logger.error(f"Match {match_id} not found. Available: {', '.join(m.id for m in matches)}")
        return 1

    rules = runtime.storage.load_rules()
    analysis = runtime.engine.analyze(match, user_context=user_context, active_rules=rules)
    if analysis is None:
        logger.warning(f"No analysis available for {match.name}")
        return 1

    print(f"\nMARKET PULSE: {analysis.pulse.text}")
    for citation in analysis.pulse.citations:
        print(f"  - {citation.title}: {citation.url}")
    print(f"CONSENSUS: {analysis.consensus_level}/{analysis.panel_size} "
          f"({'actionable' if analysis.is_actionable else 'below threshold'})\n")

    signals = rank_signals(
        [analysis],
        {match.id: match},
        runtime.execution_config,
        drift_threshold_pct=Config.DRIFT_THRESHOLD_PCT,
    )
    print(format_signals(signals))
    return 0


def record_trade(runtime: Runtime, match_id: str, market_id: str, side: str, stake: Optional[float]) -> int:
    matches = runtime.aggregator.get_aggregated_matches()
    match = next((m for m in matches if m.id == match_id), None)
    line = match.find_line(market_id) if match else None
    if line is None:
        logger.error(f"Market {market_id} on match {match_id} not found")
        return 1

    trade = runtime.ledger.record(match, None, line, TradeSide(side), stake=stake)
    print(f"EXECUTED {trade.side.value} @ {trade.odds} ({trade.id})")
    return 0


def main() -> int:
    """
    Main entry point for the consensus engine.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(
        description="Cricket market consensus engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Poll all sources once and print the board
  python -m wicketwise.main --once

  # Analyze a match with extra context
  python -m wicketwise.main --analyze m1 --context "Dew expected after 8pm"

  # Record and settle a trade
  python -m wicketwise.main --trade m1 ml1_1 --side BACK --stake 50
  python -m wicketwise.main --settle abc123def --status WON

  # Run the background poll and latency probe
  python -m wicketwise.main --schedule
        """
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Poll every source once and print the board")
    mode.add_argument("--analyze", metavar="MATCH_ID", help="Run a consensus analysis for one match")
    mode.add_argument("--trade", nargs=2, metavar=("MATCH_ID", "MARKET_ID"), help="Record a trade on a market line")
    mode.add_argument("--settle", metavar="TRADE_ID", help="Settle a MATCHED trade")
    mode.add_argument("--performance", action="store_true", help="Print the performance review")
    mode.add_argument("--schedule", action="store_true", help="Run the background poll and latency probe")
    parser.add_argument("--context", default="", help="Free-text knowledge for --analyze")
    parser.add_argument("--side", choices=[s.value for s in TradeSide], default=TradeSide.BACK.value)
    parser.add_argument("--stake", type=float, default=None, help="Stake for --trade (defaults to the unit value)")
    parser.add_argument(
        "--status",
        choices=[TradeStatus.WON.value, TradeStatus.LOST.value, TradeStatus.FAILED.value],
        help="Settlement status for --settle",
    )
    parser.add_argument("--explanation", default=None, help="Settlement note for --settle")

    args = parser.parse_args()

    setup_logging()

    is_valid, errors = Config.validate()
    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1
    Config.ensure_directories()

    runtime = build_runtime()

    try:
        if args.analyze:
            return analyze_match(runtime, args.analyze, args.context)

        if args.trade:
            return record_trade(runtime, args.trade[0], args.trade[1], args.side, args.stake)

        if args.settle:
            if not args.status:
                parser.error("--settle requires --status")
            trade = runtime.ledger.settle(args.settle, TradeStatus(args.status), args.explanation)
            print(f"Settled {trade.id} as {trade.status.value}: P/L {trade.profit:+.2f}")
            return 0

        if args.performance:
            print(format_performance(runtime.ledger.performance(), runtime.ledger.trades))
            return 0

        if args.schedule:
            return _run_scheduled_mode(runtime)

        # Single poll (default)
        print(format_match_board(poll_matches(runtime), Config.DRIFT_THRESHOLD_PCT))
        return 0

    except WicketWiseError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


def _run_scheduled_mode(runtime: Runtime) -> int:
    """
    Run the poll and latency probe until interrupted.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger.info("Starting in scheduled mode")

    scheduler = MarketScheduler(
        poll_function=lambda: poll_matches(runtime),
        probe_function=lambda: measure_latency(Config.LATENCY_PROBE_URL, timeout=Config.ADAPTER_TIMEOUT_SECONDS),
    )

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        scheduler.stop(wait=True)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not scheduler.start():
        logger.error("Failed to start scheduler")
        return 1

    # Initial poll immediately
    scheduler.run_poll()

    logger.info("Scheduler is running. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        scheduler.stop(wait=True)
        return 0


if __name__ == "__main__":
    sys.exit(main())
