#!/usr/bin/env python3
"""
Intra-Market Arbitrage Runner

Scans Polymarket binary markets for YES+NO < $1.00 and buys both legs when
the edge clears fees, slippage and the risk gate.

Usage:
    # Dry run (default, simulates trades)
    python -m intra_arb.run

    # Detection only (no execution)
    python -m intra_arb.run --detect-only

    # Single scan
    python -m intra_arb.run --once -v

    # Live trading (both are required)
    ARB_DRY_RUN=false ARB_LIVE_TRADING=I_UNDERSTAND_THE_RISKS python -m intra_arb.run

Environment Variables:
    ARB_DRY_RUN=true             - Simulate trades (default: true)
    ARB_LIVE_TRADING             - Must equal I_UNDERSTAND_THE_RISKS for real orders
    ARB_MIN_EDGE_BPS=300         - Minimum edge below $1.00
    ARB_TRADE_BASE_USD=3         - Base size per leg
    ARB_SCAN_INTERVAL_MS=3000    - Milliseconds between scans
    PRIVATE_KEY / PUBLIC_KEY     - Wallet credentials (live trading)
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from typing import Optional

from dotenv import load_dotenv

from arb_data.logging_config import add_package_file_handler, configure_logging

from .config import ArbConfig
from .decision_logger import DecisionLogger
from .engine import ArbitrageEngine
from .executor import ArbTradeExecutor, build_clob_client
from .provider import PolymarketMarketDataProvider
from .risk_manager import ArbRiskManager, fetch_pol_balance
from .state_store import StateStore
from .strategy import IntraMarketArbStrategy
from .submission import OrderSubmissionController

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the intra-market arbitrage bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m intra_arb.run                      # Dry run
    python -m intra_arb.run --detect-only        # Detection only
    python -m intra_arb.run --once -v            # One verbose scan
        """,
    )
    parser.add_argument(
        "--detect-only",
        action="store_true",
        help="Only detect opportunities, don't execute",
    )
    parser.add_argument(
        "--scan-interval-ms",
        type=int,
        default=None,
        help="Override scan interval (milliseconds)",
    )
    parser.add_argument(
        "--min-edge-bps",
        type=float,
        default=None,
        help="Override minimum edge (bps)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Force dry run regardless of environment",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan and exit",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write JSON-lines logs to this file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def apply_overrides(config: ArbConfig, args) -> ArbConfig:
    """Map CLI flags onto the env-derived config."""
    overrides = {}
    if args.detect_only:
        overrides["detect_only"] = True
    if args.dry_run:
        overrides["dry_run"] = True
    if args.scan_interval_ms is not None:
        overrides["scan_interval_ms"] = args.scan_interval_ms
    if args.min_edge_bps is not None:
        overrides["min_edge_bps"] = args.min_edge_bps
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return dataclasses.replace(config, **overrides) if overrides else config


def build_engine(config: ArbConfig) -> ArbitrageEngine:
    """Wire every collaborator once; nothing below keeps module-level state."""
    state = StateStore(config.state_dir, snapshot_enabled=config.snapshot_state)
    state.load()

    balance_fetcher = None
    if config.rpc_url and config.wallet_address:
        async def balance_fetcher() -> float:
            return await fetch_pol_balance(config.rpc_url, config.wallet_address)

    client = None
    if config.live_trading_enabled and not config.detect_only:
        client = build_clob_client(config)
        logger.info("CLOB client initialized")

    provider = PolymarketMarketDataProvider(host=config.clob_host)
    controller = OrderSubmissionController(config.submission_settings())

    return ArbitrageEngine(
        config=config,
        provider=provider,
        strategy=IntraMarketArbStrategy(config, state.get_exposure),
        risk_manager=ArbRiskManager(config, state, balance_fetcher=balance_fetcher),
        executor=ArbTradeExecutor(config, provider, controller, client=client),
        decision_logger=DecisionLogger(config.decisions_log),
    )


async def run(config: ArbConfig, once: bool = False) -> Optional[ArbitrageEngine]:
    """Run the engine until a signal arrives (or for one scan)."""
    engine = build_engine(config)

    if once:
        try:
            await engine.scan_once()
        finally:
            await engine.provider.close()
        return engine

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.stop)
        except NotImplementedError:
            # Not available on Windows event loops
            signal.signal(sig, lambda *_: engine.stop())

    try:
        await engine.run()
    finally:
        await engine.provider.close()
        status = engine.get_status()
        logger.info(
            f"Session summary: scans={status['scans_performed']} "
            f"opportunities={status['opportunities_detected']} "
            f"trades={status['trades_succeeded']}/{status['trades_attempted']}"
        )
    return engine


def main(argv=None) -> int:
    """Entry point."""
    load_dotenv()
    args = parse_args(argv)

    try:
        config = apply_overrides(ArbConfig.from_env(), args)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    configure_logging(config.log_level)
    if args.log_file:
        add_package_file_handler(args.log_file)

    if not config.enabled:
        logger.info("Arbitrage disabled by MODE; exiting")
        return 0

    asyncio.run(run(config, once=args.once))
    return 0


if __name__ == "__main__":
    sys.exit(main())
