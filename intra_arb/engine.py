"""
Arbitrage Engine

Main loop for intra-market arbitrage: fetch markets and book tops, run the
strategy, then push each opportunity through the risk gate and executor.
Every trade or skip decision is appended to the JSONL decision log.
"""

import asyncio
import logging
import time
from typing import List, Optional

import aiohttp

from arb_data.exceptions import ExchangeHTTPError, MarketDataError
from arb_data.logging_config import log_context

from .config import ArbConfig
from .decision_logger import DecisionLogger, DecisionRecord
from .executor import ArbTradeExecutor
from .models import (
    MarketSnapshot,
    MarketSummary,
    Opportunity,
    OrderBookTop,
    TradePlan,
)
from .provider import PolymarketMarketDataProvider
from .risk_manager import ArbRiskManager
from .strategy import IntraMarketArbStrategy

logger = logging.getLogger(__name__)

ORDERBOOK_CONCURRENCY = 6


def _now_ms() -> int:
    return int(time.time() * 1000)


class ArbitrageEngine:
    """
    Orchestrates one arbitrage cycle at a time.

    Opportunities are handled one after another, best estimated profit first.
    config.max_concurrent_trades caps how many of them reach the executor in
    a single cycle; risk-gated skips do not count towards it.

    Integrates with:
    - PolymarketMarketDataProvider: market list and book tops
    - IntraMarketArbStrategy: filter chain and sizing
    - ArbRiskManager: pre-trade gate and lifecycle hooks
    - ArbTradeExecutor: order placement (dry run unless live trading is on)
    - DecisionLogger: audit trail
    """

    def __init__(
        self,
        config: ArbConfig,
        provider: PolymarketMarketDataProvider,
        strategy: IntraMarketArbStrategy,
        risk_manager: ArbRiskManager,
        executor: ArbTradeExecutor,
        decision_logger: Optional[DecisionLogger] = None,
    ):
        self.config = config
        self.provider = provider
        self.strategy = strategy
        self.risk_manager = risk_manager
        self.executor = executor
        self.decision_logger = decision_logger

        self.running = False
        self.active_trades = 0
        self.scans_performed = 0
        self.opportunities_detected = 0
        self.trades_attempted = 0
        self.trades_succeeded = 0

        self._orderbook_limiter = asyncio.Semaphore(ORDERBOOK_CONCURRENCY)

    async def _snapshot_market(self, market: MarketSummary) -> Optional[MarketSnapshot]:
        async with self._orderbook_limiter:
            try:
                yes_top = await self._fetch_top(market.yes_token_id)
                no_top = await self._fetch_top(market.no_token_id)
            except (ExchangeHTTPError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Skipping {market.market_id}: book fetch failed ({e!r})")
                return None
        return MarketSnapshot.from_summary(market, yes_top, no_top)

    async def _fetch_top(self, token_id: str) -> OrderBookTop:
        try:
            return await self.provider.get_order_book_top(token_id)
        except MarketDataError as e:
            logger.debug(str(e))
            return OrderBookTop(best_bid=0.0, best_ask=0.0)

    async def scan_once(self, now: Optional[int] = None) -> List[Opportunity]:
        """
        Run one full cycle.

        Args:
            now: Cycle time in epoch ms (defaults to wall clock)

        Returns:
            Opportunities found this cycle, best estimated profit first
        """
        now = _now_ms() if now is None else now
        self.scans_performed += 1

        markets = await self.provider.get_active_markets()
        snapshots = await asyncio.gather(*(self._snapshot_market(m) for m in markets))
        snapshots = [s for s in snapshots if s is not None]

        opportunities = self.strategy.find_opportunities(snapshots, now)
        logger.info(
            f"Scan {self.scans_performed}: {len(snapshots)} markets, "
            f"{self.strategy.get_diagnostics().summary()}"
        )

        opportunities.sort(key=lambda o: o.est_profit_usd, reverse=True)
        self.opportunities_detected += len(opportunities)

        executed = 0
        for opportunity in opportunities:
            if executed >= self.config.max_concurrent_trades:
                logger.debug(
                    f"Trade cap reached ({self.config.max_concurrent_trades} per cycle); "
                    f"{opportunity.market_id} left for the next scan"
                )
                break
            with log_context(market_id=opportunity.market_id, edge_bps=opportunity.edge_bps):
                if await self.handle_opportunity(opportunity, now):
                    executed += 1

        return opportunities

    async def handle_opportunity(self, opportunity: Opportunity, now: int) -> bool:
        """
        Gate, execute and record a single opportunity.

        Returns:
            True if the opportunity reached the executor
        """
        logger.info(
            f"ARB OPPORTUNITY: {opportunity.market_id} "
            f"yes={opportunity.yes_ask:.4f} no={opportunity.no_ask:.4f} "
            f"edge={opportunity.edge_bps:.0f}bps size=${opportunity.size_usd:.2f} "
            f"({opportunity.size_tier}) est_profit=${opportunity.est_profit_usd:.2f}"
        )

        decision = self.risk_manager.can_execute(opportunity, now)
        if not decision.allowed:
            logger.debug(f"Risk gate blocked {opportunity.market_id}: {decision.reason}")
            self._log_decision(opportunity, "skip", decision.reason or "filtered", now)
            return False

        gas = await self.risk_manager.ensure_gas_balance()
        if not gas.ok:
            self._log_decision(opportunity, "skip", "low_gas", now)
            return False

        plan = TradePlan.from_opportunity(opportunity)
        self.active_trades += 1
        self.trades_attempted += 1
        self.risk_manager.on_trade_submitted(opportunity, now)
        try:
            result = await self.executor.execute(plan, now)
        except Exception as e:
            self.risk_manager.on_trade_failure(opportunity, now, str(e))
            self._log_decision(opportunity, "skip", f"error: {e}", now)
            raise
        finally:
            self.active_trades -= 1

        if result.succeeded:
            self.trades_succeeded += 1
            self.risk_manager.on_trade_success(opportunity, now)
            self._log_decision(
                opportunity,
                "trade",
                result.status.value,
                now,
                planned_size=plan.size_usd,
                order_id=result.order_ids[0] if result.order_ids else None,
            )
        else:
            reason = result.reason or result.status.value
            self.risk_manager.on_trade_failure(opportunity, now, reason)
            self._log_decision(opportunity, "skip", reason, now)

        return True

    def _log_decision(
        self,
        opportunity: Opportunity,
        action: str,
        reason: str,
        now: int,
        planned_size: Optional[float] = None,
        order_id: Optional[str] = None,
    ) -> None:
        if self.decision_logger is None:
            return
        self.decision_logger.append(
            DecisionRecord.from_opportunity(
                opportunity, action, reason, now, planned_size=planned_size, order_id=order_id
            )
        )

    async def run(self) -> None:
        """Scan at config.scan_interval_ms until stop() is called."""
        self.running = True
        interval = self.config.scan_interval_ms / 1000
        logger.info(f"Arbitrage engine starting (scan interval: {interval:.1f}s)")
        logger.info(f"Thresholds: {self.config.describe()}")

        if self.config.detect_only:
            logger.info("DETECT ONLY MODE - opportunities will be logged but not executed")
        elif not self.config.live_trading_enabled:
            logger.info("DRY RUN MODE - orders will be simulated, not placed")
        else:
            logger.warning("LIVE TRADING - real orders will be placed")

        while self.running:
            started = time.monotonic()
            try:
                await self.scan_once()
            except Exception as e:
                logger.error(f"Error in scan loop: {e}", exc_info=True)

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, interval - elapsed))

    def stop(self) -> None:
        """Stop the scan loop after the current cycle."""
        self.running = False
        logger.info("Arbitrage engine stopping")

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "scans_performed": self.scans_performed,
            "opportunities_detected": self.opportunities_detected,
            "trades_attempted": self.trades_attempted,
            "trades_succeeded": self.trades_succeeded,
            "active_trades": self.active_trades,
            "submission": self.executor.controller.get_status(),
        }
