"""
ArbRiskManager - Pre-trade gate and circuit breaker for arbitrage trades.

Implements:
- Enable flag, startup cooldown and kill-switch file
- Per-market cooldown and hourly trade cap
- Consecutive-failure circuit breaker
- Duplicate opportunity suppression (10 minute window)
- Market and wallet exposure caps (both legs count, so 2 x size)
- POL gas balance check through an injected balance fetcher
"""
import logging
import os
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

import aiohttp

from arb_data.exceptions import ExchangeHTTPError

from .config import ArbConfig
from .models import GasCheck, Opportunity, RiskDecision
from .state_store import StateStore

logger = logging.getLogger(__name__)

OPPORTUNITY_TTL_MS = 10 * 60 * 1000
OPPORTUNITY_CACHE_SIZE = 5000
ONE_HOUR_MS = 60 * 60 * 1000
WEI_PER_POL = 10 ** 18

BalanceFetcher = Callable[[], Awaitable[float]]


async def fetch_pol_balance(
    rpc_url: str,
    address: str,
    session: Optional[aiohttp.ClientSession] = None,
    timeout_seconds: float = 10.0,
) -> float:
    """
    Native POL balance of address via JSON-RPC eth_getBalance.

    Raises:
        ExchangeHTTPError: on a non-200 response or an RPC error payload
    """
    payload = {
        "jsonrpc": "2.0",
        "method": "eth_getBalance",
        "params": [address, "latest"],
        "id": 1,
    }
    owns_session = session is None
    session = session or aiohttp.ClientSession()
    try:
        async with session.post(
            rpc_url, json=payload, timeout=aiohttp.ClientTimeout(total=timeout_seconds)
        ) as response:
            if response.status != 200:
                raise ExchangeHTTPError(
                    f"RPC returned status {response.status}",
                    status_code=response.status,
                    body=await response.text(),
                    endpoint="eth_getBalance",
                )
            data = await response.json()
    finally:
        if owns_session:
            await session.close()

    if "error" in data:
        raise ExchangeHTTPError(
            f"RPC error: {data['error']}", body=str(data["error"]), endpoint="eth_getBalance"
        )
    return int(data["result"], 16) / WEI_PER_POL


class ArbRiskManager:
    """
    Decides whether an opportunity may be traded and tracks trade outcomes.

    All state lives in the injected StateStore; the manager only keeps the
    short-lived duplicate-opportunity cache.
    """

    def __init__(
        self,
        config: ArbConfig,
        state: StateStore,
        balance_fetcher: Optional[BalanceFetcher] = None,
        started_at: Optional[int] = None,
    ):
        """
        Args:
            config: Arbitrage configuration
            state: Shared bot state
            balance_fetcher: Coroutine function returning the wallet's POL balance
            started_at: Process start in epoch ms (defaults to now)
        """
        self.config = config
        self.state = state
        self.balance_fetcher = balance_fetcher

        started_at = int(time.time() * 1000) if started_at is None else started_at
        self.startup_ready_at = started_at + int(config.startup_cooldown_seconds * 1000)

        # fingerprint -> first seen (epoch ms), oldest first
        self._seen_opportunities: "OrderedDict[str, int]" = OrderedDict()

    @staticmethod
    def fingerprint(opportunity: Opportunity, now: int) -> str:
        """Identity of an opportunity within a one-minute bucket."""
        bucket = now // 60000
        return "|".join(
            [
                opportunity.market_id,
                f"{opportunity.yes_ask:.4f}",
                f"{opportunity.no_ask:.4f}",
                str(bucket),
                opportunity.size_tier,
            ]
        )

    def _prune_seen(self, now: int) -> None:
        while self._seen_opportunities:
            key, seen_at = next(iter(self._seen_opportunities.items()))
            if now - seen_at < OPPORTUNITY_TTL_MS and len(self._seen_opportunities) <= OPPORTUNITY_CACHE_SIZE:
                break
            self._seen_opportunities.popitem(last=False)

    def can_execute(self, opportunity: Opportunity, now: int) -> RiskDecision:
        """Run every pre-trade check in order; the first failure is the reason."""
        cfg = self.config

        if not cfg.enabled:
            return RiskDecision(False, "disabled")
        if now < self.startup_ready_at:
            return RiskDecision(False, "startup_cooldown")
        if os.path.exists(cfg.kill_switch_file):
            return RiskDecision(False, "kill_switch")

        cooldown = self.state.get_market_cooldown(opportunity.market_id)
        if cooldown and cooldown > now:
            return RiskDecision(False, "market_cooldown")

        if self.state.count_trades_since(now - ONE_HOUR_MS) >= cfg.max_trades_per_hour:
            return RiskDecision(False, "rate_limit")

        if self.state.consecutive_failures >= cfg.max_consecutive_failures:
            return RiskDecision(False, "circuit_breaker")

        self._prune_seen(now)
        if self.fingerprint(opportunity, now) in self._seen_opportunities:
            return RiskDecision(False, "duplicate")

        leg_pair_usd = opportunity.size_usd * 2
        if self.state.get_market_exposure(opportunity.market_id) + leg_pair_usd > cfg.max_position_usd:
            return RiskDecision(False, "market_cap")
        if self.state.get_wallet_exposure() + leg_pair_usd > cfg.max_wallet_exposure_usd:
            return RiskDecision(False, "wallet_cap")

        return RiskDecision(True)

    async def ensure_gas_balance(self) -> GasCheck:
        """Check the wallet holds enough POL for gas. Without a fetcher the check passes."""
        if self.balance_fetcher is None:
            return GasCheck(ok=True, balance=0.0)

        balance = await self.balance_fetcher()
        if balance < self.config.min_pol_gas:
            logger.warning(
                f"POL balance below minimum: {balance:.4f} < {self.config.min_pol_gas}"
            )
            return GasCheck(ok=False, balance=balance)
        return GasCheck(ok=True, balance=balance)

    # --- Lifecycle hooks ---

    def on_trade_submitted(self, opportunity: Opportunity, now: int) -> None:
        self._seen_opportunities[self.fingerprint(opportunity, now)] = now
        self.state.record_trade_timestamp(now)
        self.state.add_exposure(opportunity.market_id, opportunity.size_usd * 2)
        self.state.set_market_cooldown(
            opportunity.market_id, now + int(self.config.market_cooldown_seconds * 1000)
        )
        self.state.snapshot()

    def on_trade_success(self, opportunity: Opportunity, now: int) -> None:
        self.state.reset_failures()
        self.state.snapshot()
        logger.info(
            f"Trade success {opportunity.market_id} size=${opportunity.size_usd:.2f}"
        )

    def on_trade_failure(self, opportunity: Opportunity, now: int, reason: str) -> None:
        failures = self.state.increment_failure()
        self.state.snapshot()
        logger.warning(
            f"Trade failure {opportunity.market_id}: {reason} "
            f"(consecutive failures: {failures}/{self.config.max_consecutive_failures})"
        )
        if failures >= self.config.max_consecutive_failures:
            logger.error("Circuit breaker tripped: trading paused until a manual reset")
