"""
Intra-market arbitrage strategy.

Scans YES/NO book tops for markets where buying one share of each outcome
costs less than the $1.00 they redeem for. Every market runs through a fixed
filter chain; the first failing filter names the skip reason, and the full
funnel is kept as diagnostics for the most recent scan.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .bps import calculate_edge_bps, calculate_spread_bps, estimate_profit_usd
from .config import ArbConfig
from .models import (
    ELIGIBLE,
    ArbDiagnostics,
    CandidateSnapshot,
    MarketSnapshot,
    Opportunity,
    OrderBookTop,
    SkipReason,
    empty_skip_counts,
)
from .sizing import compute_size_usd

logger = logging.getLogger(__name__)

# Anything above this cannot be a 0-1 probability price
UNITS_CEILING = 1.5

# Returns (market exposure, wallet exposure) in USD
ExposureAccessor = Callable[[str], Tuple[float, float]]


@dataclass(frozen=True)
class NormalizedTop:
    best_bid: float = 0.0
    best_ask: float = 0.0
    skip_reason: Optional[SkipReason] = None


def _to_price(value) -> float:
    """Coerce a raw book value; absent sides become 0, unparseable ones NaN."""
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _normalize_price(value: float, auto_fix: bool) -> Tuple[float, Optional[SkipReason]]:
    if value <= UNITS_CEILING:
        return value, None
    if not auto_fix:
        return 0.0, SkipReason.UNITS
    # Assume the value was quoted in cents and retry once
    fixed = value / 100
    if fixed > UNITS_CEILING:
        return 0.0, SkipReason.UNITS
    return fixed, None


def normalize_orderbook_top(top: OrderBookTop, auto_fix: bool) -> NormalizedTop:
    """
    Bring a raw book top onto the 0-1 price scale.

    Non-finite values are a bad book; values above 1.5 are treated as cents
    when auto_fix is on (a second failure is a units skip).
    """
    ask = _to_price(top.best_ask)
    bid = _to_price(top.best_bid)
    if not math.isfinite(ask) or not math.isfinite(bid):
        return NormalizedTop(skip_reason=SkipReason.BAD_BOOK)

    ask, reason = _normalize_price(ask, auto_fix)
    if reason:
        return NormalizedTop(skip_reason=reason)
    bid, reason = _normalize_price(bid, auto_fix)
    if reason:
        return NormalizedTop(skip_reason=reason)

    return NormalizedTop(best_bid=bid, best_ask=ask)


class IntraMarketArbStrategy:
    """
    Finds YES+NO < $1.00 opportunities across a batch of market snapshots.

    Filter order per market (first failure wins):
    1. Book normalisation (bad book / units)
    2. Book sanity: both legs need a positive bid and ask
    3. Liquidity below minimum
    4. Resolution further away than the maximum hold time
    5. Edge below minimum
    6. Spread above maximum
    7. Sizing leaves no room under the exposure caps
    8. Estimated profit below minimum

    Markets are processed in input order and no ranking is applied here.
    The only outside read is the injected exposure accessor.
    """

    def __init__(self, config: ArbConfig, get_exposure: ExposureAccessor):
        """
        Args:
            config: Thresholds, sizing and cost assumptions
            get_exposure: Maps a market id to (market exposure, wallet exposure) in USD
        """
        self.config = config
        self.get_exposure = get_exposure
        self._last_diagnostics = ArbDiagnostics()

    def find_opportunities(self, markets: List[MarketSnapshot], now: int) -> List[Opportunity]:
        """
        Evaluate every market and return the eligible, sized opportunities.

        Args:
            markets: Snapshots for this scan
            now: Scan time in epoch milliseconds

        Returns:
            Opportunities in market input order
        """
        opportunities: List[Opportunity] = []
        candidates: List[CandidateSnapshot] = []
        skip_counts = empty_skip_counts()

        for market in markets:
            yes_top = normalize_orderbook_top(market.yes_top, self.config.units_auto_fix)
            if yes_top.skip_reason:
                skip_counts[yes_top.skip_reason] += 1
                continue
            no_top = normalize_orderbook_top(market.no_top, self.config.units_auto_fix)
            if no_top.skip_reason:
                skip_counts[no_top.skip_reason] += 1
                continue

            if (
                yes_top.best_ask <= 0
                or no_top.best_ask <= 0
                or yes_top.best_bid <= 0
                or no_top.best_bid <= 0
            ):
                skip_counts[SkipReason.BAD_BOOK] += 1
                continue

            edge_bps = calculate_edge_bps(yes_top.best_ask, no_top.best_ask)
            spread_bps = max(
                calculate_spread_bps(yes_top.best_bid, yes_top.best_ask),
                calculate_spread_bps(no_top.best_bid, no_top.best_ask),
            )

            candidate = CandidateSnapshot(
                market_id=market.market_id,
                yes_bid=yes_top.best_bid,
                yes_ask=yes_top.best_ask,
                no_bid=no_top.best_bid,
                no_ask=no_top.best_ask,
                sum=yes_top.best_ask + no_top.best_ask,
                edge_bps=edge_bps,
                spread_bps=spread_bps,
                liquidity_usd=market.liquidity_usd,
            )
            candidates.append(candidate)

            opportunity, reason = self._evaluate(market, candidate, now)
            candidate.reason = reason.value if isinstance(reason, SkipReason) else reason
            if opportunity is None:
                skip_counts[reason] += 1
                continue
            opportunities.append(opportunity)

        self._last_diagnostics = ArbDiagnostics(
            candidates=tuple(candidates), skip_counts=skip_counts
        )

        if opportunities:
            logger.info(
                f"Scan found {len(opportunities)} opportunities "
                f"({self._last_diagnostics.summary()})"
            )
        else:
            logger.debug(f"Scan complete: {self._last_diagnostics.summary()}")

        return opportunities

    def _evaluate(self, market: MarketSnapshot, candidate: CandidateSnapshot, now: int):
        """Apply the post-snapshot filters. Returns (opportunity or None, reason)."""
        cfg = self.config

        if market.liquidity_usd is not None and market.liquidity_usd < cfg.min_liquidity_usd:
            return None, SkipReason.LOW_LIQ

        if market.end_time and market.end_time - now > cfg.max_hold_ms:
            return None, SkipReason.OTHER

        if candidate.edge_bps < cfg.min_edge_bps:
            return None, SkipReason.LOW_EDGE

        if candidate.spread_bps > cfg.max_spread_bps:
            return None, SkipReason.WIDE_SPREAD

        market_exposure, wallet_exposure = self.get_exposure(market.market_id)
        sizing = compute_size_usd(
            base_usd=cfg.trade_base_usd,
            edge_bps=candidate.edge_bps,
            mode=cfg.size_scaling,
            max_position_usd=cfg.max_position_usd,
            max_wallet_exposure_usd=cfg.max_wallet_exposure_usd,
            current_market_exposure_usd=market_exposure,
            current_wallet_exposure_usd=wallet_exposure,
            reference_edge_bps=cfg.size_reference_edge_bps,
        )
        if sizing.size_usd <= 0:
            return None, SkipReason.OTHER

        est_profit_usd = estimate_profit_usd(
            size_usd=sizing.size_usd,
            edge_bps=candidate.edge_bps,
            fee_bps=cfg.fee_bps,
            slippage_bps=cfg.slippage_bps,
        )
        if est_profit_usd < cfg.min_profit_usd:
            return None, SkipReason.LOW_PROFIT

        opportunity = Opportunity(
            market_id=market.market_id,
            yes_token_id=market.yes_token_id,
            no_token_id=market.no_token_id,
            yes_ask=candidate.yes_ask,
            no_ask=candidate.no_ask,
            edge_bps=candidate.edge_bps,
            est_profit_usd=est_profit_usd,
            size_usd=sizing.size_usd,
            spread_bps=candidate.spread_bps,
            size_tier=sizing.size_tier.value,
            liquidity_usd=market.liquidity_usd,
            end_time=market.end_time,
        )
        return opportunity, ELIGIBLE

    def get_diagnostics(self) -> ArbDiagnostics:
        """Diagnostics from the most recent find_opportunities call."""
        return self._last_diagnostics
