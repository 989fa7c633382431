"""
Data models for the intra-market arbitrage strategy.

Prices are on the 0-1 probability scale (one share pays $1 at resolution).
Timestamps are epoch milliseconds unless the field name says otherwise.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class OrderBookTop:
    """Best bid and ask for a single outcome token."""
    best_bid: Optional[float] = None
    best_ask: Optional[float] = None


@dataclass(frozen=True)
class MarketSummary:
    """A binary market as listed by the exchange, before book tops are fetched."""
    market_id: str
    yes_token_id: str
    no_token_id: str
    end_time: Optional[int] = None
    liquidity_usd: Optional[float] = None
    volume_usd: Optional[float] = None


@dataclass(frozen=True)
class MarketSnapshot:
    """A market plus the top of both outcome books, fixed for one scan."""
    market_id: str
    yes_token_id: str
    no_token_id: str
    yes_top: OrderBookTop
    no_top: OrderBookTop
    liquidity_usd: Optional[float] = None
    end_time: Optional[int] = None
    volume_usd: Optional[float] = None

    @classmethod
    def from_summary(
        cls, summary: MarketSummary, yes_top: OrderBookTop, no_top: OrderBookTop
    ) -> "MarketSnapshot":
        return cls(
            market_id=summary.market_id,
            yes_token_id=summary.yes_token_id,
            no_token_id=summary.no_token_id,
            yes_top=yes_top,
            no_top=no_top,
            liquidity_usd=summary.liquidity_usd,
            end_time=summary.end_time,
            volume_usd=summary.volume_usd,
        )


class SkipReason(str, Enum):
    """Why a market did not become an opportunity during a scan."""
    LOW_EDGE = "SKIP_LOW_EDGE"
    LOW_PROFIT = "SKIP_LOW_PROFIT"
    LOW_LIQ = "SKIP_LOW_LIQ"
    WIDE_SPREAD = "SKIP_WIDE_SPREAD"
    BAD_BOOK = "SKIP_BAD_BOOK"
    UNITS = "SKIP_UNITS"
    OTHER = "SKIP_OTHER"


ELIGIBLE = "ELIGIBLE"


@dataclass
class CandidateSnapshot:
    """Per-market working record built during one scan."""
    market_id: str
    yes_bid: float
    yes_ask: float
    no_bid: float
    no_ask: float
    sum: float
    edge_bps: float
    spread_bps: float
    liquidity_usd: Optional[float] = None
    reason: Optional[str] = None  # A SkipReason value or ELIGIBLE

    @property
    def is_eligible(self) -> bool:
        return self.reason == ELIGIBLE


def empty_skip_counts() -> Dict[SkipReason, int]:
    return {reason: 0 for reason in SkipReason}


@dataclass(frozen=True)
class ArbDiagnostics:
    """Full-funnel view of the most recent scan."""
    candidates: Tuple[CandidateSnapshot, ...] = ()
    skip_counts: Dict[SkipReason, int] = field(default_factory=empty_skip_counts)

    @property
    def eligible_count(self) -> int:
        return sum(1 for c in self.candidates if c.is_eligible)

    def summary(self) -> str:
        """One-line funnel summary for the scan log."""
        counts = " ".join(
            f"{reason.value}={count}" for reason, count in self.skip_counts.items() if count
        )
        return (
            f"candidates={len(self.candidates)} eligible={self.eligible_count}"
            + (f" {counts}" if counts else "")
        )


@dataclass(frozen=True)
class Opportunity:
    """A sized, filter-passing arbitrage opportunity."""
    market_id: str
    yes_token_id: str
    no_token_id: str
    yes_ask: float
    no_ask: float
    edge_bps: float
    est_profit_usd: float
    size_usd: float
    spread_bps: float
    size_tier: str
    liquidity_usd: Optional[float] = None
    end_time: Optional[int] = None


@dataclass(frozen=True)
class TradePlan:
    """What the executor is asked to do for one opportunity."""
    market_id: str
    yes_token_id: str
    no_token_id: str
    yes_ask: float
    no_ask: float
    size_usd: float
    edge_bps: float
    est_profit_usd: float

    @classmethod
    def from_opportunity(cls, opportunity: Opportunity) -> "TradePlan":
        return cls(
            market_id=opportunity.market_id,
            yes_token_id=opportunity.yes_token_id,
            no_token_id=opportunity.no_token_id,
            yes_ask=opportunity.yes_ask,
            no_ask=opportunity.no_ask,
            size_usd=opportunity.size_usd,
            edge_bps=opportunity.edge_bps,
            est_profit_usd=opportunity.est_profit_usd,
        )


class ExecutionStatus(str, Enum):
    """Outcome of a trade execution attempt."""
    DRY_RUN = "dry_run"
    SUBMITTED = "submitted"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TradeExecutionResult:
    """Result of executing a TradePlan."""
    status: ExecutionStatus
    order_ids: List[str] = field(default_factory=list)
    reason: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status in (ExecutionStatus.SUBMITTED, ExecutionStatus.DRY_RUN)


@dataclass(frozen=True)
class RiskDecision:
    """Answer from the risk manager gate."""
    allowed: bool
    reason: str = ""


@dataclass(frozen=True)
class GasCheck:
    """Result of the gas balance check."""
    ok: bool
    balance: float
