"""
Intra-Market Arbitrage

Finds Polymarket binary markets where one YES share plus one NO share costs
less than the $1.00 they redeem for, sizes the trade against exposure caps
and places both legs through a throttled submission controller.
"""

from .bps import calculate_edge_bps, calculate_spread_bps, estimate_profit_usd
from .config import ArbConfig
from .entry_meta import (
    EntryMeta,
    EntryMetaResolver,
    TradeRecord,
    reconstruct_entry_meta,
    validate_against_live_shares,
)
from .models import (
    ELIGIBLE,
    ArbDiagnostics,
    CandidateSnapshot,
    MarketSnapshot,
    MarketSummary,
    Opportunity,
    OrderBookTop,
    SkipReason,
    TradePlan,
)
from .sizing import SizeScalingMode, SizeTier, SizingResult, compute_size_usd
from .strategy import IntraMarketArbStrategy, normalize_orderbook_top
from .submission import (
    FillInfo,
    OrderSubmissionController,
    SubmissionResult,
    SubmissionSettings,
    SubmissionStatus,
    classify_submission_error,
    extract_fill_info,
    is_cloudflare_challenge,
)

__all__ = [
    # Basis points
    "calculate_edge_bps",
    "calculate_spread_bps",
    "estimate_profit_usd",
    # Config
    "ArbConfig",
    # Models
    "ELIGIBLE",
    "ArbDiagnostics",
    "CandidateSnapshot",
    "MarketSnapshot",
    "MarketSummary",
    "Opportunity",
    "OrderBookTop",
    "SkipReason",
    "TradePlan",
    # Sizing
    "SizeScalingMode",
    "SizeTier",
    "SizingResult",
    "compute_size_usd",
    # Strategy
    "IntraMarketArbStrategy",
    "normalize_orderbook_top",
    # Submission
    "FillInfo",
    "OrderSubmissionController",
    "SubmissionResult",
    "SubmissionSettings",
    "SubmissionStatus",
    "classify_submission_error",
    "extract_fill_info",
    "is_cloudflare_challenge",
    # Entry meta
    "EntryMeta",
    "EntryMetaResolver",
    "TradeRecord",
    "reconstruct_entry_meta",
    "validate_against_live_shares",
]
