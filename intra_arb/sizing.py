"""
Position sizing for arbitrage opportunities.

The raw size grows sub-linearly with edge and is then clipped to the room
left under the per-market and wallet-wide exposure caps.
"""
import math
from dataclasses import dataclass
from enum import Enum


class SizeScalingMode(str, Enum):
    """How the base trade size scales with edge."""
    FLAT = "flat"
    LINEAR = "linear"
    SQRT = "sqrt"
    LOG = "log"


class SizeTier(str, Enum):
    """Which bound produced the final size."""
    UNCAPPED = "uncapped"
    CAPPED_BY_MARKET = "capped_by_market"
    CAPPED_BY_WALLET = "capped_by_wallet"
    EXHAUSTED = "exhausted"


DEFAULT_REFERENCE_EDGE_BPS = 10_000.0


@dataclass(frozen=True)
class SizingResult:
    size_usd: float
    size_tier: SizeTier


def scaling_multiplier(
    edge_bps: float,
    mode: SizeScalingMode,
    reference_edge_bps: float = DEFAULT_REFERENCE_EDGE_BPS,
) -> float:
    """
    Multiplier applied to the base size.

    Every mode returns 1.0 at zero edge and is non-decreasing in edge.
    Negative edge is treated as zero.
    """
    edge = max(0.0, edge_bps) / reference_edge_bps
    mode = SizeScalingMode(mode)
    if mode == SizeScalingMode.FLAT:
        return 1.0
    if mode == SizeScalingMode.LINEAR:
        return 1.0 + edge
    if mode == SizeScalingMode.LOG:
        return 1.0 + math.log1p(edge * 10) / 10
    return math.sqrt(1.0 + edge)


def compute_size_usd(
    base_usd: float,
    edge_bps: float,
    mode: SizeScalingMode,
    max_position_usd: float,
    max_wallet_exposure_usd: float,
    current_market_exposure_usd: float,
    current_wallet_exposure_usd: float,
    reference_edge_bps: float = DEFAULT_REFERENCE_EDGE_BPS,
) -> SizingResult:
    """
    Size a trade: scale the base by edge, then clip to remaining market and
    wallet room. Never negative.
    """
    target = base_usd * scaling_multiplier(edge_bps, mode, reference_edge_bps)
    remaining_market = max(0.0, max_position_usd - current_market_exposure_usd)
    remaining_wallet = max(0.0, max_wallet_exposure_usd - current_wallet_exposure_usd)

    size_usd = max(0.0, min(target, remaining_market, remaining_wallet))

    if size_usd <= 0:
        tier = SizeTier.EXHAUSTED
    elif size_usd >= target:
        tier = SizeTier.UNCAPPED
    elif remaining_market <= remaining_wallet:
        tier = SizeTier.CAPPED_BY_MARKET
    else:
        tier = SizeTier.CAPPED_BY_WALLET

    return SizingResult(size_usd=size_usd, size_tier=tier)
