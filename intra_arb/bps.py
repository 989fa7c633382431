"""
Basis-point helpers for binary YES/NO arbitrage.

One YES share plus one NO share always redeems for $1.00, so buying both
legs for less than $1.00 locks in the difference. All results are in basis
points (1 bps = 0.01%).
"""

BPS = 10_000


def calculate_edge_bps(yes_ask: float, no_ask: float) -> float:
    """
    Discount below $1.00 of buying one YES and one NO share, in bps.

    Positive when yes_ask + no_ask < 1, zero at exactly 1, negative above.
    """
    return (1.0 - (yes_ask + no_ask)) * BPS


def calculate_spread_bps(bid: float, ask: float) -> float:
    """Bid/ask gap of one leg normalised by the ask, in bps."""
    if ask <= 0:
        return 0.0
    return (ask - bid) / ask * BPS


def estimate_profit_usd(
    size_usd: float,
    edge_bps: float,
    fee_bps: float,
    slippage_bps: float,
) -> float:
    """
    Edge-implied profit minus modelled fees and slippage.

    Costs are clamped at zero so they can only reduce profit.
    """
    gross = size_usd * edge_bps / BPS
    costs = size_usd * max(0.0, fee_bps + slippage_bps) / BPS
    return gross - costs
