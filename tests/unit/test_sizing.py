"""
Unit tests for intra_arb/sizing.py

Tests:
- scaling_multiplier(): per-mode growth with edge
- compute_size_usd(): exposure caps and size tiers
"""

import math

import pytest

from intra_arb.sizing import (
    SizeScalingMode,
    SizeTier,
    compute_size_usd,
    scaling_multiplier,
)


def size(edge_bps=500.0, mode=SizeScalingMode.SQRT, base=10.0, max_position=100.0,
         max_wallet=1000.0, market_exposure=0.0, wallet_exposure=0.0, reference=10_000.0):
    return compute_size_usd(
        base_usd=base,
        edge_bps=edge_bps,
        mode=mode,
        max_position_usd=max_position,
        max_wallet_exposure_usd=max_wallet,
        current_market_exposure_usd=market_exposure,
        current_wallet_exposure_usd=wallet_exposure,
        reference_edge_bps=reference,
    )


class TestScalingMultiplier:
    """Tests for scaling_multiplier."""

    @pytest.mark.parametrize("mode", list(SizeScalingMode))
    def test_one_at_zero_edge(self, mode):
        """Every mode leaves the base untouched at zero edge."""
        assert scaling_multiplier(0.0, mode) == pytest.approx(1.0)

    @pytest.mark.parametrize("mode", list(SizeScalingMode))
    def test_negative_edge_treated_as_zero(self, mode):
        """Negative edge never shrinks the base."""
        assert scaling_multiplier(-500.0, mode) == pytest.approx(1.0)

    @pytest.mark.parametrize("mode", list(SizeScalingMode))
    def test_non_decreasing(self, mode):
        """More edge never means a smaller multiplier."""
        values = [scaling_multiplier(e, mode) for e in (0, 100, 500, 1000, 5000)]
        assert values == sorted(values)

    def test_flat_ignores_edge(self):
        assert scaling_multiplier(5000.0, SizeScalingMode.FLAT) == 1.0

    def test_linear(self):
        assert scaling_multiplier(5000.0, SizeScalingMode.LINEAR) == pytest.approx(1.5)

    def test_sqrt(self):
        assert scaling_multiplier(5000.0, SizeScalingMode.SQRT) == pytest.approx(math.sqrt(1.5))

    def test_log(self):
        expected = 1.0 + math.log1p(5.0) / 10
        assert scaling_multiplier(5000.0, SizeScalingMode.LOG) == pytest.approx(expected)

    def test_accepts_string_mode(self):
        """Mode values from env config are plain strings."""
        assert scaling_multiplier(5000.0, "linear") == pytest.approx(1.5)

    def test_reference_edge_changes_scale(self):
        """A smaller reference edge makes sizing more aggressive."""
        assert scaling_multiplier(500.0, SizeScalingMode.LINEAR, reference_edge_bps=1000.0) == pytest.approx(1.5)


class TestComputeSizeUsd:
    """Tests for compute_size_usd."""

    def test_uncapped_size(self):
        """Plenty of room leaves the scaled size untouched."""
        result = size(edge_bps=0.0)
        assert result.size_usd == pytest.approx(10.0)
        assert result.size_tier == SizeTier.UNCAPPED

    def test_capped_by_market(self):
        """Remaining market room below target caps the size."""
        result = size(edge_bps=0.0, max_position=20.0, market_exposure=16.0)
        assert result.size_usd == pytest.approx(4.0)
        assert result.size_tier == SizeTier.CAPPED_BY_MARKET

    def test_capped_by_wallet(self):
        """Wallet room tighter than market room caps the size."""
        result = size(edge_bps=0.0, max_wallet=100.0, wallet_exposure=97.0)
        assert result.size_usd == pytest.approx(3.0)
        assert result.size_tier == SizeTier.CAPPED_BY_WALLET

    def test_exhausted_when_no_room(self):
        """Exposure at or over a cap leaves nothing to trade."""
        result = size(max_position=50.0, market_exposure=60.0)
        assert result.size_usd == 0.0
        assert result.size_tier == SizeTier.EXHAUSTED

    def test_never_exceeds_any_bound(self):
        """Size stays within target, market room and wallet room."""
        for market_exposure in (0.0, 5.0, 50.0, 99.0):
            for wallet_exposure in (0.0, 500.0, 995.0):
                result = size(
                    edge_bps=2000.0,
                    market_exposure=market_exposure,
                    wallet_exposure=wallet_exposure,
                )
                target = 10.0 * math.sqrt(1.2)
                assert 0.0 <= result.size_usd <= target + 1e-9
                assert result.size_usd <= 100.0 - market_exposure + 1e-9
                assert result.size_usd <= 1000.0 - wallet_exposure + 1e-9
