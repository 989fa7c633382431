"""
Unit tests for intra_arb/config.py

Tests:
- Default values
- Environment variable loading
- Validation rules
- Live trading gate and derived values
"""

import pytest

from intra_arb.config import LIVE_TRADING_ACK, ArbConfig
from intra_arb.sizing import SizeScalingMode


class TestDefaults:
    """Tests for ArbConfig defaults."""

    def test_default_values(self):
        """Should have conservative defaults."""
        config = ArbConfig()

        assert config.min_edge_bps == 300.0
        assert config.min_profit_usd == 1.0
        assert config.min_liquidity_usd == 10000.0
        assert config.max_spread_bps == 100.0
        assert config.max_hold_minutes == 120.0
        assert config.trade_base_usd == 3.0
        assert config.max_position_usd == 15.0
        assert config.max_wallet_exposure_usd == 50.0
        assert config.size_scaling == SizeScalingMode.SQRT
        assert config.slippage_bps == 30.0
        assert config.fee_bps == 10.0
        assert config.max_trades_per_hour == 4
        assert config.max_consecutive_failures == 2
        assert config.dry_run is True
        assert config.detect_only is False

    def test_live_trading_off_by_default(self):
        assert ArbConfig().live_trading_enabled is False

    def test_size_scaling_string_coerced(self):
        assert ArbConfig(size_scaling="log").size_scaling == SizeScalingMode.LOG

    def test_max_hold_ms(self):
        assert ArbConfig(max_hold_minutes=2).max_hold_ms == 120_000


class TestLiveTradingGate:
    """Real orders need both switches."""

    def test_dry_run_off_without_ack(self):
        assert ArbConfig(dry_run=False).live_trading_enabled is False

    def test_ack_without_dry_run_off(self):
        assert ArbConfig(live_trading=LIVE_TRADING_ACK).live_trading_enabled is False

    def test_both_switches(self):
        config = ArbConfig(dry_run=False, live_trading=LIVE_TRADING_ACK, private_key="0xkey")
        assert config.live_trading_enabled is True

    def test_live_trading_requires_private_key(self):
        with pytest.raises(ValueError, match="PRIVATE_KEY"):
            ArbConfig(dry_run=False, live_trading=LIVE_TRADING_ACK)


class TestFromEnv:
    """Tests for ArbConfig.from_env."""

    def test_defaults_without_env(self, monkeypatch):
        for key in ("ARB_MIN_EDGE_BPS", "ARB_DRY_RUN", "MODE", "ARB_SIZE_SCALING"):
            monkeypatch.delenv(key, raising=False)
        config = ArbConfig.from_env()
        assert config.enabled is True
        assert config.min_edge_bps == 300.0
        assert config.dry_run is True

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("ARB_MIN_EDGE_BPS", "450")
        monkeypatch.setenv("ARB_TRADE_BASE_USD", "5")
        monkeypatch.setenv("ARB_SIZE_SCALING", "LINEAR")
        monkeypatch.setenv("ARB_UNITS_AUTO_FIX", "false")
        monkeypatch.setenv("ARB_ORDER_SUBMIT_MIN_INTERVAL_MS", "2500")
        monkeypatch.setenv("PUBLIC_KEY", "0xwallet")

        config = ArbConfig.from_env()

        assert config.min_edge_bps == 450.0
        assert config.trade_base_usd == 5.0
        assert config.size_scaling == SizeScalingMode.LINEAR
        assert config.units_auto_fix is False
        assert config.order_submit_min_interval_ms == 2500
        assert config.wallet_address == "0xwallet"

    def test_mode_disables_arb(self, monkeypatch):
        monkeypatch.setenv("MODE", "maker")
        assert ArbConfig.from_env().enabled is False

    def test_mode_both(self, monkeypatch):
        monkeypatch.setenv("MODE", "both")
        assert ArbConfig.from_env().enabled is True

    def test_invalid_env_rejected(self, monkeypatch):
        monkeypatch.setenv("ARB_TRADE_BASE_USD", "0")
        with pytest.raises(ValueError, match="trade_base_usd"):
            ArbConfig.from_env()


class TestValidation:
    """Tests for ArbConfig.validate."""

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"scan_interval_ms": 10}, "scan_interval_ms"),
            ({"max_position_usd": 0}, "max_position_usd"),
            ({"max_wallet_exposure_usd": 5, "max_position_usd": 10}, "max_wallet_exposure_usd"),
            ({"fee_bps": -1}, "fee_bps"),
            ({"max_trades_per_hour": 0}, "max_trades_per_hour"),
            ({"min_buy_price": 1.0}, "min_buy_price"),
            ({"duplicate_prevention_ms": -1}, "duplicate_prevention_ms"),
            ({"size_reference_edge_bps": 0}, "size_reference_edge_bps"),
        ],
    )
    def test_invalid_values(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            ArbConfig(**overrides)

    def test_errors_are_collected(self):
        with pytest.raises(ValueError) as exc_info:
            ArbConfig(fee_bps=-1, slippage_bps=-1)
        assert "fee_bps" in str(exc_info.value)
        assert "slippage_bps" in str(exc_info.value)


class TestSubmissionSettings:
    """Tests for the controller settings mapping."""

    def test_seconds_converted_to_ms(self):
        config = ArbConfig(
            order_submit_market_cooldown_seconds=2.5,
            cloudflare_cooldown_seconds=60,
            auth_cooldown_seconds=30,
            min_order_usd=1.5,
        )
        settings = config.submission_settings()

        assert settings.market_cooldown_ms == 2500
        assert settings.cloudflare_cooldown_ms == 60_000
        assert settings.auth_cooldown_ms == 30_000
        assert settings.min_order_usd == 1.5
        assert settings.min_interval_ms == config.order_submit_min_interval_ms

    def test_describe_lists_thresholds(self):
        line = ArbConfig().describe()
        assert "min_edge_bps=300.0" in line
        assert "size_scaling=sqrt" in line
