"""
Configuration for the intra-market arbitrage bot.

All parameters have environment variable overrides (ARB_* prefix).
Defaults are deliberately conservative: dry run on, small base size,
tight exposure caps.
"""
import os
from dataclasses import dataclass
from typing import Optional

from .sizing import SizeScalingMode, DEFAULT_REFERENCE_EDGE_BPS
from .submission import SubmissionSettings

LIVE_TRADING_ACK = "I_UNDERSTAND_THE_RISKS"

CLOB_HOST = "https://clob.polymarket.com"
DATA_API_HOST = "https://data-api.polymarket.com"


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value or None


@dataclass
class ArbConfig:
    """Configuration for the arbitrage engine, strategy and executor."""

    # --- Mode ---
    enabled: bool = True
    scan_interval_ms: int = 3000

    # --- Opportunity Filters ---
    min_edge_bps: float = 300.0
    min_profit_usd: float = 1.0
    min_liquidity_usd: float = 10000.0
    max_spread_bps: float = 100.0
    max_hold_minutes: float = 120.0
    units_auto_fix: bool = True  # Rescale prices quoted in cents

    # --- Sizing ---
    trade_base_usd: float = 3.0
    max_position_usd: float = 15.0
    max_wallet_exposure_usd: float = 50.0
    size_scaling: SizeScalingMode = SizeScalingMode.SQRT
    size_reference_edge_bps: float = DEFAULT_REFERENCE_EDGE_BPS

    # --- Cost Model ---
    slippage_bps: float = 30.0
    fee_bps: float = 10.0

    # --- Risk Gate ---
    startup_cooldown_seconds: float = 120.0
    market_cooldown_seconds: float = 900.0
    max_trades_per_hour: int = 4
    max_consecutive_failures: int = 2
    max_concurrent_trades: int = 1  # Trades sent to the executor per scan cycle
    min_pol_gas: float = 3.0
    min_buy_price: float = 0.05  # Never buy a leg cheaper than this

    # --- Order Submission Throttles ---
    min_order_usd: float = 0.0
    order_submit_min_interval_ms: int = 1000
    order_submit_max_per_hour: int = 60
    order_submit_market_cooldown_seconds: float = 0.0
    duplicate_prevention_ms: int = 30000
    cloudflare_cooldown_seconds: float = 3600.0
    auth_cooldown_seconds: float = 300.0

    # --- Execution ---
    dry_run: bool = True
    detect_only: bool = False
    live_trading: str = ""

    # --- State / Audit ---
    state_dir: str = "data"
    decisions_log: str = "data/arb_decisions.jsonl"
    kill_switch_file: str = "data/KILL"
    snapshot_state: bool = True

    # --- Connections ---
    clob_host: str = CLOB_HOST
    data_api_host: str = DATA_API_HOST
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    wallet_address: Optional[str] = None
    funder_address: Optional[str] = None
    signature_type: int = 0
    chain_id: int = 137

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ArbConfig":
        """Create config from environment variables."""
        mode = os.getenv("MODE", "arb").lower()
        return cls(
            # Mode
            enabled=mode in ("arb", "both"),
            scan_interval_ms=int(os.getenv("ARB_SCAN_INTERVAL_MS", "3000")),
            # Opportunity Filters
            min_edge_bps=float(os.getenv("ARB_MIN_EDGE_BPS", "300")),
            min_profit_usd=float(os.getenv("ARB_MIN_PROFIT_USD", "1")),
            min_liquidity_usd=float(os.getenv("ARB_MIN_LIQUIDITY_USD", "10000")),
            max_spread_bps=float(os.getenv("ARB_MAX_SPREAD_BPS", "100")),
            max_hold_minutes=float(os.getenv("ARB_MAX_HOLD_MINUTES", "120")),
            units_auto_fix=_env_bool("ARB_UNITS_AUTO_FIX", True),
            # Sizing
            trade_base_usd=float(os.getenv("ARB_TRADE_BASE_USD", "3")),
            max_position_usd=float(os.getenv("ARB_MAX_POSITION_USD", "15")),
            max_wallet_exposure_usd=float(os.getenv("ARB_MAX_WALLET_EXPOSURE_USD", "50")),
            size_scaling=SizeScalingMode(os.getenv("ARB_SIZE_SCALING", "sqrt").lower()),
            size_reference_edge_bps=float(
                os.getenv("ARB_SIZE_REFERENCE_EDGE_BPS", str(DEFAULT_REFERENCE_EDGE_BPS))
            ),
            # Cost Model
            slippage_bps=float(os.getenv("ARB_SLIPPAGE_BPS", "30")),
            fee_bps=float(os.getenv("ARB_FEE_BPS", "10")),
            # Risk Gate
            startup_cooldown_seconds=float(os.getenv("ARB_STARTUP_COOLDOWN_SECONDS", "120")),
            market_cooldown_seconds=float(os.getenv("ARB_MARKET_COOLDOWN_SECONDS", "900")),
            max_trades_per_hour=int(os.getenv("ARB_MAX_TRADES_PER_HOUR", "4")),
            max_consecutive_failures=int(os.getenv("ARB_MAX_CONSECUTIVE_FAILURES", "2")),
            max_concurrent_trades=int(os.getenv("ARB_MAX_CONCURRENT_TRADES", "1")),
            min_pol_gas=float(os.getenv("ARB_MIN_POL_GAS", "3")),
            min_buy_price=float(os.getenv("ARB_MIN_BUY_PRICE", "0.05")),
            # Order Submission Throttles
            min_order_usd=float(os.getenv("ARB_MIN_ORDER_USD", "0")),
            order_submit_min_interval_ms=int(os.getenv("ARB_ORDER_SUBMIT_MIN_INTERVAL_MS", "1000")),
            order_submit_max_per_hour=int(os.getenv("ARB_ORDER_SUBMIT_MAX_PER_HOUR", "60")),
            order_submit_market_cooldown_seconds=float(
                os.getenv("ARB_ORDER_SUBMIT_MARKET_COOLDOWN_SECONDS", "0")
            ),
            duplicate_prevention_ms=int(os.getenv("ARB_DUPLICATE_PREVENTION_MS", "30000")),
            cloudflare_cooldown_seconds=float(os.getenv("ARB_CLOUDFLARE_COOLDOWN_SECONDS", "3600")),
            auth_cooldown_seconds=float(os.getenv("ARB_AUTH_COOLDOWN_SECONDS", "300")),
            # Execution
            dry_run=_env_bool("ARB_DRY_RUN", True),
            detect_only=_env_bool("ARB_DETECT_ONLY", False),
            live_trading=os.getenv("ARB_LIVE_TRADING", ""),
            # State / Audit
            state_dir=os.getenv("ARB_STATE_DIR", "data"),
            decisions_log=os.getenv("ARB_DECISIONS_LOG", "data/arb_decisions.jsonl"),
            kill_switch_file=os.getenv("ARB_KILL_SWITCH_FILE", "data/KILL"),
            snapshot_state=_env_bool("ARB_SNAPSHOT_STATE", True),
            # Connections
            clob_host=os.getenv("ARB_CLOB_HOST", CLOB_HOST),
            data_api_host=os.getenv("ARB_DATA_API_HOST", DATA_API_HOST),
            rpc_url=_env_optional("RPC_URL"),
            private_key=_env_optional("PRIVATE_KEY"),
            wallet_address=_env_optional("PUBLIC_KEY"),
            funder_address=_env_optional("ARB_FUNDER_ADDRESS"),
            signature_type=int(os.getenv("ARB_SIGNATURE_TYPE", "0")),
            chain_id=int(os.getenv("ARB_CHAIN_ID", "137")),
            log_level=os.getenv("ARB_LOG_LEVEL", "INFO"),
        )

    @property
    def live_trading_enabled(self) -> bool:
        """Real orders need dry_run off AND the explicit acknowledgement string."""
        return not self.dry_run and self.live_trading == LIVE_TRADING_ACK

    @property
    def max_hold_ms(self) -> float:
        return self.max_hold_minutes * 60 * 1000

    def submission_settings(self) -> SubmissionSettings:
        """Order submission throttles in the controller's millisecond units."""
        return SubmissionSettings(
            min_interval_ms=self.order_submit_min_interval_ms,
            max_per_hour=self.order_submit_max_per_hour,
            market_cooldown_ms=int(self.order_submit_market_cooldown_seconds * 1000),
            duplicate_prevention_ms=self.duplicate_prevention_ms,
            cloudflare_cooldown_ms=int(self.cloudflare_cooldown_seconds * 1000),
            auth_cooldown_ms=int(self.auth_cooldown_seconds * 1000),
            min_order_usd=self.min_order_usd,
        )

    def describe(self) -> str:
        """Single-line summary of the active thresholds for the startup log."""
        return (
            f"scan_interval_ms={self.scan_interval_ms} min_edge_bps={self.min_edge_bps} "
            f"min_profit_usd={self.min_profit_usd} min_liquidity_usd={self.min_liquidity_usd} "
            f"max_spread_bps={self.max_spread_bps} trade_base_usd={self.trade_base_usd} "
            f"size_scaling={self.size_scaling.value} slippage_bps={self.slippage_bps} "
            f"fee_bps={self.fee_bps} max_position_usd={self.max_position_usd} "
            f"max_wallet_exposure_usd={self.max_wallet_exposure_usd} "
            f"max_trades_per_hour={self.max_trades_per_hour}"
        )

    def validate(self) -> None:
        """Validate configuration values."""
        errors = []

        if self.scan_interval_ms < 100:
            errors.append("scan_interval_ms must be >= 100")

        # Filter validation
        if self.min_liquidity_usd < 0:
            errors.append("min_liquidity_usd must be >= 0")
        if self.max_spread_bps < 0:
            errors.append("max_spread_bps must be >= 0")
        if self.max_hold_minutes <= 0:
            errors.append("max_hold_minutes must be > 0")

        # Sizing validation
        if self.trade_base_usd <= 0:
            errors.append("trade_base_usd must be > 0")
        if self.max_position_usd <= 0:
            errors.append("max_position_usd must be > 0")
        if self.max_wallet_exposure_usd < self.max_position_usd:
            errors.append("max_wallet_exposure_usd must be >= max_position_usd")
        if self.size_reference_edge_bps <= 0:
            errors.append("size_reference_edge_bps must be > 0")

        # Cost validation
        if self.fee_bps < 0:
            errors.append("fee_bps must be >= 0")
        if self.slippage_bps < 0:
            errors.append("slippage_bps must be >= 0")

        # Risk validation
        if self.max_trades_per_hour < 1:
            errors.append("max_trades_per_hour must be >= 1")
        if self.max_consecutive_failures < 1:
            errors.append("max_consecutive_failures must be >= 1")
        if self.max_concurrent_trades < 1:
            errors.append("max_concurrent_trades must be >= 1")
        if not 0 <= self.min_buy_price < 1:
            errors.append("min_buy_price must be in [0, 1)")

        # Throttle validation
        if self.order_submit_min_interval_ms < 0:
            errors.append("order_submit_min_interval_ms must be >= 0")
        if self.order_submit_max_per_hour < 0:
            errors.append("order_submit_max_per_hour must be >= 0")
        if self.duplicate_prevention_ms < 0:
            errors.append("duplicate_prevention_ms must be >= 0")
        if self.cloudflare_cooldown_seconds < 0 or self.auth_cooldown_seconds < 0:
            errors.append("cooldown seconds must be >= 0")

        # Live trading needs credentials
        if self.live_trading_enabled and not self.private_key:
            errors.append("PRIVATE_KEY is required for live trading")

        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )

    def __post_init__(self):
        """Coerce enum fields and validate after initialization."""
        self.size_scaling = SizeScalingMode(self.size_scaling)
        self.validate()
