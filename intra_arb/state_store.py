"""
Arbitrage bot state: exposure, cooldowns, failure streak, trade history.

One StateStore is built at startup and handed to the risk manager and the
strategy's exposure accessor. State is snapshotted to JSON so exposure caps
and cooldowns hold across restarts.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

STATE_FILENAME = "arb_state.json"


class StateStore:
    """
    In-memory bot state with optional JSON persistence.

    Persistence:
    - snapshot() writes the full state to <state_dir>/arb_state.json
    - load() restores it; a missing or unreadable file leaves a fresh state
    """

    def __init__(self, state_dir: str = "data", snapshot_enabled: bool = True):
        """
        Args:
            state_dir: Directory holding the snapshot file
            snapshot_enabled: When False, snapshot() is a no-op
        """
        self.snapshot_path = Path(state_dir) / STATE_FILENAME
        self.snapshot_enabled = snapshot_enabled

        self.market_exposure_usd: Dict[str, float] = {}
        self.wallet_exposure_usd: float = 0.0
        self.market_cooldowns: Dict[str, int] = {}
        self.consecutive_failures: int = 0
        self.trade_timestamps: List[int] = []

    # --- Exposure ---

    def get_market_exposure(self, market_id: str) -> float:
        return self.market_exposure_usd.get(market_id, 0.0)

    def get_wallet_exposure(self) -> float:
        return self.wallet_exposure_usd

    def get_exposure(self, market_id: str) -> Tuple[float, float]:
        """Exposure accessor for the strategy: (market, wallet) in USD."""
        return self.get_market_exposure(market_id), self.wallet_exposure_usd

    def add_exposure(self, market_id: str, amount_usd: float) -> None:
        self.market_exposure_usd[market_id] = self.get_market_exposure(market_id) + amount_usd
        self.wallet_exposure_usd += amount_usd

    # --- Cooldowns ---

    def set_market_cooldown(self, market_id: str, next_allowed_at: int) -> None:
        self.market_cooldowns[market_id] = next_allowed_at

    def get_market_cooldown(self, market_id: str) -> Optional[int]:
        return self.market_cooldowns.get(market_id)

    # --- Failures ---

    def increment_failure(self) -> int:
        self.consecutive_failures += 1
        return self.consecutive_failures

    def reset_failures(self) -> None:
        self.consecutive_failures = 0

    # --- Trade history ---

    def record_trade_timestamp(self, timestamp: int) -> None:
        self.trade_timestamps.append(timestamp)

    def count_trades_since(self, since: int) -> int:
        """Count trades at or after since (epoch ms), dropping older entries."""
        self.trade_timestamps = [ts for ts in self.trade_timestamps if ts >= since]
        return len(self.trade_timestamps)

    # --- Persistence ---

    def to_dict(self) -> Dict:
        return {
            "market_exposure_usd": dict(self.market_exposure_usd),
            "wallet_exposure_usd": self.wallet_exposure_usd,
            "market_cooldowns": dict(self.market_cooldowns),
            "consecutive_failures": self.consecutive_failures,
            "trade_timestamps": list(self.trade_timestamps),
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

    def snapshot(self) -> None:
        """Save state to the snapshot file."""
        if not self.snapshot_enabled:
            return
        try:
            self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.snapshot_path, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save arb state: {e}")

    def load(self) -> bool:
        """
        Load state from the snapshot file.

        Returns:
            True if a snapshot was restored
        """
        if not self.snapshot_path.exists():
            return False

        try:
            with open(self.snapshot_path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load arb state from {self.snapshot_path}: {e}")
            return False

        self.market_exposure_usd = {
            k: float(v) for k, v in (data.get("market_exposure_usd") or {}).items()
        }
        self.wallet_exposure_usd = float(data.get("wallet_exposure_usd") or 0.0)
        self.market_cooldowns = {
            k: int(v) for k, v in (data.get("market_cooldowns") or {}).items()
        }
        self.consecutive_failures = int(data.get("consecutive_failures") or 0)
        self.trade_timestamps = [int(ts) for ts in data.get("trade_timestamps") or []]

        logger.info(
            f"Loaded arb state: wallet_exposure=${self.wallet_exposure_usd:.2f} "
            f"markets={len(self.market_exposure_usd)} "
            f"failures={self.consecutive_failures}"
        )
        return True
