"""
Append-only JSONL audit log of every trade decision the engine makes.
"""
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import Opportunity

logger = logging.getLogger(__name__)


@dataclass
class DecisionRecord:
    """A single trade/skip decision."""
    ts: str
    market_id: str
    yes_ask: float
    no_ask: float
    edge_bps: float
    spread_bps: float
    est_profit_usd: float
    action: str  # "trade" or "skip"
    reason: str
    status: str  # "submitted" or "skipped"
    liquidity: Optional[float] = None
    planned_size: Optional[float] = None
    order_id: Optional[str] = None

    @classmethod
    def from_opportunity(
        cls,
        opportunity: Opportunity,
        action: str,
        reason: str,
        now: int,
        planned_size: Optional[float] = None,
        order_id: Optional[str] = None,
    ) -> "DecisionRecord":
        return cls(
            ts=datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat(),
            market_id=opportunity.market_id,
            yes_ask=opportunity.yes_ask,
            no_ask=opportunity.no_ask,
            edge_bps=opportunity.edge_bps,
            spread_bps=opportunity.spread_bps,
            est_profit_usd=opportunity.est_profit_usd,
            action=action,
            reason=reason,
            status="submitted" if action == "trade" else "skipped",
            liquidity=opportunity.liquidity_usd,
            planned_size=planned_size,
            order_id=order_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DecisionLogger:
    """Writes DecisionRecords as JSON lines."""

    def __init__(self, path: str):
        self.path = Path(path)

    def append(self, record: DecisionRecord) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(record.to_dict()) + "\n")
        except OSError as e:
            logger.error(f"Failed to append decision to {self.path}: {e}")

    def read_all(self) -> List[DecisionRecord]:
        """Load every record (for tooling and tests)."""
        if not self.path.exists():
            return []
        records = []
        with open(self.path) as f:
            for line in f:
                line = line.strip()
                if line:
                    records.append(DecisionRecord(**json.loads(line)))
        return records
