"""
Entry metadata (cost basis and holding time) from trade history.

Positions are rebuilt from the wallet's fills for one outcome token using
weighted-average cost accounting. Nothing is persisted locally: the same
trade list and reference time always give the same answer, so holding time
survives process restarts.
"""
import logging
import math
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests

from arb_data.exceptions import ExchangeHTTPError
from arb_data.retry import retry_api

from .config import DATA_API_HOST

logger = logging.getLogger(__name__)

DUST_SHARES = 0.0001

# Reconciliation thresholds against live share counts
MAX_PERCENT_DIFF = 2.0
MAX_ABSOLUTE_DIFF = 0.5

DEFAULT_CACHE_TTL_MS = 90_000
FETCH_ERROR_COOLDOWN_MS = 60_000


@dataclass(frozen=True)
class TradeRecord:
    """One fill from the trade history. timestamp is in epoch seconds."""
    timestamp: float
    side: str
    size: float
    price: float

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> Optional["TradeRecord"]:
        """Parse a data-API trade; returns None when a field cannot be read."""
        try:
            return cls(
                timestamp=float(data.get("timestamp")),
                side=str(data.get("side", "")).upper(),
                size=float(data.get("size")),
                price=float(data.get("price")),
            )
        except (TypeError, ValueError):
            return None

    @property
    def is_valid(self) -> bool:
        return (
            math.isfinite(self.size) and self.size > 0
            and math.isfinite(self.price) and self.price >= 0
            and math.isfinite(self.timestamp) and self.timestamp > 0
        )


@dataclass(frozen=True)
class EntryMeta:
    """Reconstructed open position for one token."""
    avg_entry_price_cents: float
    first_acquired_at: int  # epoch ms
    last_acquired_at: int  # epoch ms
    time_held_sec: int
    remaining_shares: float
    cache_age_ms: int = 0
    trusted: bool = True
    untrusted_reason: Optional[str] = None


def _coerce_trades(trades: Iterable[Any]) -> List[TradeRecord]:
    parsed = []
    for trade in trades:
        if not isinstance(trade, TradeRecord):
            trade = TradeRecord.from_api(trade)
        if trade is not None and trade.is_valid:
            parsed.append(trade)
    return parsed


def reconstruct_entry_meta(
    trades: Iterable[Any],
    now_ms: int,
    use_last_acquired: bool = False,
) -> Optional[EntryMeta]:
    """
    Replay a trade history into weighted-average entry metadata.

    Args:
        trades: TradeRecord instances or raw data-API trade dicts, any order
        now_ms: Reference time in epoch milliseconds
        use_last_acquired: Measure time held from the latest buy instead of the first

    Returns:
        EntryMeta for the open position, or None when nothing is held

    Sells reduce the position at the current average price, so they never
    change the average cost of what remains. A position that falls to dust
    is closed and any later buy starts a new lineage.
    """
    ordered = sorted(_coerce_trades(trades), key=lambda t: t.timestamp)

    total_shares = 0.0
    total_cost = 0.0
    first_acquired_at: Optional[int] = None
    last_acquired_at: Optional[int] = None

    for trade in ordered:
        timestamp_ms = int(trade.timestamp * 1000)

        if trade.side == "BUY":
            total_shares += trade.size
            total_cost += trade.size * trade.price
            if first_acquired_at is None:
                first_acquired_at = timestamp_ms
            last_acquired_at = timestamp_ms

        elif trade.side == "SELL" and total_shares > 0:
            avg_price = total_cost / total_shares
            sold = min(trade.size, total_shares)
            total_shares -= sold
            total_cost -= sold * avg_price

            if total_shares <= DUST_SHARES:
                total_shares = 0.0
                total_cost = 0.0
                first_acquired_at = None
                last_acquired_at = None

    if total_shares <= DUST_SHARES or first_acquired_at is None or last_acquired_at is None:
        return None

    reference = last_acquired_at if use_last_acquired else first_acquired_at
    return EntryMeta(
        avg_entry_price_cents=total_cost / total_shares * 100,
        first_acquired_at=first_acquired_at,
        last_acquired_at=last_acquired_at,
        time_held_sec=math.floor((now_ms - reference) / 1000),
        remaining_shares=total_shares,
    )


def validate_against_live_shares(meta: EntryMeta, live_shares: Optional[float]) -> EntryMeta:
    """
    Mark the metadata untrusted when it disagrees with the exchange.

    Either threshold alone (more than 2% or more than 0.5 shares apart) is
    enough. Missing or non-positive live shares cannot be checked and are
    trusted.
    """
    if live_shares is None or live_shares <= 0:
        return replace(meta, trusted=True, untrusted_reason=None)

    computed = meta.remaining_shares
    difference = abs(computed - live_shares)
    percent_diff = difference / live_shares * 100

    if percent_diff > MAX_PERCENT_DIFF or difference > MAX_ABSOLUTE_DIFF:
        reason = (
            f"Shares mismatch: computed={computed:.2f} vs live={live_shares:.2f} "
            f"(diff={difference:.2f}, {percent_diff:.1f}%)"
        )
        return replace(meta, trusted=False, untrusted_reason=reason)

    return replace(meta, trusted=True, untrusted_reason=None)


@dataclass
class _CacheEntry:
    meta: EntryMeta
    fetched_at: int


class EntryMetaResolver:
    """
    Resolves entry metadata for wallet positions from the data API.

    Results are cached in memory for a short TTL; time held is recomputed on
    every cache read. A token whose fetch failed is not retried for a minute.
    """

    TRADES_ENDPOINT = "/trades"

    def __init__(
        self,
        data_api_host: str = DATA_API_HOST,
        cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        api_timeout_seconds: float = 10.0,
        max_pages_per_token: int = 10,
        trades_per_page: int = 500,
        use_last_acquired_for_time_held: bool = False,
        max_history_days: Optional[int] = None,
        max_trades_per_token: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.data_api_host = data_api_host.rstrip("/")
        self.cache_ttl_ms = cache_ttl_ms
        self.api_timeout_seconds = api_timeout_seconds
        self.max_pages_per_token = max_pages_per_token
        self.trades_per_page = trades_per_page
        self.use_last_acquired_for_time_held = use_last_acquired_for_time_held
        self.max_history_days = max_history_days
        self.max_trades_per_token = max_trades_per_token

        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        self._cache: Dict[str, _CacheEntry] = {}
        self._fetch_errors: Dict[str, tuple] = {}  # key -> (error_at, message)

        if max_history_days or max_trades_per_token:
            logger.info(
                f"Entry meta history limits: max_days={max_history_days or 'unlimited'} "
                f"max_trades_per_token={max_trades_per_token or 'unlimited'}"
            )

    @staticmethod
    def _cache_key(address: str, token_id: str) -> str:
        return f"{address.lower()}-{token_id}"

    def resolve(
        self,
        address: str,
        token_id: str,
        live_shares: Optional[float] = None,
        now_ms: Optional[int] = None,
    ) -> Optional[EntryMeta]:
        """
        Resolve entry metadata for one token held by address.

        Args:
            address: Wallet (or proxy) address that traded the token
            token_id: Outcome token id
            live_shares: Share count reported by the exchange, for reconciliation
            now_ms: Reference time (defaults to wall clock)

        Returns:
            EntryMeta, or None when there is no open position or the fetch failed
        """
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        key = self._cache_key(address, token_id)

        cached = self._cache.get(key)
        if cached and now_ms - cached.fetched_at < self.cache_ttl_ms:
            meta = cached.meta
            reference = (
                meta.last_acquired_at if self.use_last_acquired_for_time_held
                else meta.first_acquired_at
            )
            return replace(
                meta,
                cache_age_ms=now_ms - cached.fetched_at,
                time_held_sec=math.floor((now_ms - reference) / 1000),
            )

        error = self._fetch_errors.get(key)
        if error and now_ms - error[0] < FETCH_ERROR_COOLDOWN_MS:
            logger.debug(f"Skipping {token_id[:12]}... (in error cooldown: {error[1]})")
            return None

        try:
            trades = self.fetch_trades(address, token_id, now_ms)
        except (requests.RequestException, ExchangeHTTPError, ValueError) as e:
            self._fetch_errors[key] = (now_ms, str(e))
            logger.warning(f"Failed to fetch entry meta for {token_id[:12]}...: {e}")
            return None

        meta = reconstruct_entry_meta(trades, now_ms, self.use_last_acquired_for_time_held)
        if meta is None:
            logger.debug(f"No open position for {token_id[:12]}... after trade reconstruction")
            return None

        meta = validate_against_live_shares(meta, live_shares)
        if not meta.trusted:
            logger.warning(f"UNTRUSTED_ENTRY token={token_id[:12]}... {meta.untrusted_reason}")

        self._cache[key] = _CacheEntry(meta=meta, fetched_at=now_ms)
        self._fetch_errors.pop(key, None)
        logger.debug(
            f"Reconstructed {token_id[:12]}...: {meta.remaining_shares:.2f} shares "
            f"@ {meta.avg_entry_price_cents:.1f}c avg, held={meta.time_held_sec // 60}min"
        )
        return meta

    def fetch_trades(self, address: str, token_id: str, now_ms: int) -> List[Dict[str, Any]]:
        """Page through the wallet's trades for one token, newest pages first."""
        cutoff_sec = 0.0
        if self.max_history_days:
            cutoff_sec = (now_ms - self.max_history_days * 24 * 60 * 60 * 1000) / 1000

        trades: List[Dict[str, Any]] = []
        offset = 0
        for _ in range(self.max_pages_per_token):
            page = self._fetch_page(address, token_id, offset)
            if not page:
                break

            kept = page
            if cutoff_sec > 0:
                kept = [t for t in page if float(t.get("timestamp") or 0) >= cutoff_sec]
                if not kept:
                    logger.debug(
                        f"Stopping scan for {token_id[:12]}... - trades older than "
                        f"{self.max_history_days} days"
                    )
                    break

            trades.extend(kept)

            if self.max_trades_per_token and len(trades) >= self.max_trades_per_token:
                logger.debug(
                    f"Stopping scan for {token_id[:12]}... - reached "
                    f"{self.max_trades_per_token} trades limit"
                )
                break

            if len(page) < self.trades_per_page:
                break
            offset += self.trades_per_page

        return trades

    @retry_api
    def _fetch_page(self, address: str, token_id: str, offset: int) -> List[Dict[str, Any]]:
        url = f"{self.data_api_host}{self.TRADES_ENDPOINT}"
        params = {
            "user": address,
            "asset": token_id,
            "limit": self.trades_per_page,
            "offset": offset,
        }
        resp = self.session.get(url, params=params, timeout=self.api_timeout_seconds)
        if resp.status_code != 200:
            raise ExchangeHTTPError(
                f"Trade history request failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
                headers=resp.headers,
                endpoint=self.TRADES_ENDPOINT,
            )
        data = resp.json()
        return data if isinstance(data, list) else []

    def invalidate(self, address: str, token_id: str) -> None:
        """Drop the cached entry for a token, e.g. after a fill."""
        key = self._cache_key(address, token_id)
        self._cache.pop(key, None)
        self._fetch_errors.pop(key, None)

    def clear_cache(self) -> None:
        self._cache.clear()
        self._fetch_errors.clear()

    def get_cache_stats(self) -> Dict[str, int]:
        return {"size": len(self._cache), "error_count": len(self._fetch_errors)}
