"""
Market data provider backed by the Polymarket CLOB REST API.

Lists binary markets from /simplified-markets and reads top of book from
/book. Read-only calls are retried on transient failures.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import aiohttp

from arb_data.exceptions import ExchangeHTTPError, OrderbookNotFoundError
from arb_data.retry import retry_api

from .config import CLOB_HOST
from .models import MarketSummary, OrderBookTop

logger = logging.getLogger(__name__)

OUTCOME_YES = {"yes", "y", "true"}
OUTCOME_NO = {"no", "n", "false"}

# next_cursor value the CLOB returns on the last page
END_CURSOR = "LTE="


def parse_outcome(value: Optional[str]) -> Optional[str]:
    """Map an outcome label onto YES / NO, or None for non-binary labels."""
    if not value:
        return None
    normalized = str(value).strip().lower()
    if normalized in OUTCOME_YES:
        return "YES"
    if normalized in OUTCOME_NO:
        return "NO"
    return None


def parse_timestamp_ms(value: Any) -> Optional[int]:
    """Epoch ms from a number or ISO-8601 string."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return None


def parse_usd(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def parse_market(data: Dict[str, Any]) -> Optional[MarketSummary]:
    """Build a MarketSummary from a simplified-markets entry; None if not a YES/NO market."""
    market_id = _first(data, "condition_id", "conditionId", "id", "market_id")
    tokens = data.get("tokens") or []

    yes_token = no_token = None
    for token in tokens:
        outcome = parse_outcome(_first(token, "outcome", "label", "name"))
        if outcome == "YES" and yes_token is None:
            yes_token = token
        elif outcome == "NO" and no_token is None:
            no_token = token

    if not market_id or not yes_token or not no_token:
        return None
    if not yes_token.get("token_id") or not no_token.get("token_id"):
        return None

    return MarketSummary(
        market_id=str(market_id),
        yes_token_id=str(yes_token["token_id"]),
        no_token_id=str(no_token["token_id"]),
        end_time=parse_timestamp_ms(_first(data, "end_date_iso", "end_date", "end_time", "endDate")),
        liquidity_usd=parse_usd(_first(data, "liquidity", "liquidity_usd", "liquidityUsd")),
        volume_usd=parse_usd(_first(data, "volume", "volume_usd", "volumeUsd")),
    )


def best_prices(book: Dict[str, Any]) -> OrderBookTop:
    """Best bid/ask from a /book payload. Empty sides become 0."""

    def prices(levels) -> List[float]:
        parsed = []
        for level in levels or []:
            price = parse_usd(level.get("price"))
            if price is not None:
                parsed.append(price)
        return parsed

    asks = prices(book.get("asks"))
    bids = prices(book.get("bids"))
    return OrderBookTop(
        best_bid=max(bids) if bids else 0.0,
        best_ask=min(asks) if asks else 0.0,
    )


class PolymarketMarketDataProvider:
    """
    Supplies market summaries and book tops to the arbitrage engine.

    A token with no order book raises OrderbookNotFoundError once; later
    lookups return a zero top, which the strategy counts as a bad book.
    """

    SIMPLIFIED_MARKETS_ENDPOINT = "/simplified-markets"
    BOOK_ENDPOINT = "/book"

    def __init__(self, host: str = CLOB_HOST, max_market_pages: int = 20, timeout_seconds: float = 10.0):
        self.host = host.rstrip("/")
        self.max_market_pages = max_market_pages
        self.timeout_seconds = timeout_seconds

        self._session: Optional[aiohttp.ClientSession] = None
        self._missing_orderbooks: Set[str] = set()
        self._token_market: Dict[str, str] = {}

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure HTTP session is created."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @retry_api
    async def _get_json(self, endpoint: str, params: Dict[str, str]) -> Any:
        session = await self._ensure_session()
        async with session.get(f"{self.host}{endpoint}", params=params) as response:
            if response.status != 200:
                raise ExchangeHTTPError(
                    f"GET {endpoint} failed with status {response.status}",
                    status_code=response.status,
                    body=await response.text(),
                    headers=response.headers,
                    endpoint=endpoint,
                )
            return await response.json()

    async def get_active_markets(self) -> List[MarketSummary]:
        """Open binary markets that accept orders."""
        markets: List[MarketSummary] = []
        cursor = ""
        for _ in range(self.max_market_pages):
            payload = await self._get_json(self.SIMPLIFIED_MARKETS_ENDPOINT, {"next_cursor": cursor})
            for entry in payload.get("data") or []:
                if entry.get("closed") or entry.get("active") is False:
                    continue
                if entry.get("accepting_orders") is False:
                    continue
                summary = parse_market(entry)
                if summary is None:
                    continue
                self._token_market[summary.yes_token_id] = summary.market_id
                self._token_market[summary.no_token_id] = summary.market_id
                markets.append(summary)

            cursor = payload.get("next_cursor") or END_CURSOR
            if cursor == END_CURSOR:
                break

        if not markets:
            logger.warning("No active markets returned from Polymarket API")
        else:
            logger.debug(f"Fetched {len(markets)} active binary markets")
        return markets

    async def get_order_book_top(self, token_id: str) -> OrderBookTop:
        """Best bid and ask for one outcome token."""
        if token_id in self._missing_orderbooks:
            return OrderBookTop(best_bid=0.0, best_ask=0.0)

        try:
            book = await self._get_json(self.BOOK_ENDPOINT, {"token_id": token_id})
        except ExchangeHTTPError as e:
            if e.status_code == 404 or "No orderbook exists" in e.body:
                self._missing_orderbooks.add(token_id)
                market_id = self._token_market.get(token_id)
                raise OrderbookNotFoundError(
                    f"No orderbook exists for token {token_id}"
                    + (f" (market {market_id})" if market_id else ""),
                    token_id=token_id,
                    market_id=market_id,
                ) from e
            raise

        return best_prices(book)
