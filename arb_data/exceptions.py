"""
Custom exception hierarchy for the intra-market arbitrage bot.

Exception categories:
1. Trading exceptions (order submission failures)
2. API exceptions (CLOB / data API errors, typed HTTP failures)
3. Data exceptions (missing order books)

Each exception has:
- error_type: String identifier for logging/alerting
- should_alert: Whether an operator should be notified about this error
- context: Optional dict with additional error context
"""

from typing import Dict, Any, Optional, Mapping


class ArbBotError(Exception):
    """Base exception for all arbitrage bot errors."""

    error_type: str = "unknown"
    should_alert: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in list(self.context.items())[:3])
            return f"{self.message} ({ctx_str})"
        return self.message


# --- Trading Exceptions ---


class TradingError(ArbBotError):
    """Base class for trading-related errors."""

    error_type = "trading"


class OrderSubmissionError(TradingError):
    """Raised when an order leg could not be placed on the exchange."""

    error_type = "order_submission"
    should_alert = True

    def __init__(
        self,
        message: str,
        reason: str = "",
        market_id: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"reason": reason, "market_id": market_id})
        self.reason = reason
        super().__init__(message, ctx)


# --- API Exceptions ---


class APIError(ArbBotError):
    """Base class for API-related errors."""

    error_type = "api"


class ExchangeHTTPError(APIError):
    """
    Typed HTTP failure produced at the exchange I/O boundary.

    Carries the structured fields the submission controller classifies on
    (status code, raw body text, response headers) so nothing downstream has
    to pattern-match on exception messages.
    """

    error_type = "exchange_http"
    should_alert = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        headers: Optional[Mapping[str, Any]] = None,
        endpoint: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code:
            ctx["status_code"] = status_code
        if endpoint:
            ctx["endpoint"] = endpoint
        self.status_code = status_code
        self.body = body or ""
        self.headers = dict(headers or {})
        self.endpoint = endpoint
        super().__init__(message, ctx)


class RateLimitError(APIError):
    """Raised when rate limited by API."""

    error_type = "rate_limit"
    should_alert = False  # Handle with retry

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message, ctx)


# --- Data Exceptions ---


class DataError(ArbBotError):
    """Base class for data-related errors."""

    error_type = "data"


class MarketDataError(DataError):
    """Raised when market data is missing or invalid."""

    error_type = "market_data"
    should_alert = False


class OrderbookNotFoundError(MarketDataError):
    """Raised the first time the exchange reports no order book for a token."""

    error_type = "orderbook_not_found"

    def __init__(
        self,
        message: str,
        token_id: str = "",
        market_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["token_id"] = token_id
        if market_id:
            ctx["market_id"] = market_id
        self.token_id = token_id
        self.market_id = market_id
        super().__init__(message, ctx)
