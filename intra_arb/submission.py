"""
Order submission controller.

Every order leg the bot places goes through one OrderSubmissionController.
It enforces the submission throttles (Cloudflare/auth cooldowns, per-market
cooldown, minimum interval, hourly cap, duplicate prevention, minimum order
size) and turns whatever the exchange call produced into a structured
SubmissionResult.

All timestamps are epoch milliseconds.
"""
import json
import logging
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from arb_data.exceptions import ExchangeHTTPError

logger = logging.getLogger(__name__)

ONE_HOUR_MS = 60 * 60 * 1000
BLOCK_LOG_INTERVAL_MS = 60 * 1000
MAX_REASON_LENGTH = 120

# Order types that are cancelled by the exchange when nothing fills
KILLABLE_ORDER_TYPES = ("FOK", "FAK")

CLOUDFLARE_PATTERN = re.compile(r"cloudflare|blocked", re.IGNORECASE)
RAY_ID_PATTERN = re.compile(r"ray id\s*[:#]?\s*([a-z0-9-]+)", re.IGNORECASE)
HTML_CHALLENGE_MARKERS = (
    "<!doctype html",
    "<html",
    "cf-chl",
    "just a moment",
    "attention required",
)


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    SKIPPED = "skipped"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Classification of an HTTP-level submission failure."""
    CLOUDFLARE_BLOCK = "CLOUDFLARE_BLOCK"
    AUTH_UNAUTHORIZED = "AUTH_UNAUTHORIZED"
    UNCLASSIFIED = "UNCLASSIFIED"


# Skip / failure reason codes
CLOUDFLARE_BLOCK = "CLOUDFLARE_BLOCK"
AUTH_BLOCK = "AUTH_BLOCK"
AUTH_UNAUTHORIZED = "AUTH_UNAUTHORIZED"
RATE_LIMIT_MARKET_COOLDOWN = "RATE_LIMIT_MARKET_COOLDOWN"
RATE_LIMIT_MIN_INTERVAL = "RATE_LIMIT_MIN_INTERVAL"
RATE_LIMIT_MAX_PER_HOUR = "RATE_LIMIT_MAX_PER_HOUR"
RATE_LIMIT_DUPLICATE_ORDER = "RATE_LIMIT_DUPLICATE_ORDER"
SKIP_MIN_ORDER_SIZE = "SKIP_MIN_ORDER_SIZE"
FOK_ORDER_KILLED = "FOK_ORDER_KILLED"
ORDER_REJECTED = "ORDER_REJECTED"


@dataclass(frozen=True)
class SubmissionSettings:
    """Throttle settings in milliseconds. Zero disables a throttle."""
    min_interval_ms: int = 1000
    max_per_hour: int = 60
    market_cooldown_ms: int = 0
    duplicate_prevention_ms: int = 30000
    cloudflare_cooldown_ms: int = 3600 * 1000
    auth_cooldown_ms: int = 300 * 1000
    min_order_usd: float = 0.0


@dataclass(frozen=True)
class FillInfo:
    """Fill amounts as reported by the exchange (numeric strings)."""
    taking_amount: str
    making_amount: str
    status: Optional[str] = None


@dataclass
class SubmissionResult:
    """Outcome of one pass through the controller."""
    status: SubmissionStatus
    reason: Optional[str] = None
    blocked_until: Optional[int] = None
    order_id: Optional[str] = None
    fill_info: Optional[FillInfo] = None
    status_code: Optional[int] = None

    @property
    def submitted(self) -> bool:
        return self.status == SubmissionStatus.SUBMITTED


@dataclass(frozen=True)
class SubmissionFailure:
    """Structured view of an HTTP-like failure, produced by classify_submission_error."""
    kind: FailureKind
    status_code: Optional[int] = None
    body: str = ""
    headers: Dict[str, Any] = field(default_factory=dict)
    message: str = ""


# --- Response / error inspection ---


def _body_to_text(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body
    try:
        return json.dumps(body)
    except (TypeError, ValueError):
        return str(body)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _extract_status_code(value: Any) -> Optional[int]:
    if isinstance(value, Mapping):
        for key in ("status_code", "statusCode", "status"):
            code = _as_int(value.get(key))
            if code is not None:
                return code
        return None

    for attr in ("status_code", "status"):
        code = _as_int(getattr(value, attr, None))
        if code is not None:
            return code

    response = getattr(value, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            code = _as_int(getattr(response, attr, None))
            if code is not None:
                return code
    return None


def _extract_body(value: Any) -> str:
    if isinstance(value, ExchangeHTTPError):
        return value.body
    if isinstance(value, Mapping):
        for key in ("body", "data", "error", "errorMsg"):
            if value.get(key):
                return _body_to_text(value[key])
        return ""

    # py_clob_client PolyApiException keeps the parsed body in error_msg
    for attr in ("body", "text", "data", "error_msg"):
        body = getattr(value, attr, None)
        if body and not callable(body):
            return _body_to_text(body)

    response = getattr(value, "response", None)
    if response is not None:
        for attr in ("text", "data", "body"):
            body = getattr(response, attr, None)
            if body and not callable(body):
                return _body_to_text(body)

    # aiohttp.ClientResponseError only carries the reason phrase
    message = getattr(value, "message", None)
    if isinstance(message, str):
        return message
    return ""


def _extract_headers(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        headers = value.get("headers")
    else:
        headers = getattr(value, "headers", None)
        if headers is None:
            headers = getattr(getattr(value, "response", None), "headers", None)
    if not headers:
        return {}
    try:
        return {str(k).lower(): v for k, v in dict(headers).items()}
    except (TypeError, ValueError):
        return {}


def _header_value(headers: Mapping[str, Any], name: str) -> Optional[str]:
    value = headers.get(name.lower())
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return str(value) if value else None


def is_cloudflare_challenge(
    status_code: Optional[int], body: str, headers: Optional[Mapping[str, Any]] = None
) -> bool:
    """
    Heuristic Cloudflare block detection for a 403.

    Matches "cloudflare" / "blocked" in the body, a cf-ray header, or an HTML
    challenge page. A 403 JSON body that just mentions "blocked" is a known
    false positive; the cost is one cooldown period without submissions.
    """
    if status_code != 403:
        return False
    if CLOUDFLARE_PATTERN.search(body or ""):
        return True
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
    if _header_value(lowered, "cf-ray"):
        return True
    text = (body or "").lower()
    return any(marker in text for marker in HTML_CHALLENGE_MARKERS)


def classify_submission_error(error: Any) -> SubmissionFailure:
    """
    Single classification point for HTTP-like submission failures.

    Works on ExchangeHTTPError and on duck-typed errors or payloads exposing
    status_code/status, a nested .response, body text and headers.
    """
    status_code = _extract_status_code(error)
    body = _extract_body(error)
    headers = _extract_headers(error)
    message = str(error) if isinstance(error, BaseException) else ""

    if is_cloudflare_challenge(status_code, body, headers):
        kind = FailureKind.CLOUDFLARE_BLOCK
    elif status_code == 401:
        kind = FailureKind.AUTH_UNAUTHORIZED
    else:
        kind = FailureKind.UNCLASSIFIED

    return SubmissionFailure(
        kind=kind, status_code=status_code, body=body, headers=headers, message=message
    )


def extract_cloudflare_ray_id(body: str, headers: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
    ray_id = _header_value(lowered, "cf-ray")
    if ray_id:
        return ray_id
    match = RAY_ID_PATTERN.search(body or "")
    return match.group(1) if match else None


def extract_fill_info(response: Any) -> Optional[FillInfo]:
    """
    Pull fill amounts from an order response.

    Returns None when the response carries neither takingAmount nor
    makingAmount. A missing amount defaults to "0".
    """
    if not isinstance(response, Mapping):
        return None
    if "takingAmount" not in response and "makingAmount" not in response:
        return None

    taking = response.get("takingAmount")
    making = response.get("makingAmount")
    status = response.get("status")
    return FillInfo(
        taking_amount="0" if taking is None else str(taking),
        making_amount="0" if making is None else str(making),
        status=status if isinstance(status, str) else None,
    )


def _parse_amount(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _nested_order(response: Mapping) -> Mapping:
    order = response.get("order")
    return order if isinstance(order, Mapping) else {}


def extract_order_id(response: Any) -> Optional[str]:
    if not isinstance(response, Mapping):
        return None
    order = _nested_order(response)
    for value in (
        order.get("id"),
        order.get("hash"),
        response.get("orderID"),
        response.get("orderId"),
        response.get("orderHash"),
    ):
        if value:
            return str(value)
    return None


def is_order_accepted(response: Any) -> bool:
    """An order is accepted unless success is False, and only if it has an id, hash or status."""
    if not isinstance(response, Mapping):
        return False
    if response.get("success") is False:
        return False
    return bool(extract_order_id(response) or _nested_order(response).get("status"))


def extract_reason(response: Any) -> Optional[str]:
    if not isinstance(response, Mapping):
        return None
    for key in ("errorMsg", "error", "message"):
        value = response.get(key)
        if value and isinstance(value, str):
            return value
    return None


def normalize_reason(reason: str) -> str:
    """Collapse whitespace and cap the length so reasons stay log-friendly."""
    return " ".join(reason.split())[:MAX_REASON_LENGTH]


def _iso(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).isoformat()


def _now_ms() -> int:
    return int(time.time() * 1000)


# --- Controller ---


SubmitCallback = Callable[[], Awaitable[Any]]


class OrderSubmissionController:
    """
    Throttles and classifies order submissions.

    Gates, checked in order before the exchange call:
    1. Cloudflare block active
    2. Auth block active
    3. Per-market cooldown
    4. Minimum interval, then hourly cap
    5. Duplicate order (same fingerprint or market within the window)
    6. Minimum order size

    A submission that passes every gate counts against the throttles before
    the exchange is called, whatever the outcome. Callers must not run two
    submits on one controller concurrently.
    """

    def __init__(self, settings: Optional[SubmissionSettings] = None):
        self.settings = settings or SubmissionSettings()

        self._last_submit_at: Optional[int] = None
        self._submit_history: List[int] = []
        self._market_last_submit: Dict[str, int] = {}
        self._duplicate_last_submit: Dict[str, int] = {}

        self.cloudflare_blocked_until: int = 0
        self.auth_blocked_until: int = 0
        self._last_cloudflare_log_at: Optional[int] = None
        self._last_auth_log_at: Optional[int] = None
        self._last_ray_id: Optional[str] = None

    def update_settings(self, settings: SubmissionSettings) -> None:
        """Swap throttle settings; submission history and blocks are kept."""
        self.settings = settings

    async def submit(
        self,
        size_usd: float,
        market_id: str,
        submit: SubmitCallback,
        now: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
        order_fingerprint: Optional[str] = None,
        skip_rate_limit: bool = False,
        order_type: str = "FOK",
    ) -> SubmissionResult:
        """
        Run one order submission through the gates and classify the outcome.

        Args:
            size_usd: Order notional in USD
            market_id: Market the order belongs to
            submit: Zero-argument coroutine function performing the exchange call
            now: Submission time in epoch ms (defaults to wall clock)
            logger: Logger for status lines (defaults to this module's logger)
            order_fingerprint: Duplicate-prevention key, defaults to market_id
            skip_rate_limit: Bypass market cooldown, minimum interval and hourly cap
            order_type: Order type; kill detection applies to FOK and FAK

        Returns:
            SubmissionResult

        Raises:
            Whatever the callback raised, when it is not a classifiable HTTP failure
        """
        log = logger or logging.getLogger(__name__)
        now = _now_ms() if now is None else now

        skipped = self._check_gates(size_usd, market_id, order_fingerprint, skip_rate_limit, now, log)
        if skipped:
            return skipped

        self._record_attempt(now, market_id, order_fingerprint)

        try:
            response = await submit()
        except Exception as e:
            failure = classify_submission_error(e)
            if failure.kind == FailureKind.UNCLASSIFIED:
                log.warning(
                    f"Order submission error for {market_id} "
                    f"(status={failure.status_code or 'unknown'}): {e}"
                )
                raise
            return self._handle_block(failure, now, log)

        return self._classify_response(response, now, order_type, log)

    # --- Gates ---

    def _check_gates(
        self,
        size_usd: float,
        market_id: str,
        order_fingerprint: Optional[str],
        skip_rate_limit: bool,
        now: int,
        log: logging.Logger,
    ) -> Optional[SubmissionResult]:
        settings = self.settings

        if now < self.cloudflare_blocked_until:
            if self._should_log_block(self._last_cloudflare_log_at, now):
                self._last_cloudflare_log_at = now
                log.warning(
                    "CLOB execution paused due to Cloudflare block until "
                    f"{_iso(self.cloudflare_blocked_until)}"
                )
            return self._skip(CLOUDFLARE_BLOCK, blocked_until=self.cloudflare_blocked_until)

        if now < self.auth_blocked_until:
            if self._should_log_block(self._last_auth_log_at, now):
                self._last_auth_log_at = now
                log.warning(
                    "CLOB execution paused due to auth failure until "
                    f"{_iso(self.auth_blocked_until)}"
                )
            return self._skip(AUTH_BLOCK, blocked_until=self.auth_blocked_until)

        if not skip_rate_limit:
            if settings.market_cooldown_ms > 0:
                last_market = self._market_last_submit.get(market_id)
                if last_market is not None and now - last_market < settings.market_cooldown_ms:
                    log.info(f"Order skipped ({RATE_LIMIT_MARKET_COOLDOWN}) for {market_id}")
                    return self._skip(
                        RATE_LIMIT_MARKET_COOLDOWN,
                        blocked_until=last_market + settings.market_cooldown_ms,
                    )

            if (
                settings.min_interval_ms > 0
                and self._last_submit_at is not None
                and now - self._last_submit_at < settings.min_interval_ms
            ):
                log.info(f"Order skipped ({RATE_LIMIT_MIN_INTERVAL})")
                return self._skip(
                    RATE_LIMIT_MIN_INTERVAL,
                    blocked_until=self._last_submit_at + settings.min_interval_ms,
                )

            if settings.max_per_hour > 0:
                self._prune_history(now)
                if len(self._submit_history) >= settings.max_per_hour:
                    log.warning(f"Order skipped ({RATE_LIMIT_MAX_PER_HOUR})")
                    return self._skip(
                        RATE_LIMIT_MAX_PER_HOUR,
                        blocked_until=self._submit_history[0] + ONE_HOUR_MS,
                    )

        if settings.duplicate_prevention_ms > 0:
            key = order_fingerprint or market_id
            last_dup = self._duplicate_last_submit.get(key)
            if last_dup is not None and now - last_dup < settings.duplicate_prevention_ms:
                log.warning(f"Order skipped ({RATE_LIMIT_DUPLICATE_ORDER}) for {key}")
                return self._skip(
                    RATE_LIMIT_DUPLICATE_ORDER,
                    blocked_until=last_dup + settings.duplicate_prevention_ms,
                )

        if size_usd < settings.min_order_usd:
            log.info(
                f"Order skipped ({SKIP_MIN_ORDER_SIZE}): size={size_usd:.2f} USD "
                f"< min={settings.min_order_usd:.2f} USD"
            )
            return self._skip(SKIP_MIN_ORDER_SIZE)

        return None

    @staticmethod
    def _skip(reason: str, blocked_until: Optional[int] = None) -> SubmissionResult:
        return SubmissionResult(
            status=SubmissionStatus.SKIPPED, reason=reason, blocked_until=blocked_until
        )

    @staticmethod
    def _should_log_block(last_logged_at: Optional[int], now: int) -> bool:
        return last_logged_at is None or now - last_logged_at >= BLOCK_LOG_INTERVAL_MS

    def _prune_history(self, now: int) -> None:
        self._submit_history = [ts for ts in self._submit_history if now - ts < ONE_HOUR_MS]

    @staticmethod
    def _prune_window(last_submit: Dict[str, int], now: int, window_ms: int) -> Dict[str, int]:
        return {key: ts for key, ts in last_submit.items() if now - ts < window_ms}

    def _record_attempt(self, now: int, market_id: str, order_fingerprint: Optional[str]) -> None:
        # Entries outside their window can no longer block a submission
        self._prune_history(now)
        self._market_last_submit = self._prune_window(
            self._market_last_submit, now, self.settings.market_cooldown_ms
        )
        self._duplicate_last_submit = self._prune_window(
            self._duplicate_last_submit, now, self.settings.duplicate_prevention_ms
        )

        self._last_submit_at = now
        self._submit_history.append(now)
        self._market_last_submit[market_id] = now
        self._duplicate_last_submit[order_fingerprint or market_id] = now

    # --- Outcome classification ---

    def _handle_block(
        self, failure: SubmissionFailure, now: int, log: logging.Logger
    ) -> SubmissionResult:
        if failure.kind == FailureKind.CLOUDFLARE_BLOCK:
            self.cloudflare_blocked_until = now + self.settings.cloudflare_cooldown_ms
            ray_id = extract_cloudflare_ray_id(failure.body, failure.headers)
            if ray_id and ray_id != self._last_ray_id:
                self._last_ray_id = ray_id
                log.warning(f"Cloudflare Ray ID: {ray_id}")
            log.warning(
                f"Order submission failed ({failure.status_code}): {CLOUDFLARE_BLOCK}, "
                f"pausing until {_iso(self.cloudflare_blocked_until)}"
            )
            return SubmissionResult(
                status=SubmissionStatus.FAILED,
                reason=CLOUDFLARE_BLOCK,
                blocked_until=self.cloudflare_blocked_until,
                status_code=failure.status_code,
            )

        self.auth_blocked_until = now + self.settings.auth_cooldown_ms
        log.warning(
            f"Order submission failed ({failure.status_code}): {AUTH_UNAUTHORIZED}, "
            f"pausing until {_iso(self.auth_blocked_until)}"
        )
        return SubmissionResult(
            status=SubmissionStatus.FAILED,
            reason=AUTH_UNAUTHORIZED,
            blocked_until=self.auth_blocked_until,
            status_code=failure.status_code,
        )

    def _classify_response(
        self, response: Any, now: int, order_type: str, log: logging.Logger
    ) -> SubmissionResult:
        failure = classify_submission_error(response)
        if failure.kind != FailureKind.UNCLASSIFIED:
            return self._handle_block(failure, now, log)

        status_code = failure.status_code
        if not is_order_accepted(response):
            reason = normalize_reason(extract_reason(response) or "") or ORDER_REJECTED
            log.warning(f"Order submission failed ({status_code or 'unknown'}): {reason}")
            return SubmissionResult(
                status=SubmissionStatus.FAILED, reason=reason, status_code=status_code
            )

        order_id = extract_order_id(response)
        fill_info = extract_fill_info(response)

        if fill_info and order_type.upper() in KILLABLE_ORDER_TYPES:
            taking = _parse_amount(fill_info.taking_amount)
            making = _parse_amount(fill_info.making_amount)
            if taking == 0 and making == 0:
                log.warning(f"FOK order killed with no fill (order_id={order_id})")
                return SubmissionResult(
                    status=SubmissionStatus.FAILED,
                    reason=FOK_ORDER_KILLED,
                    order_id=order_id,
                    fill_info=fill_info,
                    status_code=status_code,
                )
            if not math.isnan(taking) and not math.isnan(making):
                log.info(
                    f"Order filled (order_id={order_id}, taking={fill_info.taking_amount}, "
                    f"making={fill_info.making_amount})"
                )

        return SubmissionResult(
            status=SubmissionStatus.SUBMITTED,
            order_id=order_id,
            fill_info=fill_info,
            status_code=status_code,
        )

    # --- Monitoring ---

    def get_status(self, now: Optional[int] = None) -> Dict[str, Any]:
        """Snapshot of throttle state for monitoring."""
        now = _now_ms() if now is None else now
        self._prune_history(now)
        return {
            "cloudflare_blocked": now < self.cloudflare_blocked_until,
            "cloudflare_blocked_until": self.cloudflare_blocked_until or None,
            "auth_blocked": now < self.auth_blocked_until,
            "auth_blocked_until": self.auth_blocked_until or None,
            "submissions_last_hour": len(self._submit_history),
            "max_per_hour": self.settings.max_per_hour,
            "last_submit_at": self._last_submit_at,
            "tracked_markets": len(self._market_last_submit),
        }
