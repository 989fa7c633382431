"""
Retry logic for transient failures.

Implements exponential backoff with jitter for read-only HTTP calls
(CLOB order books, simplified markets, data-API trade history).
Order placement is deliberately never wrapped: a retried order can fill twice.
"""

import time
import random
import functools
import asyncio
from typing import Type, Tuple, Callable, Optional, TypeVar

import aiohttp
import requests

from arb_data.logging_config import get_logger
from arb_data.exceptions import ExchangeHTTPError, RateLimitError

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable)


def is_transient_error(error: Exception) -> bool:
    """True for errors worth another attempt: rate limits, 5xx, dropped connections."""
    if isinstance(error, RateLimitError):
        return True
    if isinstance(error, ExchangeHTTPError):
        return error.status_code is None or error.status_code >= 500 or error.status_code == 429
    return isinstance(
        error,
        (
            ConnectionError,
            TimeoutError,
            asyncio.TimeoutError,
            aiohttp.ClientConnectionError,
            requests.ConnectionError,
            requests.Timeout,
        ),
    )


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Callable[[F], F]:
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add randomness to delay (helps avoid thundering herd)
        retryable_exceptions: Exception types to retry
        retry_if: Optional predicate; a caught exception is re-raised at once when it returns False
        on_retry: Optional callback on each retry (receives exception and attempt number)

    Returns:
        Decorated function with retry logic

    Example:
        @retry(max_attempts=3, retryable_exceptions=(ConnectionError,))
        def fetch_data():
            return api.get_data()
    """

    def _delay_for(attempt: int) -> float:
        delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
        if jitter:
            delay = delay * (0.5 + random.random())
        return delay

    def _should_give_up(func_name: str, error: Exception, attempt: int) -> bool:
        if retry_if is not None and not retry_if(error):
            return True
        if attempt == max_attempts:
            logger.error(
                f"Max retries ({max_attempts}) exceeded for {func_name}",
                extra={"error_type": type(error).__name__},
            )
            return True
        return False

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    if _should_give_up(func.__name__, e, attempt):
                        raise

                    delay = _delay_for(attempt)
                    logger.warning(
                        f"Retry {attempt}/{max_attempts} for {func.__name__} after {delay:.1f}s: {e}",
                        extra={"error_type": type(e).__name__},
                    )
                    if on_retry:
                        on_retry(e, attempt)
                    time.sleep(delay)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    if _should_give_up(func.__name__, e, attempt):
                        raise

                    delay = _delay_for(attempt)
                    logger.warning(
                        f"Retry {attempt}/{max_attempts} for {func.__name__} after {delay:.1f}s: {e}",
                        extra={"error_type": type(e).__name__},
                    )
                    if on_retry:
                        on_retry(e, attempt)
                    await asyncio.sleep(delay)

        # Return appropriate wrapper based on function type
        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator


def retry_api(func: F) -> F:
    """
    Retry decorator for read-only API calls.

    Retries on: rate limits, 5xx responses, connection drops and timeouts
    Max attempts: 3
    Base delay: 1 second
    """
    return retry(
        max_attempts=3,
        base_delay=1.0,
        max_delay=15.0,
        retryable_exceptions=(Exception,),
        retry_if=is_transient_error,
    )(func)
