"""Exponential backoff for upstream API calls that hit rate limits."""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_MESSAGE_RE = re.compile(r"rate limit|quota|resource has been exhausted", re.IGNORECASE)


def _status_code(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True for HTTP 429 or quota-style error messages."""
    if _status_code(exc) == 429:
        return True
    return bool(RATE_LIMIT_MESSAGE_RE.search(str(exc) or ""))


def backoff_delays(base_delay: float, multiplier: float, max_retries: int) -> list[float]:
    """Delays waited before each retry, e.g. [5.0, 10.0, 20.0]."""
    return [base_delay * (multiplier ** attempt) for attempt in range(max(max_retries, 0))]


def retry_with_backoff(
    is_retryable: Callable[[BaseException], bool] = is_rate_limit_error,
    *,
    base_delay: float = 5.0,
    multiplier: float = 2.0,
    max_retries: int = 3,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorate an async callable so retryable errors are retried with exponential backoff.

    Non-retryable errors, and the last retryable one once ``max_retries`` retries
    are spent, are re-raised unchanged.
    """
    delays = backoff_delays(base_delay, multiplier, max_retries)

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return await fn(*args, **kwargs)
                except Exception as exc:
                    if attempt >= len(delays) or not is_retryable(exc):
                        raise
                    wait = delays[attempt]
                    logger.warning(
                        "Upstream call %s rate limited (status=%s). Retrying in %.0fs (%d/%d)",
                        getattr(fn, "__name__", "call"),
                        _status_code(exc) or "unknown",
                        wait,
                        attempt + 1,
                        len(delays),
                    )
                    await sleep(wait)
                    attempt += 1

        return wrapper

    return decorator
