"""Retry with exponential backoff for Workflowy API calls.

Retryable failures are network errors and HTTP errors whose status is in
RetryConfig.retryable_statuses. Anything else is raised immediately.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from workflowy_queue.config import RetryConfig, get_settings
from workflowy_queue.exceptions import (
    WorkflowyHTTPError,
    WorkflowyNetworkError,
    WorkflowyRateLimitError,
)
from workflowy_queue.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff delay in seconds for a zero-based attempt number.

    Formula:
        delay = min(base * 2**attempt, max)
        delay += uniform(0, delay * jitter_pct / 100)
    """
    delay_ms = min(config.base_delay_ms * 2**attempt, config.max_delay_ms)
    jitter_ms = random.uniform(0, delay_ms * config.jitter_pct / 100)
    return (delay_ms + jitter_ms) / 1000


def is_retryable(error: Exception, config: RetryConfig) -> bool:
    """Whether an error should be retried under the given policy."""
    if isinstance(error, WorkflowyHTTPError):
        return error.status_code in config.retryable_statuses
    return isinstance(error, WorkflowyNetworkError | httpx.TransportError)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    context: str | None = None,
    config: RetryConfig | None = None,
) -> T:
    """Execute an async callable with retry logic.

    Args:
        fn: Factory returning a fresh awaitable per attempt
        context: Optional label for log messages (e.g. "POST /nodes")
        config: Retry policy (uses settings if not provided)

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: The last error once attempts are exhausted, or the first
                   non-retryable error
    """
    config = config or get_settings().retry
    ctx = f" [{context}]" if context else ""

    for attempt in range(config.max_attempts):
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e, config) or attempt >= config.max_attempts - 1:
                raise

            delay = calculate_delay(attempt, config)
            if isinstance(e, WorkflowyRateLimitError) and e.retry_after:
                delay = max(delay, e.retry_after)

            reason = (
                str(e.status_code) if isinstance(e, WorkflowyHTTPError) else "Network error"
            )
            logger.warning(
                "Retry {}/{}{}: {} - waiting {}ms",
                attempt + 1,
                config.max_attempts,
                ctx,
                reason,
                round(delay * 1000),
            )
            await asyncio.sleep(delay)

    # Unreachable: the final attempt either returns or raises
    raise RuntimeError("Retry failed")
