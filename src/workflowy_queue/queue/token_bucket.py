"""Continuous token bucket for request rate limiting.

Credits accumulate smoothly at ``refill_rate`` per millisecond up to
``max_tokens`` and are spent one per request. Refill is computed lazily on
every call instead of by a background timer, so a bucket left idle for a long
time is still correct the next time it is queried.

Algorithm:
    elapsed = now - last_refill_at
    tokens = min(max_tokens, tokens + elapsed * refill_rate)
    last_refill_at = now
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable

from workflowy_queue.config import RateLimitConfig, get_settings
from workflowy_queue.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]

# Absorbs float error in refill arithmetic so an exact wait yields a credit
_EPSILON = 1e-9


class TokenBucket:
    """Token bucket limiter with blocking and non-blocking acquisition.

    Usage:
        bucket = TokenBucket(requests_per_second=5, burst_size=10)

        # Wait for a credit
        await bucket.acquire()

        # Or check without waiting
        if bucket.try_acquire():
            ...

    All mutation happens between awaits, so a bucket can be shared by any
    number of tasks on one event loop without a lock.
    """

    def __init__(
        self,
        requests_per_second: float = 5.0,
        burst_size: int = 10,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        """Initialize the bucket full.

        Args:
            requests_per_second: Steady-state refill rate
            burst_size: Maximum credits available at once
            clock: Monotonic clock returning seconds (injectable for tests)

        Raises:
            ValueError: If the rate is not positive or burst is below 1
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if burst_size < 1:
            raise ValueError("burst_size must be at least 1")

        self._clock = clock
        self._max_tokens = float(burst_size)
        self._tokens = float(burst_size)
        self._refill_rate = requests_per_second / 1000  # credits per ms
        self._last_refill_at = self._now_ms()

    @classmethod
    def from_config(cls, config: RateLimitConfig, *, clock: Clock = time.monotonic) -> TokenBucket:
        """Build a bucket from a RateLimitConfig."""
        return cls(
            requests_per_second=config.requests_per_second,
            burst_size=config.burst_size,
            clock=clock,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def max_tokens(self) -> float:
        """Burst capacity."""
        return self._max_tokens

    @property
    def refill_rate(self) -> float:
        """Credits added per millisecond."""
        return self._refill_rate

    # -------------------------------------------------------------------------
    # Acquisition
    # -------------------------------------------------------------------------
    async def acquire(self) -> None:
        """Wait until a credit is available, then consume it.

        Sleeps for exactly the deficit ``(1 - tokens) / refill_rate`` ms.
        Another task may take the refilled credit first, in which case this
        waits again.
        """
        self._refill()

        while not self._has_credit():
            wait_ms = max(1, self._deficit_ms())
            logger.trace("Token bucket empty, waiting {}ms", wait_ms)
            await asyncio.sleep(wait_ms / 1000)
            self._refill()

        self._consume()

    def try_acquire(self) -> bool:
        """Consume a credit if one is available right now.

        Returns:
            True if a credit was consumed, False otherwise
        """
        self._refill()

        if self._has_credit():
            self._consume()
            return True

        return False

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    def available_tokens(self) -> float:
        """Current credit count after applying refill."""
        self._refill()
        return self._tokens

    def wait_time_ms(self) -> int:
        """Milliseconds until one credit is available (0 if available now)."""
        self._refill()
        if self._has_credit():
            return 0
        return self._deficit_ms()

    def get_stats(self) -> dict[str, float | int]:
        """Get bucket statistics for monitoring."""
        return {
            "available_tokens": round(self.available_tokens(), 3),
            "max_tokens": self._max_tokens,
            "requests_per_second": self._refill_rate * 1000,
            "wait_time_ms": self.wait_time_ms(),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------
    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _has_credit(self) -> bool:
        return self._tokens + _EPSILON >= 1

    def _consume(self) -> None:
        self._tokens = max(0.0, self._tokens - 1)

    def _deficit_ms(self) -> int:
        return math.ceil(round((1 - self._tokens) / self._refill_rate, 6))

    def _refill(self) -> None:
        now = self._now_ms()
        elapsed = max(0.0, now - self._last_refill_at)
        self._tokens = min(self._max_tokens, self._tokens + elapsed * self._refill_rate)
        self._last_refill_at = now


def create_default_token_bucket() -> TokenBucket:
    """Create a bucket from the configured rate limit settings.

    Defaults to 5 requests/second with a burst of 10.
    """
    return TokenBucket.from_config(get_settings().rate_limit)
