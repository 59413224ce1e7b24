"""Unit tests for TokenBucket.

These tests verify continuous refill, the [0, max_tokens] invariant,
blocking and non-blocking acquisition, and wait time reporting.
"""

import asyncio
import random
import time
from unittest.mock import AsyncMock, patch

import pytest

from workflowy_queue.config import RateLimitConfig
from workflowy_queue.queue import TokenBucket, create_default_token_bucket


class TestTokenBucketInit:
    """Tests for bucket construction."""

    def test_starts_full(self, fake_clock) -> None:
        """A new bucket holds burst_size credits."""
        bucket = TokenBucket(requests_per_second=10, burst_size=20, clock=fake_clock)

        assert bucket.available_tokens() == 20
        assert bucket.max_tokens == 20
        assert bucket.refill_rate == pytest.approx(0.01)

    @pytest.mark.parametrize(
        ("rps", "burst"),
        [(0, 10), (-1, 10), (5, 0)],
    )
    def test_rejects_invalid_config(self, rps: float, burst: int) -> None:
        """Non-positive rate or burst below one is rejected."""
        with pytest.raises(ValueError):
            TokenBucket(requests_per_second=rps, burst_size=burst)

    def test_from_config(self, fake_clock) -> None:
        """from_config copies rate and burst."""
        config = RateLimitConfig(requests_per_second=2, burst_size=4)
        bucket = TokenBucket.from_config(config, clock=fake_clock)

        assert bucket.max_tokens == 4
        assert bucket.refill_rate == pytest.approx(0.002)

    def test_default_bucket_uses_settings(self) -> None:
        """Default bucket is 5 req/s with burst 10."""
        bucket = create_default_token_bucket()

        assert bucket.max_tokens == 10
        assert bucket.refill_rate == pytest.approx(0.005)


class TestTryAcquire:
    """Tests for non-blocking acquisition."""

    def test_acquires_when_available(self, fake_clock) -> None:
        """Consumes exactly one credit."""
        bucket = TokenBucket(requests_per_second=5, burst_size=3, clock=fake_clock)

        assert bucket.try_acquire() is True
        assert bucket.available_tokens() == 2

    def test_burst_exhaustion_and_wait_time(self, fake_clock) -> None:
        """Burst of 2 at 1 req/s: two succeed, third fails, wait is one second."""
        bucket = TokenBucket(requests_per_second=1, burst_size=2, clock=fake_clock)

        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is False
        assert bucket.wait_time_ms() == 1000

    def test_failed_attempt_consumes_nothing(self, fake_clock) -> None:
        """A False result leaves the partial credit untouched."""
        bucket = TokenBucket(requests_per_second=1, burst_size=1, clock=fake_clock)
        bucket.try_acquire()
        fake_clock.advance_ms(500)

        assert bucket.try_acquire() is False
        assert bucket.available_tokens() == pytest.approx(0.5)

    def test_refills_over_time(self, fake_clock) -> None:
        """200ms at 5 req/s restores one credit."""
        bucket = TokenBucket(requests_per_second=5, burst_size=5, clock=fake_clock)
        for _ in range(5):
            bucket.try_acquire()
        assert bucket.try_acquire() is False

        fake_clock.advance_ms(200)

        assert bucket.try_acquire() is True

    def test_partial_credits_accumulate(self, fake_clock) -> None:
        """Refill is continuous, not stepped."""
        bucket = TokenBucket(requests_per_second=4, burst_size=1, clock=fake_clock)
        bucket.try_acquire()

        fake_clock.advance_ms(100)
        assert bucket.available_tokens() == pytest.approx(0.4)
        assert bucket.wait_time_ms() == 150

    def test_long_idle_clamps_to_max(self, fake_clock) -> None:
        """Credits never exceed burst capacity after idling."""
        bucket = TokenBucket(requests_per_second=5, burst_size=3, clock=fake_clock)
        bucket.try_acquire()

        fake_clock.advance_ms(10_000_000)

        assert bucket.available_tokens() == 3

    def test_wait_time_zero_when_available(self, fake_clock) -> None:
        """No wait while a credit is available."""
        bucket = TokenBucket(requests_per_second=1, burst_size=1, clock=fake_clock)

        assert bucket.wait_time_ms() == 0


class TestInvariants:
    """Property-style checks over random call sequences."""

    def test_tokens_stay_in_bounds(self, fake_clock) -> None:
        """0 <= tokens <= max_tokens for any call sequence."""
        rng = random.Random(42)
        bucket = TokenBucket(requests_per_second=7, burst_size=4, clock=fake_clock)

        for _ in range(2000):
            fake_clock.advance_ms(rng.choice([0, 0, 1, 5, 50, 400]))
            if rng.random() < 0.7:
                bucket.try_acquire()
            tokens = bucket.available_tokens()
            assert 0 <= tokens <= bucket.max_tokens

    def test_burst_plus_steady_state_bound(self, fake_clock) -> None:
        """Successes over T ms never exceed max_tokens + T * refill_rate."""
        bucket = TokenBucket(requests_per_second=5, burst_size=3, clock=fake_clock)
        window_ms = 1000
        successes = 0

        for _ in range(window_ms // 10):
            while bucket.try_acquire():
                successes += 1
            fake_clock.advance_ms(10)
        while bucket.try_acquire():
            successes += 1

        assert successes <= bucket.max_tokens + window_ms * bucket.refill_rate
        assert successes >= 7


class TestAcquire:
    """Tests for blocking acquisition."""

    async def test_returns_immediately_when_available(self, fake_clock) -> None:
        """No sleep when a credit is available."""
        bucket = TokenBucket(requests_per_second=5, burst_size=5, clock=fake_clock)

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await bucket.acquire()

        mock_sleep.assert_not_awaited()
        assert bucket.available_tokens() == 4

    async def test_sleeps_for_exact_deficit(self, fake_clock) -> None:
        """Waits (1 - tokens) / refill_rate ms, then consumes."""
        bucket = TokenBucket(requests_per_second=2, burst_size=1, clock=fake_clock)
        bucket.try_acquire()
        fake_clock.advance_ms(100)  # 0.2 credits

        async def advance(seconds: float) -> None:
            fake_clock.advance_ms(seconds * 1000)

        with patch("asyncio.sleep", side_effect=advance) as mock_sleep:
            await bucket.acquire()

        mock_sleep.assert_called_once_with(0.4)
        assert bucket.available_tokens() == pytest.approx(0.0)

    async def test_concurrent_waiters_never_overdraw(self) -> None:
        """Tasks racing for refilled credits keep tokens non-negative."""
        bucket = TokenBucket(requests_per_second=200, burst_size=1)

        start = time.monotonic()
        await asyncio.gather(*(bucket.acquire() for _ in range(5)))
        elapsed = time.monotonic() - start

        assert bucket.available_tokens() >= 0
        # One credit up front, four more at 5ms each
        assert elapsed >= 0.015

    def test_get_stats(self, fake_clock) -> None:
        """Stats report capacity, rate and current credits."""
        bucket = TokenBucket(requests_per_second=5, burst_size=10, clock=fake_clock)
        bucket.try_acquire()

        stats = bucket.get_stats()

        assert stats["available_tokens"] == 9
        assert stats["max_tokens"] == 10
        assert stats["requests_per_second"] == pytest.approx(5)
        assert stats["wait_time_ms"] == 0
