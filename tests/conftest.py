"""Pytest configuration and shared fixtures.

Usage Guide:
- For token bucket timing tests: use the fake_clock fixture
- For queue tests: use fast_bucket so dispatch never waits on credits
- For dispatch assertions: use recording_executor to capture API calls
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

import pytest

from workflowy_queue.config import QueueConfig, get_settings
from workflowy_queue.queue import TokenBucket


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


class RecordingExecutor:
    """Executor double that records calls and returns canned results.

    Set ``fail_on`` to a set of endpoints that should raise, and ``delay``
    to make each call yield to the event loop for that many seconds.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.delay = delay
        self.fail_on: set[str] = set()

    async def __call__(self, endpoint: str, method: str, body: dict[str, Any] | None = None) -> Any:
        if body is None:
            self.calls.append((endpoint, method))
        else:
            self.calls.append((endpoint, method, body))
        if self.delay:
            await asyncio.sleep(self.delay)
        if endpoint in self.fail_on:
            raise RuntimeError(f"API Error for {endpoint}")
        return {"endpoint": endpoint, "method": method}

    @property
    def endpoints(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Ensure each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fake clock for deterministic token bucket tests."""
    return FakeClock()


@pytest.fixture
def fast_bucket() -> TokenBucket:
    """Bucket large enough that dispatch never waits."""
    return TokenBucket(requests_per_second=1000, burst_size=1000)


@pytest.fixture
def immediate_config() -> QueueConfig:
    """Queue config with no debounce delay."""
    return QueueConfig(max_concurrency=3, batch_delay_ms=0, max_batch_size=20)


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    """Executor double capturing every API call."""
    return RecordingExecutor()


@pytest.fixture
def slow_executor() -> RecordingExecutor:
    """Executor double that yields for 10ms per call."""
    return RecordingExecutor(delay=0.01)
