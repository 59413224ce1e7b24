"""Batching request queue with debounce and concurrency control.

This module provides the RequestQueue, which collects mutating operations,
groups them into batches, and hands each batch to the Dispatcher while
capping the number of batches in flight.

State machine:
    IDLE -> BATCH_PENDING (debounce timer armed by the first enqueue)
         -> DISPATCHING   (one or more batches running)
         -> IDLE          (backlog empty and no active batches)

The debounce delay only applies to the first batch after an idle period.
Whenever a batch settles and the backlog is non-empty, the next batch is
pulled immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from workflowy_queue.config import QueueConfig, Settings, get_settings
from workflowy_queue.exceptions import QueueClearedError
from workflowy_queue.logging import get_logger

from .backlog import OperationBacklog
from .dispatcher import Dispatcher, Executor
from .operations import Operation, OperationKind, parse_kind
from .token_bucket import TokenBucket

logger = get_logger(__name__)


class QueueState(str, Enum):
    """Scheduling state of a RequestQueue."""

    IDLE = "idle"
    BATCH_PENDING = "batch_pending"
    DISPATCHING = "dispatching"


@dataclass(frozen=True)
class QueueStats:
    """Point-in-time snapshot of queue counters.

    active_requests counts batches in flight, not individual operations.
    """

    queue_length: int
    active_requests: int
    total_processed: int
    total_failed: int

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


class RequestQueue:
    """Rate-limited queue that batches operations for the Workflowy API.

    Usage:
        async with WorkflowyClient() as client:
            queue = RequestQueue(executor=client.request)

            created = await queue.enqueue(OperationKind.CREATE, {"name": "Inbox"})
            futures = queue.enqueue_many([
                (OperationKind.COMPLETE, {"node_id": "a1"}),
                (OperationKind.DELETE, {"node_id": "b2"}),
            ])

            await queue.drain()
            print(queue.get_stats())

    enqueue() must be called from inside a running event loop. Operations are
    pulled in FIFO order, but operations within a batch and across concurrent
    batches may complete in any order.
    """

    def __init__(
        self,
        executor: Executor | None = None,
        config: QueueConfig | None = None,
        token_bucket: TokenBucket | None = None,
    ) -> None:
        """Initialize the request queue.

        Args:
            executor: Async callable performing API requests (may be set later)
            config: Queue configuration (uses settings if not provided)
            token_bucket: Bucket to share with other queues (a new one is
                          built from settings if not provided)
        """
        self._config = config or get_settings().queue
        if token_bucket is None:
            token_bucket = TokenBucket.from_config(get_settings().rate_limit)

        self._backlog = OperationBacklog()
        self._dispatcher = Dispatcher(token_bucket, executor)

        self._timer: asyncio.TimerHandle | None = None
        self._active_batches = 0
        self._batch_tasks: set[asyncio.Task[None]] = set()  # Prevent task GC
        self._idle = asyncio.Event()
        self._idle.set()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------
    @property
    def config(self) -> QueueConfig:
        """The queue configuration."""
        return self._config

    @property
    def token_bucket(self) -> TokenBucket:
        """The token bucket gating dispatch."""
        return self._dispatcher.bucket

    def set_executor(self, executor: Executor | None) -> None:
        """Inject the function used to perform API requests."""
        self._dispatcher.executor = executor

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------
    def enqueue(
        self,
        kind: OperationKind | str,
        params: Mapping[str, Any] | None = None,
    ) -> asyncio.Future[Any]:
        """Add an operation to the backlog.

        Returns immediately; the returned future settles with the executor's
        result or with the error that failed the operation.

        Args:
            kind: Operation kind
            params: Operation params (see operations.ROUTES)

        Returns:
            Completion future for the operation

        Raises:
            RuntimeError: If called without a running event loop
        """
        loop = asyncio.get_running_loop()
        op = Operation(
            id=self._backlog.next_id(),
            kind=parse_kind(kind),
            params=dict(params or {}),
            future=loop.create_future(),
        )
        self._backlog.push(op)
        self._idle.clear()

        logger.debug(
            "Enqueued {} ({}, queue_size={})", op.id, op.kind_name, len(self._backlog)
        )

        self._schedule_batch(loop)
        return op.future

    def enqueue_many(
        self,
        operations: Iterable[tuple[OperationKind | str, Mapping[str, Any] | None]],
    ) -> list[asyncio.Future[Any]]:
        """Enqueue several operations, preserving their relative order."""
        return [self.enqueue(kind, params) for kind, params in operations]

    async def submit(
        self,
        kind: OperationKind | str,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Enqueue an operation and wait for its result.

        Raises:
            TimeoutError: If timeout exceeded (the operation is not recalled)
            Exception: Whatever failed the operation
        """
        future = self.enqueue(kind, params)
        if timeout is not None:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        return await future

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------
    def _schedule_batch(self, loop: asyncio.AbstractEventLoop) -> None:
        """Arm the debounce timer unless it is already armed."""
        if self._timer is not None:
            return
        self._timer = loop.call_later(self._config.batch_delay_ms / 1000, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._pull_batches()

    def _pull_batches(self) -> None:
        """Start batches while work remains and concurrency slots are free."""
        while self._backlog and self._active_batches < self._config.max_concurrency:
            batch = self._backlog.pop_batch(self._config.max_batch_size)
            self._active_batches += 1

            logger.debug(
                "Dispatching batch of {} ({} -> {}, active={}, remaining={})",
                len(batch),
                batch[0].id,
                batch[-1].id,
                self._active_batches,
                len(self._backlog),
            )

            task = asyncio.create_task(self._dispatcher.dispatch(batch))
            self._batch_tasks.add(task)
            task.add_done_callback(self._on_batch_done)

    def _on_batch_done(self, task: asyncio.Task[None]) -> None:
        """Release the batch's slot and pull more work without re-debouncing.

        Runs as a loop callback, so pulling here never nests inside the
        previous batch's stack.
        """
        self._batch_tasks.discard(task)
        self._active_batches -= 1

        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Batch dispatch crashed")

        if self._backlog:
            self._pull_batches()
        self._update_idle()

    def _update_idle(self) -> None:
        if self.is_idle:
            self._idle.set()

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    @property
    def queue_length(self) -> int:
        """Number of operations waiting in the backlog."""
        return len(self._backlog)

    @property
    def active_batches(self) -> int:
        """Number of batches currently being dispatched."""
        return self._active_batches

    @property
    def is_idle(self) -> bool:
        """True if no pending operations and no batches in flight."""
        return not self._backlog and self._active_batches == 0

    @property
    def state(self) -> QueueState:
        """Current scheduling state."""
        if self._active_batches > 0:
            return QueueState.DISPATCHING
        if self._timer is not None or self._backlog:
            return QueueState.BATCH_PENDING
        return QueueState.IDLE

    def get_stats(self) -> QueueStats:
        """Get a snapshot of the queue counters."""
        return QueueStats(
            queue_length=len(self._backlog),
            active_requests=self._active_batches,
            total_processed=self._dispatcher.total_processed,
            total_failed=self._dispatcher.total_failed,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    def clear(self) -> int:
        """Discard every operation not yet dispatched.

        Each discarded operation fails with QueueClearedError. Batches
        already handed to the dispatcher are unaffected.

        Returns:
            Number of operations discarded
        """
        pending = self._backlog.take_all()
        for op in pending:
            op.cancel(QueueClearedError())

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if pending:
            logger.info("Cleared {} pending operations", len(pending))
        self._update_idle()
        return len(pending)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait until the backlog is empty and no batches are in flight.

        Args:
            timeout: Optional maximum seconds to wait

        Raises:
            TimeoutError: If timeout exceeded
        """
        async with asyncio.timeout(timeout):
            while not self.is_idle:
                self._idle.clear()
                await self._idle.wait()

    async def shutdown(self, wait: bool = True, timeout: float = 30.0) -> None:
        """Stop the queue.

        Args:
            wait: If True, drain before stopping
            timeout: Maximum seconds to wait for the drain
        """
        if wait and not self.is_idle:
            logger.info("Waiting for {} pending operations...", len(self._backlog))
            try:
                await self.drain(timeout=timeout)
            except TimeoutError:
                logger.warning("Drain timed out after {}s", timeout)

        self.clear()

        stats = self.get_stats()
        logger.info(
            "Request queue stopped (processed={}, failed={})",
            stats.total_processed,
            stats.total_failed,
        )

    async def __aenter__(self) -> RequestQueue:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Drain on exit; discard pending work if the block raised."""
        if exc_type is None:
            await self.drain()
        else:
            self.clear()


def create_request_queue(
    executor: Executor | None = None,
    settings: Settings | None = None,
    token_bucket: TokenBucket | None = None,
) -> RequestQueue:
    """Build a queue configured from settings.

    Args:
        executor: Async callable performing API requests
        settings: Settings to read from (cached settings if not provided)
        token_bucket: Optional shared bucket

    Returns:
        A new, caller-owned RequestQueue
    """
    settings = settings or get_settings()
    return RequestQueue(
        executor=executor,
        config=settings.queue,
        token_bucket=token_bucket or TokenBucket.from_config(settings.rate_limit),
    )
