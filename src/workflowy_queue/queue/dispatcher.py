"""Per-operation dispatch of queued batches.

For each operation in a batch the dispatcher resolves the operation's route,
waits for a token, calls the executor and settles the operation's future.
Operations whose route cannot be resolved fail without spending a token.
Every operation is isolated: a failure settles only that operation's future
and the batch completes once all members have settled.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from workflowy_queue.exceptions import QueueConfigurationError
from workflowy_queue.logging import bind_operation, get_logger

from .operations import Operation, OperationState, build_request
from .token_bucket import TokenBucket

logger = get_logger(__name__)

Executor = Callable[..., Awaitable[Any]]
"""async (endpoint: str, method: str, body: dict | None = None) -> Any"""

MISSING_EXECUTOR_MESSAGE = "Executor not set. Call set_executor() before dispatching operations."


class Dispatcher:
    """Executes batches of operations against an injected executor.

    Usage:
        dispatcher = Dispatcher(bucket, executor=client.request)
        await dispatcher.dispatch(batch)

        print(dispatcher.total_processed, dispatcher.total_failed)
    """

    def __init__(self, bucket: TokenBucket, executor: Executor | None = None) -> None:
        """Initialize the dispatcher.

        Args:
            bucket: Token bucket consulted once per operation
            executor: Async callable performing the API request
        """
        self._bucket = bucket
        self._executor = executor

        self.total_processed = 0
        self.total_failed = 0

    @property
    def executor(self) -> Executor | None:
        """The configured executor, if any."""
        return self._executor

    @executor.setter
    def executor(self, executor: Executor | None) -> None:
        self._executor = executor

    @property
    def bucket(self) -> TokenBucket:
        """The token bucket gating each dispatch."""
        return self._bucket

    async def dispatch(self, batch: Sequence[Operation]) -> None:
        """Dispatch every operation in the batch and wait for all to settle.

        If no executor is configured, every operation fails immediately with
        QueueConfigurationError without touching the token bucket.
        """
        if self._executor is None:
            logger.error("Dropping batch of {}: {}", len(batch), MISSING_EXECUTOR_MESSAGE)
            for op in batch:
                self._fail(op, QueueConfigurationError(MISSING_EXECUTOR_MESSAGE))
            return

        executor = self._executor
        await asyncio.gather(
            *(self._execute(op, executor) for op in batch),
            return_exceptions=True,
        )

    async def _execute(self, op: Operation, executor: Executor) -> None:
        """Run a single operation and settle its future."""
        op_logger = bind_operation(op.id, op.kind_name)
        op.state = OperationState.IN_FLIGHT

        try:
            request = build_request(op.kind, op.params)
            await self._bucket.acquire()

            op_logger.debug("Executing {} {}", request.method, request.endpoint)

            if request.body is None:
                result = await executor(request.endpoint, request.method)
            else:
                result = await executor(request.endpoint, request.method, request.body)
        except Exception as e:
            self._fail(op, e)
            return

        self.total_processed += 1
        op.resolve(result)
        op_logger.debug("Operation completed")

    def _fail(self, op: Operation, error: Exception) -> None:
        self.total_failed += 1
        bind_operation(op.id, op.kind_name).warning("Operation failed: {}", error)
        op.reject(error)
