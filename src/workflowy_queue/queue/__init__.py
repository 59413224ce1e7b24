"""Rate-limited batching queue for Workflowy mutations.

Components:
- TokenBucket: Continuous token bucket limiting request rate
- OperationBacklog: FIFO backlog of pending operations
- RequestQueue: Debounced batch scheduler with concurrency ceiling
- Dispatcher: Per-operation token acquisition, execution and settlement
"""

from .backlog import OperationBacklog
from .dispatcher import Dispatcher, Executor
from .operations import (
    ROUTES,
    Operation,
    OperationKind,
    OperationState,
    RequestDescriptor,
    build_request,
)
from .scheduler import QueueState, QueueStats, RequestQueue, create_request_queue
from .token_bucket import TokenBucket, create_default_token_bucket

__all__ = [
    # Backlog
    "OperationBacklog",
    # Dispatch
    "Dispatcher",
    "Executor",
    # Operations
    "ROUTES",
    "Operation",
    "OperationKind",
    "OperationState",
    "RequestDescriptor",
    "build_request",
    # Scheduling
    "QueueState",
    "QueueStats",
    "RequestQueue",
    "create_request_queue",
    # Rate limiting
    "TokenBucket",
    "create_default_token_bucket",
]
