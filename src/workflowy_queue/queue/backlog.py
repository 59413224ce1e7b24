"""FIFO backlog of operations awaiting dispatch."""

from __future__ import annotations

import itertools
from collections import deque
from collections.abc import Iterator

from .operations import Operation


class OperationBacklog:
    """Ordered backlog of pending operations.

    Operations leave the backlog in the order they were added, either as a
    batch from the head or all at once when the queue is cleared.
    """

    def __init__(self) -> None:
        self._items: deque[Operation] = deque()
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        """Assign the next monotonically increasing operation id."""
        return f"op-{next(self._counter)}"

    def push(self, operation: Operation) -> None:
        """Append an operation to the tail."""
        self._items.append(operation)

    def pop_batch(self, max_size: int) -> list[Operation]:
        """Remove and return up to max_size operations from the head."""
        count = min(max_size, len(self._items))
        return [self._items.popleft() for _ in range(count)]

    def take_all(self) -> list[Operation]:
        """Remove and return every pending operation."""
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._items)
