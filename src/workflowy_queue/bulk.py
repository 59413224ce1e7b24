"""Bulk application of operation files through a RequestQueue.

Operation files are either a JSON array or JSON Lines, each entry shaped as:

    {"kind": "create", "params": {"name": "Inbox", "parent_id": "abc"}}
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from workflowy_queue.logging import LogContext, get_logger
from workflowy_queue.queue import QueueStats, RequestDescriptor, RequestQueue, build_request

logger = get_logger(__name__)


class OperationSpec(BaseModel):
    """One entry of an operation file."""

    kind: str
    params: dict[str, Any] = Field(default_factory=dict)

    def describe(self) -> RequestDescriptor:
        """Resolve the request this operation would send."""
        return build_request(self.kind, self.params)


_spec_list = TypeAdapter(list[OperationSpec])


def parse_operations(text: str) -> list[OperationSpec]:
    """Parse a JSON array or JSON Lines document into operation specs.

    Raises:
        ValueError: If the document is not valid JSON or an entry is malformed
    """
    stripped = text.strip()
    if not stripped:
        return []

    try:
        if stripped.startswith("["):
            return _spec_list.validate_json(stripped)
        return [
            OperationSpec.model_validate_json(line)
            for line in stripped.splitlines()
            if line.strip()
        ]
    except ValidationError as e:
        raise ValueError(f"Invalid operations file: {e}") from e


def load_operations(path: Path) -> list[OperationSpec]:
    """Read and parse an operations file."""
    return parse_operations(path.read_text(encoding="utf-8"))


@dataclass
class OperationOutcome:
    """Result of a single applied operation."""

    index: int
    kind: str
    result: Any = None
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        """Check if the operation completed without errors."""
        return self.error is None


@dataclass
class BulkResult:
    """Aggregated result of applying an operation file."""

    outcomes: list[OperationOutcome] = field(default_factory=list)
    stats: QueueStats | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> int:
        """Operations that completed successfully."""
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        """Operations that failed."""
        return len(self.outcomes) - self.succeeded

    @property
    def all_succeeded(self) -> bool:
        """Whether every operation succeeded."""
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total": len(self.outcomes),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "duration_seconds": round(self.duration_seconds, 2),
            "stats": self.stats.to_dict() if self.stats else None,
            "operations": [
                {
                    "index": o.index,
                    "kind": o.kind,
                    "success": o.success,
                    "result": _json_safe(o.result),
                    "error": str(o.error) if o.error else None,
                }
                for o in self.outcomes
            ],
        }


async def apply_operations(queue: RequestQueue, specs: list[OperationSpec]) -> BulkResult:
    """Enqueue every operation, wait for all of them, and collect outcomes.

    Args:
        queue: Queue with an executor configured
        specs: Operations in submission order

    Returns:
        BulkResult with one outcome per entry, in submission order
    """
    start = time.monotonic()
    with LogContext(bulk_total=len(specs)):
        futures = queue.enqueue_many((spec.kind, spec.params) for spec in specs)
        settled = await asyncio.gather(*futures, return_exceptions=True)
        await queue.drain()

    result = BulkResult(stats=queue.get_stats(), duration_seconds=time.monotonic() - start)
    for index, (spec, value) in enumerate(zip(specs, settled, strict=True)):
        if isinstance(value, BaseException):
            result.outcomes.append(OperationOutcome(index, spec.kind, error=value))
        else:
            result.outcomes.append(OperationOutcome(index, spec.kind, result=value))

    logger.info(
        "Applied {} operations ({} succeeded, {} failed) in {:.2f}s",
        len(specs),
        result.succeeded,
        result.failed,
        result.duration_seconds,
    )
    return result


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value
