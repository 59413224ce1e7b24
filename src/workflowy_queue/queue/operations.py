"""Queued operations and their mapping to Workflowy API requests.

Each OperationKind carries its own typed params model and a route in
ROUTES. build_request() turns a (kind, params) pair into the
(endpoint, method, body) triple handed to the executor.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, ValidationError

from workflowy_queue.exceptions import InvalidOperationParamsError, UnknownOperationError


class OperationKind(str, Enum):
    """Mutations that can be queued."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MOVE = "move"
    COMPLETE = "complete"
    UNCOMPLETE = "uncomplete"


class OperationState(IntEnum):
    """Lifecycle state of a queued operation."""

    PENDING = 1
    IN_FLIGHT = 2
    COMPLETED = 3
    FAILED = 4
    CANCELLED = 5


# -----------------------------------------------------------------------------
# Params
# -----------------------------------------------------------------------------
class OperationParams(BaseModel):
    """Base for per-kind params.

    Values are forwarded as given: extra fields pass through to the body and
    only fields the caller never set are left out.
    """

    model_config = ConfigDict(extra="allow")


class CreateParams(OperationParams):
    name: str
    note: str | None = None
    parent_id: str | None = None
    priority: int | None = None


class NodeParams(OperationParams):
    """Params for operations addressing an existing node."""

    node_id: str | int


class UpdateParams(NodeParams):
    name: str | None = None
    note: str | None = None


class DeleteParams(NodeParams):
    pass


class MoveParams(NodeParams):
    parent_id: str | None = None
    priority: int | None = None


class CompleteParams(NodeParams):
    pass


class UncompleteParams(NodeParams):
    pass


# -----------------------------------------------------------------------------
# Routing
# -----------------------------------------------------------------------------
class Route(NamedTuple):
    """How an operation kind maps onto the REST API."""

    endpoint: str
    method: str
    params_model: type[OperationParams]
    sends_body: bool


ROUTES: dict[OperationKind, Route] = {
    OperationKind.CREATE: Route("/nodes", "POST", CreateParams, True),
    OperationKind.UPDATE: Route("/nodes/{node_id}", "POST", UpdateParams, True),
    OperationKind.DELETE: Route("/nodes/{node_id}", "DELETE", DeleteParams, False),
    OperationKind.MOVE: Route("/nodes/{node_id}", "POST", MoveParams, True),
    OperationKind.COMPLETE: Route("/nodes/{node_id}/complete", "POST", CompleteParams, False),
    OperationKind.UNCOMPLETE: Route(
        "/nodes/{node_id}/uncomplete", "POST", UncompleteParams, False
    ),
}


class RequestDescriptor(NamedTuple):
    """Executor call derived from an operation."""

    endpoint: str
    method: str
    body: dict[str, Any] | None = None


def parse_kind(kind: OperationKind | str) -> OperationKind | str:
    """Coerce a kind value to OperationKind, leaving unknown values as-is.

    Unknown kinds are accepted at enqueue time and fail at dispatch so they
    only affect their own operation.
    """
    if isinstance(kind, OperationKind):
        return kind
    try:
        return OperationKind(str(kind).lower())
    except ValueError:
        return kind


def build_request(kind: OperationKind | str, params: dict[str, Any]) -> RequestDescriptor:
    """Map an operation onto the executor's (endpoint, method, body).

    Args:
        kind: Operation kind
        params: Raw operation params

    Returns:
        RequestDescriptor for the executor

    Raises:
        UnknownOperationError: If the kind has no route
        InvalidOperationParamsError: If params fail validation for the kind
    """
    resolved = parse_kind(kind)
    if not isinstance(resolved, OperationKind):
        raise UnknownOperationError(kind)
    route = ROUTES[resolved]

    try:
        validated = route.params_model.model_validate(params)
    except ValidationError as e:
        raise InvalidOperationParamsError(
            f"Invalid params for {resolved.value}: {e.errors(include_url=False)}"
        ) from e

    data = validated.model_dump(exclude_unset=True)
    node_id = data.pop("node_id", None)
    endpoint = route.endpoint.format(node_id=node_id) if node_id is not None else route.endpoint

    if not route.sends_body:
        return RequestDescriptor(endpoint, route.method)
    return RequestDescriptor(endpoint, route.method, data)


# -----------------------------------------------------------------------------
# Operation
# -----------------------------------------------------------------------------
@dataclass
class Operation:
    """A mutation waiting in (or taken from) the backlog.

    The future is the caller's completion handle. It is settled exactly once;
    settle calls after that, or after the caller cancelled it, are ignored.
    """

    id: str
    kind: OperationKind | str
    params: dict[str, Any]
    future: asyncio.Future[Any]
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: OperationState = OperationState.PENDING

    @property
    def kind_name(self) -> str:
        """Kind as a plain string (for logging and output)."""
        if isinstance(self.kind, OperationKind):
            return self.kind.value
        return str(self.kind)

    @property
    def is_settled(self) -> bool:
        """Whether the completion handle is already done."""
        return self.future.done()

    def resolve(self, result: Any) -> None:
        """Settle the operation with a result."""
        if self.future.done():
            return
        self.state = OperationState.COMPLETED
        self.future.set_result(result)

    def reject(self, error: BaseException) -> None:
        """Settle the operation with an error."""
        if self.future.done():
            return
        self.state = OperationState.FAILED
        self.future.set_exception(error)

    def cancel(self, error: BaseException) -> None:
        """Settle a never-dispatched operation as discarded."""
        if self.future.done():
            return
        self.state = OperationState.CANCELLED
        self.future.set_exception(error)
