"""Async Workflowy API client using httpx.

The client's request() method matches the executor signature expected by
RequestQueue, so it can be injected directly:

    async with WorkflowyClient() as client:
        queue = RequestQueue(executor=client.request)
"""

from __future__ import annotations

from typing import Any

import httpx

from workflowy_queue.config import RetryConfig, get_settings
from workflowy_queue.exceptions import (
    WorkflowyAuthenticationError,
    WorkflowyClientError,
    WorkflowyHTTPError,
    WorkflowyNetworkError,
    WorkflowyNotFoundError,
    WorkflowyRateLimitError,
)
from workflowy_queue.logging import get_logger
from workflowy_queue.retry import with_retry

logger = get_logger(__name__)


class WorkflowyClient:
    """Async Workflowy REST client with automatic retry.

    Usage:
        async with WorkflowyClient() as client:
            node = await client.create_node(name="Inbox")
            await client.complete_node(node["id"])

    Or without context manager:
        client = WorkflowyClient()
        children = await client.get_children()
        await client.close()
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Workflowy client.

        Args:
            api_key: Workflowy API key. If not provided, uses WORKFLOWY_API_KEY
                     from settings.
            base_url: API base URL (defaults to settings)
            timeout: Per-request timeout in seconds (defaults to settings)
            retry: Retry policy (defaults to settings)
            transport: Optional httpx transport (used by tests)

        Raises:
            WorkflowyAuthenticationError: If no API key is available.
        """
        settings = get_settings()
        self._api_key = api_key or settings.workflowy_api_key
        if not self._api_key:
            raise WorkflowyAuthenticationError(
                "Workflowy API key required. Set WORKFLOWY_API_KEY environment variable."
            )
        self._base_url = (base_url or settings.workflowy_base_url).rstrip("/")
        self._timeout = timeout or settings.request_timeout_seconds
        self._retry = retry or settings.retry
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def _http(self) -> httpx.AsyncClient:
        """Get or create the underlying httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> WorkflowyClient:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    # -------------------------------------------------------------------------
    # Core Request
    # -------------------------------------------------------------------------
    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request to the Workflowy API with automatic retry.

        Args:
            endpoint: Path relative to the base URL (e.g. "/nodes")
            method: HTTP method
            body: Optional JSON body

        Returns:
            Decoded JSON response (None for empty bodies)

        Raises:
            WorkflowyClientError: Once retries are exhausted or on a
                                  non-retryable failure
        """
        return await with_retry(
            lambda: self._send(endpoint, method, body),
            context=f"{method} {endpoint}",
            config=self._retry,
        )

    async def _send(self, endpoint: str, method: str, body: dict[str, Any] | None) -> Any:
        try:
            response = await self._http.request(method, endpoint, json=body)
        except httpx.TransportError as e:
            raise WorkflowyNetworkError(f"Workflowy request failed: {e}") from e

        if response.is_error:
            raise self._handle_error(response)

        if not response.content:
            return None
        return response.json()

    # -------------------------------------------------------------------------
    # Node Mutations
    # -------------------------------------------------------------------------
    async def create_node(
        self,
        name: str,
        *,
        note: str | None = None,
        parent_id: str | None = None,
        priority: int | None = None,
    ) -> dict[str, Any]:
        """Create a new node."""
        body = _compact({"name": name, "note": note, "parent_id": parent_id, "priority": priority})
        result: dict[str, Any] = await self.request("/nodes", "POST", body)
        return result

    async def update_node(
        self,
        node_id: str,
        *,
        name: str | None = None,
        note: str | None = None,
    ) -> Any:
        """Update an existing node's name and/or note."""
        return await self.request(
            f"/nodes/{node_id}", "POST", _compact({"name": name, "note": note})
        )

    async def delete_node(self, node_id: str) -> Any:
        """Delete a node."""
        return await self.request(f"/nodes/{node_id}", "DELETE")

    async def move_node(
        self,
        node_id: str,
        new_parent_id: str,
        priority: int | None = None,
    ) -> Any:
        """Move a node to a new parent."""
        return await self.request(
            f"/nodes/{node_id}",
            "POST",
            _compact({"parent_id": new_parent_id, "priority": priority}),
        )

    async def complete_node(self, node_id: str) -> Any:
        """Mark a node as done."""
        return await self.request(f"/nodes/{node_id}/complete", "POST")

    async def uncomplete_node(self, node_id: str) -> Any:
        """Mark a node as not done."""
        return await self.request(f"/nodes/{node_id}/uncomplete", "POST")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def get_node(self, node_id: str) -> Any:
        """Get a single node by ID."""
        return await self.request(f"/nodes/{node_id}")

    async def get_children(self, parent_id: str | None = None) -> Any:
        """Get children of a node (or root nodes if no parent)."""
        endpoint = f"/nodes?parent_id={parent_id}" if parent_id else "/nodes"
        return await self.request(endpoint)

    async def export_all(self) -> Any:
        """Export all nodes.

        Note: the API limits this endpoint to one request per minute.
        """
        return await self.request("/nodes-export")

    async def get_targets(self) -> Any:
        """Get available targets/shortcuts."""
        return await self.request("/targets")

    # -------------------------------------------------------------------------
    # Error Handling
    # -------------------------------------------------------------------------
    def _handle_error(self, response: httpx.Response) -> WorkflowyClientError:
        """Convert an error response to our custom exceptions."""
        status = response.status_code
        message = f"Workflowy API error: {status} - {response.text}"

        if status == 401:
            return WorkflowyAuthenticationError("Invalid Workflowy API key")
        elif status == 404:
            return WorkflowyNotFoundError(message)
        elif status == 429:
            retry_after = response.headers.get("retry-after")
            try:
                seconds = float(retry_after) if retry_after else None
            except ValueError:
                seconds = None
            return WorkflowyRateLimitError(message, retry_after=seconds)
        else:
            return WorkflowyHTTPError(message, status)


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    """Drop unset optional fields from a request body."""
    return {k: v for k, v in values.items() if v is not None}
