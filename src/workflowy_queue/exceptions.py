"""Queue and Workflowy client exceptions."""


class WorkflowyQueueError(Exception):
    """Base exception for request queue failures."""

    pass


class QueueConfigurationError(WorkflowyQueueError):
    """Raised when a batch is dispatched before an executor is set."""

    pass


class QueueClearedError(WorkflowyQueueError):
    """Raised for pending operations discarded by RequestQueue.clear()."""

    def __init__(self, message: str = "Queue cleared") -> None:
        super().__init__(message)


class UnknownOperationError(WorkflowyQueueError):
    """Raised when an operation kind has no route."""

    def __init__(self, kind: object) -> None:
        super().__init__(f"Unknown operation type: {kind}")
        self.kind = kind


class InvalidOperationParamsError(WorkflowyQueueError):
    """Raised when operation params fail validation for their kind."""

    pass


class WorkflowyClientError(Exception):
    """Base exception for Workflowy API client errors."""

    pass


class WorkflowyAuthenticationError(WorkflowyClientError):
    """Raised when the API key is missing or rejected (401)."""

    pass


class WorkflowyNetworkError(WorkflowyClientError):
    """Raised when the request never produced an HTTP response."""

    pass


class WorkflowyHTTPError(WorkflowyClientError):
    """Raised for non-2xx responses."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class WorkflowyRateLimitError(WorkflowyHTTPError):
    """Raised when the API rate limit is exceeded (429)."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, 429)
        self.retry_after = retry_after


class WorkflowyNotFoundError(WorkflowyHTTPError):
    """Raised when a node or endpoint is not found (404)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 404)
