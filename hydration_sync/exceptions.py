"""
Custom exceptions for hydration sync.

The local tier and the remote tier raise these so the orchestrator can
classify failures without knowing which backend produced them.
"""


class HydrationSyncError(Exception):
    """Base exception for all hydration sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(HydrationSyncError):
    """Raised when caller input fails validation."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class StorageIOError(HydrationSyncError):
    """Raised when a local storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class RemoteUnavailableError(HydrationSyncError):
    """Raised when the remote store cannot be reached."""

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Remote store unreachable: {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class RemoteTimeoutError(RemoteUnavailableError):
    """Raised when a remote operation does not settle within its bound."""

    def __init__(self, operation: str, timeout_ms: int):
        HydrationSyncError.__init__(
            self,
            f"Remote operation {operation} timed out after {timeout_ms}ms",
            {"operation": operation, "timeout_ms": timeout_ms},
        )
        self.endpoint = operation
        self.cause = None
        self.operation = operation
        self.timeout_ms = timeout_ms


class RemotePermissionError(HydrationSyncError):
    """Raised when the remote store rejects the caller's credentials or rules."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Permission denied by {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class NotSignedInError(RemotePermissionError):
    """Raised when a remote operation is attempted without an active session."""

    def __init__(self) -> None:
        super().__init__("session", "no active user session")


class RemoteQueryError(HydrationSyncError):
    """Raised when the remote store cannot serve a specific query shape.

    Typically a missing index for an ordered query. Recoverable by
    re-issuing the query without ordering.
    """

    def __init__(self, query: str, cause: Exception | None = None):
        details = {"query": query}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Remote query cannot be served: {query}", details)
        self.query = query
        self.cause = cause


def availability_failure_kind(error: BaseException) -> str | None:
    """Classify an error by its effect on remote availability.

    Returns:
        "permission" for auth/rule rejections, "unreachable" for network
        failures and timeouts, None for anything that should not flip
        availability.
    """
    if isinstance(error, RemotePermissionError):
        return "permission"
    if isinstance(error, (RemoteUnavailableError, TimeoutError, ConnectionError)):
        return "unreachable"
    return None
