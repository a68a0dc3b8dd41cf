"""Typed failures raised by the sync engine."""

from pydantic import ValidationError


class SyncError(Exception):
    """Base exception for sync errors."""

    code = "sync_error"


class RemoteConfigError(SyncError):
    """Raised when the remote store is not properly configured."""

    code = "remote_config"


class NotAuthenticatedError(SyncError):
    """Raised when there is no valid remote session."""

    code = "not_authenticated"

    def __init__(self, message: str = "Not authenticated. Please sign in to sync."):
        super().__init__(message)


class NoTenantSelectedError(SyncError):
    """Raised when no location is selected."""

    code = "no_tenant"

    def __init__(self, message: str = "No location selected. Please select a location to sync."):
        super().__init__(message)


class NetworkError(SyncError):
    """Raised when a remote call fails.

    ``retryable`` is False for failures that repeating the same request
    cannot fix (e.g. a 400 response).
    """

    code = "network"

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class RateLimitError(NetworkError):
    """Raised when rate limited by the remote store."""

    code = "rate_limited"

    def __init__(self, retry_after: float = 1):
        self.retry_after = retry_after
        super().__init__(f"Rate limited. Retry after {retry_after}s")


class SerializationError(SyncError):
    """Raised when a local or remote record cannot be converted."""

    code = "serialization"

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        super().__init__(f"Malformed record {record_id}: {message}")


class BusyError(SyncError):
    """Raised when another sync round is already in progress."""

    code = "busy"

    def __init__(self, message: str = "Sync already in progress"):
        super().__init__(message)


class SyncCancelledError(SyncError):
    """Raised when a round is cancelled between operations."""

    code = "cancelled"

    def __init__(self, message: str = "Sync cancelled"):
        super().__init__(message)


def summarize_validation_error(error: ValidationError) -> str:
    """One-line description of the first failing field."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "record"
    return f"{location}: {first.get('msg', 'invalid value')}"
