"""
Custom exceptions for private record sync.

Every record store implementation should raise RecordStoreError for
failures that come from the remote store itself, so the failure
classifier can treat all backends the same way.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .records import RecordID


class RecordSyncError(Exception):
    """Base exception for all record sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RecordStoreErrorCode(Enum):
    """Error codes of the remote record store's error domain."""

    PARTIAL_FAILURE = "partial_failure"  # Some items of a batch failed
    UNKNOWN_ITEM = "unknown_item"  # Record does not exist
    NOT_AUTHENTICATED = "not_authenticated"  # No signed-in account
    PERMISSION_FAILURE = "permission_failure"  # Account lacks rights
    NETWORK_UNAVAILABLE = "network_unavailable"  # No route to the store
    NETWORK_FAILURE = "network_failure"  # Route exists but the request broke
    SERVER_RECORD_CHANGED = "server_record_changed"  # Change tag mismatch
    ZONE_NOT_FOUND = "zone_not_found"
    BAD_CONTAINER = "bad_container"
    BAD_DATABASE = "bad_database"
    REQUEST_RATE_LIMITED = "request_rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    LIMIT_EXCEEDED = "limit_exceeded"
    INTERNAL_ERROR = "internal_error"


class RecordStoreError(RecordSyncError):
    """Raised (or returned per item) when the remote record store fails.

    Attributes:
        code: Error code within the record store's domain
        partial_errors: Per-item failures, only set for PARTIAL_FAILURE
        retry_after: Seconds the server asked us to wait, when it said so
        cause: Underlying client exception, if any
    """

    def __init__(
        self,
        code: RecordStoreErrorCode,
        message: str | None = None,
        partial_errors: dict[RecordID, RecordStoreError] | None = None,
        retry_after: float | None = None,
        cause: Exception | None = None,
    ):
        message = message or code.value.replace("_", " ").capitalize()
        details: dict = {"code": code.value}
        if partial_errors:
            details["partial_errors"] = {
                str(item_id): err.message for item_id, err in partial_errors.items()
            }
        if retry_after is not None:
            details["retry_after"] = retry_after
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.code = code
        self.partial_errors = dict(partial_errors or {})
        self.retry_after = retry_after
        self.cause = cause

    def __repr__(self) -> str:
        return f"RecordStoreError({self.code.name}, {self.message!r})"

    @classmethod
    def unknown_item(cls, record_id: RecordID) -> RecordStoreError:
        """Build the error a store raises for a record that does not exist."""
        return cls(RecordStoreErrorCode.UNKNOWN_ITEM, f"Record not found: {record_id}")

    @classmethod
    def partial_failure(cls, errors: dict[RecordID, RecordStoreError]) -> RecordStoreError:
        """Wrap per-item failures of a batch operation."""
        return cls(
            RecordStoreErrorCode.PARTIAL_FAILURE,
            f"Failed to modify {len(errors)} record(s)",
            partial_errors=errors,
        )


class ConfigurationError(RecordSyncError):
    """Raised when the container or account configuration is invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field})
        self.field = field
        self.reason = reason
