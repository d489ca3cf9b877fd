"""
Failure classification for remote record store errors.

Turns any failure raised by a record store call into a stable,
enumerable kind and logs it. Classification never changes control
flow: callers still re-raise the original failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .exceptions import RecordStoreError, RecordStoreErrorCode

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Classification of a failure."""

    NOT_A_REMOTE_STORE_FAILURE = "not_a_remote_store_failure"
    PARTIAL_FAILURE = "partial_failure"
    RECORD_NOT_FOUND = "record_not_found"
    NOT_AUTHENTICATED = "not_authenticated"
    PERMISSION_FAILURE = "permission_failure"
    NETWORK_UNAVAILABLE = "network_unavailable"
    OTHER = "other"


_KINDS_BY_CODE = {
    RecordStoreErrorCode.PARTIAL_FAILURE: ErrorKind.PARTIAL_FAILURE,
    RecordStoreErrorCode.UNKNOWN_ITEM: ErrorKind.RECORD_NOT_FOUND,
    RecordStoreErrorCode.NOT_AUTHENTICATED: ErrorKind.NOT_AUTHENTICATED,
    RecordStoreErrorCode.PERMISSION_FAILURE: ErrorKind.PERMISSION_FAILURE,
    RecordStoreErrorCode.NETWORK_UNAVAILABLE: ErrorKind.NETWORK_UNAVAILABLE,
}

_MESSAGES = {
    ErrorKind.RECORD_NOT_FOUND: "Record not found.",
    ErrorKind.NOT_AUTHENTICATED: "An account is not available.",
    ErrorKind.PERMISSION_FAILURE: "An account permission failure occurred.",
    ErrorKind.NETWORK_UNAVAILABLE: "The network is unavailable.",
}


@dataclass(frozen=True)
class ErrorReport:
    """One log entry produced by report_error.

    Attributes:
        kind: Classification of the failure
        message: Text that was logged
        item_id: Item the failure belongs to, for entries unpacked
            from a partial failure
    """

    kind: ErrorKind
    message: str
    item_id: str | None = None


def classify_error(error: BaseException) -> ErrorKind:
    """Classify a failure without logging it."""
    if not isinstance(error, RecordStoreError):
        return ErrorKind.NOT_A_REMOTE_STORE_FAILURE
    return _KINDS_BY_CODE.get(error.code, ErrorKind.OTHER)


def report_error(
    error: BaseException,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> list[ErrorReport]:
    """Classify a failure and log one entry per underlying failure.

    Partial failures are unpacked: each nested per-item failure is
    reported on its own, recursively, and the partial failure itself
    produces no entry.

    Args:
        error: Failure raised by a record store operation
        log: Logger to write to (default: this module's logger)

    Returns:
        The reports that were logged, in logging order
    """
    return _report(error, log or logger, item_id=None)


def _report(
    error: BaseException,
    log: logging.Logger | logging.LoggerAdapter,
    item_id: str | None,
) -> list[ErrorReport]:
    if not isinstance(error, RecordStoreError):
        message = f"Not a record store error: {error}"
        log.error(message)
        return [
            ErrorReport(kind=ErrorKind.NOT_A_REMOTE_STORE_FAILURE, message=message, item_id=item_id)
        ]

    kind = classify_error(error)
    if kind is ErrorKind.PARTIAL_FAILURE:
        reports: list[ErrorReport] = []
        for nested_id, nested_error in error.partial_errors.items():
            reports.extend(_report(nested_error, log, item_id=str(nested_id)))
        return reports

    text = _MESSAGES.get(kind, error.message)
    message = f"RecordStoreError: {text}"
    if item_id is not None:
        message = f"{message} (item {item_id})"
    log.warning(message, extra={"error_kind": kind.value, "error_code": error.code.value})
    return [ErrorReport(kind=kind, message=message, item_id=item_id)]
