"""
Readiness check for the private database.

Lists the zones of the private database to find out whether the
container and account are usable, and tells configuration problems
(wrong container or database) apart from account problems (nobody
signed in, or no permission).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .exceptions import RecordStoreError, RecordStoreErrorCode
from .store.base import RecordStore

logger = logging.getLogger(__name__)


class ReadinessStatus(Enum):
    """Outcome of a readiness check."""

    READY = "ready"
    CONFIGURATION_ERROR = "configuration_error"  # Bad container or database
    ACCOUNT_UNAVAILABLE = "account_unavailable"  # Not signed in / no permission
    UNKNOWN = "unknown"  # Some other failure, not treated as fatal


_STATUS_BY_CODE = {
    RecordStoreErrorCode.BAD_CONTAINER: ReadinessStatus.CONFIGURATION_ERROR,
    RecordStoreErrorCode.BAD_DATABASE: ReadinessStatus.CONFIGURATION_ERROR,
    RecordStoreErrorCode.PERMISSION_FAILURE: ReadinessStatus.ACCOUNT_UNAVAILABLE,
    RecordStoreErrorCode.NOT_AUTHENTICATED: ReadinessStatus.ACCOUNT_UNAVAILABLE,
}

_HINTS = {
    ReadinessStatus.CONFIGURATION_ERROR: "Create or select a container and database for this app",
    ReadinessStatus.ACCOUNT_UNAVAILABLE: "The device or session running this app needs a signed-in account",
}


@dataclass(frozen=True)
class ReadinessResult:
    """Result of check_readiness.

    Attributes:
        status: Overall readiness
        zone_count: Number of zones found, when the check succeeded
        error: Failure that decided the status, if any
    """

    status: ReadinessStatus
    zone_count: int = 0
    error: RecordStoreError | None = None

    @property
    def is_ready(self) -> bool:
        """True unless the container or account is known to be unusable."""
        return self.status in (ReadinessStatus.READY, ReadinessStatus.UNKNOWN)

    @property
    def hint(self) -> str | None:
        """What to fix, for statuses that need a fix."""
        return _HINTS.get(self.status)


async def check_readiness(store: RecordStore) -> ReadinessResult:
    """Check that the store's container and account are usable.

    Args:
        store: Store to check

    Returns:
        ReadinessResult; failures are returned, not raised
    """
    try:
        zones = await store.list_zones()
    except RecordStoreError as e:
        status = _STATUS_BY_CODE.get(e.code, ReadinessStatus.UNKNOWN)
        if status is ReadinessStatus.UNKNOWN:
            logger.info(f"Readiness check inconclusive: {e.message}")
        else:
            logger.warning(f"Record store not ready ({status.value}): {e.message}")
        return ReadinessResult(status=status, error=e)

    logger.info(f"Record store ready with {len(zones)} zone(s)")
    return ReadinessResult(status=ReadinessStatus.READY, zone_count=len(zones))
