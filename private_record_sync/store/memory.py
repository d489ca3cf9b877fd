"""
In-memory record store.

Keeps one account's private database in process memory. Useful for
tests, offline demos, and for simulating remote failures.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict, deque
from enum import Enum

from ..exceptions import RecordStoreError, RecordStoreErrorCode
from ..records import DEFAULT_ZONE_NAME, Record, RecordID, RecordZone, SavePolicy
from .base import DeleteResults, RecordStore, SaveResults

logger = logging.getLogger(__name__)

OPERATIONS = ("modify", "fetch", "delete", "list_zones")


class AccountStatus(Enum):
    """State of the account the store is acting for."""

    AVAILABLE = "available"
    NO_ACCOUNT = "no_account"  # Every call fails with NOT_AUTHENTICATED
    RESTRICTED = "restricted"  # Every call fails with PERMISSION_FAILURE


class InMemoryRecordStore(RecordStore):
    """Record store backed by a dict.

    Implements the same save policies as the cloud store, including
    change tag checks, so conflict behavior can be tested without a
    network.

    Failure injection:
        >>> store.fail_next("fetch", RecordStoreError(RecordStoreErrorCode.NETWORK_UNAVAILABLE))
        >>> store.fail_record(record_id, RecordStoreError(RecordStoreErrorCode.LIMIT_EXCEEDED))
        >>> store.account_status = AccountStatus.NO_ACCOUNT
    """

    def __init__(self, zones: list[str] | None = None) -> None:
        self._zones = list(zones or [DEFAULT_ZONE_NAME])
        self._records: dict[RecordID, Record] = {}
        self._pending_failures: dict[str, deque[Exception]] = defaultdict(deque)
        self._record_failures: dict[RecordID, RecordStoreError] = {}
        self.account_status = AccountStatus.AVAILABLE
        self.calls: list[str] = []

    # =========================================================================
    # Failure injection
    # =========================================================================

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call of ``operation`` raise ``error``.

        Args:
            operation: One of "modify", "fetch", "delete", "list_zones"
            error: Exception to raise, typically a RecordStoreError
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        self._pending_failures[operation].append(error)

    def fail_record(self, record_id: RecordID, error: RecordStoreError) -> None:
        """Return ``error`` for ``record_id`` in the next modify_records result."""
        self._record_failures[record_id] = error

    def set_field_directly(self, record_id: RecordID, **fields: object) -> Record:
        """Change a stored record as another client would, bumping its change tag."""
        record = self._records.get(record_id)
        if record is None:
            raise RecordStoreError.unknown_item(record_id)
        record.fields.update(fields)
        record.change_tag = uuid.uuid4().hex
        return record.copy()

    def get_stored(self, record_id: RecordID) -> Record | None:
        """Peek at the stored record without going through fault injection."""
        record = self._records.get(record_id)
        return record.copy() if record else None

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        # Suspend like a real network call would
        await asyncio.sleep(0)

        if self.account_status is AccountStatus.NO_ACCOUNT:
            raise RecordStoreError(
                RecordStoreErrorCode.NOT_AUTHENTICATED, "No account is signed in"
            )
        if self.account_status is AccountStatus.RESTRICTED:
            raise RecordStoreError(
                RecordStoreErrorCode.PERMISSION_FAILURE, "Account may not access this database"
            )

        pending = self._pending_failures[operation]
        if pending:
            raise pending.popleft()

    def _check_zone(self, record_id: RecordID) -> RecordStoreError | None:
        if record_id.zone_name not in self._zones:
            return RecordStoreError(
                RecordStoreErrorCode.ZONE_NOT_FOUND, f"Zone not found: {record_id.zone_name}"
            )
        return None

    # =========================================================================
    # RecordStore
    # =========================================================================

    async def modify_records(
        self,
        saving: list[Record],
        deleting: list[RecordID],
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
    ) -> tuple[SaveResults, DeleteResults]:
        await self._enter("modify")

        save_results: SaveResults = {}
        for record in saving:
            injected = self._record_failures.pop(record.record_id, None)
            error = injected or self._check_zone(record.record_id)
            if error is None:
                try:
                    save_results[record.record_id] = self._save_one(record, save_policy)
                except RecordStoreError as e:
                    save_results[record.record_id] = e
            else:
                save_results[record.record_id] = error

        delete_results: DeleteResults = {}
        for record_id in deleting:
            injected = self._record_failures.pop(record_id, None)
            if injected is not None:
                delete_results[record_id] = injected
            elif record_id in self._records:
                del self._records[record_id]
                delete_results[record_id] = record_id
            else:
                delete_results[record_id] = RecordStoreError.unknown_item(record_id)

        return save_results, delete_results

    def _save_one(self, record: Record, save_policy: SavePolicy) -> Record:
        existing = self._records.get(record.record_id)

        if save_policy is SavePolicy.IF_SERVER_RECORD_UNCHANGED and existing is not None:
            if record.change_tag != existing.change_tag:
                raise RecordStoreError(
                    RecordStoreErrorCode.SERVER_RECORD_CHANGED,
                    f"Record {record.record_id} was changed on the server",
                )

        if save_policy is SavePolicy.CHANGED_KEYS and existing is not None:
            stored = existing.copy()
            stored.fields.update(record.fields)
        else:
            stored = record.copy()

        stored.change_tag = uuid.uuid4().hex
        self._records[record.record_id] = stored
        logger.debug(f"Stored record {record.record_id} with change tag {stored.change_tag}")
        return stored.copy()

    async def fetch_record(self, record_id: RecordID) -> Record:
        await self._enter("fetch")
        zone_error = self._check_zone(record_id)
        if zone_error is not None:
            raise zone_error
        record = self._records.get(record_id)
        if record is None:
            raise RecordStoreError.unknown_item(record_id)
        return record.copy()

    async def delete_record(self, record_id: RecordID) -> RecordID:
        await self._enter("delete")
        if record_id not in self._records:
            raise RecordStoreError.unknown_item(record_id)
        del self._records[record_id]
        return record_id

    async def list_zones(self) -> list[RecordZone]:
        await self._enter("list_zones")
        return [RecordZone(zone_name=name) for name in self._zones]
