"""
Abstract record store interface.

Defines the contract that all record store backends must implement.
A store represents one account's private database: every call is
implicitly scoped to the signed-in user.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import RecordStoreError, RecordStoreErrorCode
from ..records import Record, RecordID, RecordZone, SavePolicy

SaveResults = dict[RecordID, Record | RecordStoreError]
DeleteResults = dict[RecordID, RecordID | RecordStoreError]


class RecordStore(ABC):
    """Abstract base for record stores.

    Failure contract:
    - Function-level failures (no account, no network, bad container)
      are raised as RecordStoreError.
    - Per-item failures of modify_records are returned in the result
      maps, keyed by record ID, and never raised by modify_records.
    - fetch_record and delete_record raise UNKNOWN_ITEM for a record
      that does not exist.

    Stores never retry: every failure surfaces to the caller.
    """

    @abstractmethod
    async def modify_records(
        self,
        saving: list[Record],
        deleting: list[RecordID],
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
    ) -> tuple[SaveResults, DeleteResults]:
        """Save and delete records in one request.

        Args:
            saving: Records to save
            deleting: IDs of records to delete
            save_policy: How submitted records are reconciled with the server copy

        Returns:
            Tuple of (save results, delete results). Each map has one entry
            per submitted record: the saved record / deleted ID, or the
            per-item RecordStoreError.
        """
        pass

    @abstractmethod
    async def fetch_record(self, record_id: RecordID) -> Record:
        """Fetch a single record by ID."""
        pass

    @abstractmethod
    async def delete_record(self, record_id: RecordID) -> RecordID:
        """Delete a single record by ID, returning the deleted ID."""
        pass

    @abstractmethod
    async def list_zones(self) -> list[RecordZone]:
        """List all zones of the private database."""
        pass

    async def save_record(
        self,
        record: Record,
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
    ) -> Record:
        """Save a single record, raising its per-item failure if any."""
        save_results, _ = await self.modify_records([record], [], save_policy=save_policy)
        result = save_results.get(record.record_id)
        if result is None:
            raise RecordStoreError(
                RecordStoreErrorCode.INTERNAL_ERROR,
                f"No save result returned for record {record.record_id}",
            )
        if isinstance(result, RecordStoreError):
            raise result
        return result

    async def save_records(
        self,
        records: list[Record],
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
    ) -> list[Record]:
        """Save several records, raising PARTIAL_FAILURE if any of them failed.

        The raised error's ``partial_errors`` maps each failed record ID to
        its own failure. Records that did save stay saved.
        """
        save_results, _ = await self.modify_records(records, [], save_policy=save_policy)
        saved: list[Record] = []
        errors: dict[RecordID, RecordStoreError] = {}
        for record in records:
            result = save_results.get(record.record_id)
            if isinstance(result, Record):
                saved.append(result)
            else:
                errors[record.record_id] = result or RecordStoreError(
                    RecordStoreErrorCode.INTERNAL_ERROR,
                    f"No save result returned for record {record.record_id}",
                )
        if errors:
            raise RecordStoreError.partial_failure(errors)
        return saved

    async def close(self) -> None:
        """Close connections and cleanup resources."""
        pass

    async def __aenter__(self) -> RecordStore:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
