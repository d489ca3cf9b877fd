"""
Private Record Sync

Reads, writes and deletes a single named record in a per-user
private record database and mirrors its value for a user interface.

Provides:
- RecordSyncController: observable mirror of the "last person" record
- Record stores: in-memory and Azure Cosmos DB
- Failure classification for remote store errors
- Readiness check for container and account configuration

Usage:

    >>> from private_record_sync import RecordSyncController, SyncConfig
    >>> from private_record_sync.store.cosmos import CosmosRecordStore
    >>> config = SyncConfig.from_environment()
    >>> async with CosmosRecordStore.from_config(config) as store:
    ...     controller = RecordSyncController.create(
    ...         store, use_test_identifier=config.use_test_identifier
    ...     )
    ...     controller.subscribe(lambda name: print(f"The last person was {name or 'Nobody'}!"))
    ...     await controller.save_record("Alice")

Backend Selection:

    # Azure Cosmos DB for the real private database
    from private_record_sync.store.cosmos import CosmosRecordStore

    # In-memory for tests and offline use
    from private_record_sync.store import InMemoryRecordStore
"""

from .config import CosmosAuthMethod, SyncConfig
from .controller import RecordSyncController
from .exceptions import (
    ConfigurationError,
    RecordStoreError,
    RecordStoreErrorCode,
    RecordSyncError,
)
from .readiness import ReadinessResult, ReadinessStatus, check_readiness
from .records import (
    LAST_PERSON_RECORD_NAME,
    LAST_PERSON_TEST_RECORD_NAME,
    Record,
    RecordID,
    RecordZone,
    SavePolicy,
)
from .reporting import ErrorKind, ErrorReport, classify_error, report_error
from .store import AccountStatus, InMemoryRecordStore, RecordStore

__all__ = [
    # Controller
    "RecordSyncController",
    # Records
    "Record",
    "RecordID",
    "RecordZone",
    "SavePolicy",
    "LAST_PERSON_RECORD_NAME",
    "LAST_PERSON_TEST_RECORD_NAME",
    # Stores
    "RecordStore",
    "InMemoryRecordStore",
    "AccountStatus",
    # Failure classification
    "ErrorKind",
    "ErrorReport",
    "classify_error",
    "report_error",
    # Readiness
    "ReadinessStatus",
    "ReadinessResult",
    "check_readiness",
    # Configuration
    "SyncConfig",
    "CosmosAuthMethod",
    # Exceptions
    "RecordSyncError",
    "RecordStoreError",
    "RecordStoreErrorCode",
    "ConfigurationError",
]

__version__ = "0.1.0"
