"""
Record store abstraction layer.

Provides the abstract record store interface and its backends
(in-memory and Azure Cosmos DB). Each backend implements the same
interface, so the controller can be pointed at either.
"""

from .base import DeleteResults, RecordStore, SaveResults
from .memory import AccountStatus, InMemoryRecordStore

__all__ = [
    "RecordStore",
    "SaveResults",
    "DeleteResults",
    "InMemoryRecordStore",
    "AccountStatus",
]
