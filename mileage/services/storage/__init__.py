"""
Storage Services Package

Provides the abstract record-store interface and an in-memory
implementation. The concrete backend of the surrounding application
plugs in behind the same interface.
"""

from mileage.services.storage.interface import (
    GOALS_COLLECTION,
    HISTORY_COLLECTION,
    RULES_COLLECTION,
    AuditStorageInterface,
    RecordStore,
    StorageConnectionError,
    StorageError,
)
from mileage.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStore",
    # Collections
    "GOALS_COLLECTION",
    "HISTORY_COLLECTION",
    "RULES_COLLECTION",
    # Exceptions
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
]
