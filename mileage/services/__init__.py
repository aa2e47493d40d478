"""Services package."""

from mileage.services.currency import CurrencyNormalizer, RateSnapshotConverter
from mileage.services.storage import (
    GOALS_COLLECTION,
    HISTORY_COLLECTION,
    RULES_COLLECTION,
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    RecordStore,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Currency
    "CurrencyNormalizer",
    "RateSnapshotConverter",
    # Storage services
    "AuditStorageInterface",
    "GOALS_COLLECTION",
    "HISTORY_COLLECTION",
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "RULES_COLLECTION",
    "RecordStore",
    "StorageConnectionError",
    "StorageError",
]
