"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the engine independent of the managed backend the app uses
2. Use in-memory storage for testing
3. Add caching layers transparently

The interface is intentionally simple - a generic record store with
get / put / query-by-fields / delete-by-ids. Rules, ledger entries and
goals are stored as JSON-compatible dicts in named collections; the
engine components own the conversion to and from their models.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional
from uuid import UUID

from mileage.models.audit import AuditEvent


# Collection names used by the engine components
RULES_COLLECTION = "mileage_rules"
HISTORY_COLLECTION = "mileage_history"
GOALS_COLLECTION = "mileage_goals"


class RecordStore(ABC):
    """
    Abstract interface for the record store backing the engine.

    Any storage implementation (managed Postgres, SQLite, etc.)
    must implement these methods.
    """

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a record by id.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    def put(self, collection: str, record_id: str, record: dict[str, Any]) -> bool:
        """
        Insert or replace a record.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def put_many(self, collection: str, records: dict[str, dict[str, Any]]) -> int:
        """
        Insert or replace several records as one unit.

        Either every record is written or none is.

        Returns:
            Number of records written
        """
        pass

    @abstractmethod
    def query(self, collection: str, **fields: Any) -> list[dict[str, Any]]:
        """
        Return records whose fields match.

        A scalar value matches by equality. A set, frozenset, list or
        tuple matches when the record's value is one of its members.
        """
        pass

    @abstractmethod
    def delete_by_ids(self, collection: str, record_ids: Iterable[str]) -> int:
        """
        Delete records by id as one unit.

        Returns:
            Number of records deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event to the log."""
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID in chronological order."""
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Could not reach the storage backend (transient, safe to retry)."""
    pass
