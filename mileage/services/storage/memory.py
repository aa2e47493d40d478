"""
In-Memory Storage Implementation

Used by tests and by the default component factory. Records are held
as deep copies so callers can never mutate stored state by accident.

Batch operations (put_many, delete_by_ids) validate the whole batch
before touching the collection, so a failure leaves it unchanged.
"""

import copy
from typing import Any, Iterable, Optional
from uuid import UUID

from mileage.models.audit import AuditEvent
from mileage.services.storage.interface import (
    AuditStorageInterface,
    RecordStore,
    StorageError,
)

_MEMBERSHIP_TYPES = (set, frozenset, list, tuple)


def _matches(record: dict[str, Any], fields: dict[str, Any]) -> bool:
    for name, expected in fields.items():
        value = record.get(name)
        if isinstance(expected, _MEMBERSHIP_TYPES):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed record store."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        record = self._collection(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def put(self, collection: str, record_id: str, record: dict[str, Any]) -> bool:
        if not record_id:
            raise StorageError("Cannot store a record without an id")
        self._collection(collection)[record_id] = copy.deepcopy(record)
        return True

    def put_many(self, collection: str, records: dict[str, dict[str, Any]]) -> int:
        if any(not record_id for record_id in records):
            raise StorageError("Cannot store a record without an id")
        staged = {record_id: copy.deepcopy(record) for record_id, record in records.items()}
        self._collection(collection).update(staged)
        return len(staged)

    def query(self, collection: str, **fields: Any) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(record)
            for record in self._collection(collection).values()
            if _matches(record, fields)
        ]

    def delete_by_ids(self, collection: str, record_ids: Iterable[str]) -> int:
        records = self._collection(collection)
        present = [record_id for record_id in set(record_ids) if record_id in records]
        for record_id in present:
            del records[record_id]
        return len(present)


class InMemoryAuditStorage(AuditStorageInterface):
    """
    In-memory audit log.

    Audit events are append-only.
    """

    def __init__(self):
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
