"""
Tests for the audit logger.
"""

from decimal import Decimal
from uuid import uuid4

from mileage.audit import AuditLogger, create_correlation_id
from mileage.models.audit import AuditEvent, AuditEventType, AuditSeverity
from mileage.models.mileage import MileageGoal
from mileage.services.storage import AuditStorageInterface, InMemoryAuditStorage


class BrokenAuditStorage(AuditStorageInterface):
    def append_event(self, event):
        raise RuntimeError("audit store unavailable")

    def get_events_by_correlation_id(self, correlation_id):
        return []

    def get_events_by_entity(self, entity_type, entity_id):
        return []

    def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:
    """Tests for persisting audit events."""

    def test_persists_event(self):
        storage = InMemoryAuditStorage()
        event = AuditEvent(event_type=AuditEventType.RULES_DELETED, description="gone")

        assert AuditLogger(storage).log(event) is True
        assert storage.get_recent_events() == [event]

    def test_without_storage_only_logs_locally(self):
        event = AuditEvent(event_type=AuditEventType.RULES_DELETED, description="gone")
        assert AuditLogger().log(event) is True

    def test_storage_failure_is_not_raised(self):
        event = AuditEvent(event_type=AuditEventType.RULES_DELETED, description="gone")
        assert AuditLogger(BrokenAuditStorage()).log(event) is False

    def test_correlated_events(self):
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        correlation_id = create_correlation_id()

        audit.log_accrual_skipped("alice", "card-1", "domestic", correlation_id)
        audit.log_rules_deleted([uuid4()], correlation_id)
        audit.log_rules_deleted([uuid4()])

        events = storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.ACCRUAL_SKIPPED,
            AuditEventType.RULES_DELETED,
        ]


class TestEventHelpers:
    """The helper methods build the right event types."""

    def test_rule_saved_and_replaced(self, make_rule):
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        rule = make_rule()

        audit.log_rule_saved(rule, replaced=False)
        audit.log_rule_saved(rule, replaced=True)

        events = storage.get_events_by_entity("rule", rule.id)
        assert [e.event_type for e in events] == [
            AuditEventType.RULE_CREATED,
            AuditEventType.RULE_REPLACED,
        ]
        assert events[0].is_user_action

    def test_rejection_is_a_warning(self):
        storage = InMemoryAuditStorage()
        AuditLogger(storage).log_rule_rejected("alice", "card-1", "domestic", "duplicate")

        event = storage.get_recent_events()[0]
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "duplicate"

    def test_goal_recomputed_to_completion(self):
        storage = InMemoryAuditStorage()
        goal = MileageGoal(
            owner_id="alice",
            name="Lisbon",
            target_miles=Decimal("100"),
            current_miles=Decimal("120"),
        )

        AuditLogger(storage).log_goal_recomputed(goal, previous_miles=Decimal("90"))

        event = storage.get_recent_events()[0]
        assert event.event_type == AuditEventType.GOAL_COMPLETED
        assert event.details == {"previous_miles": "90", "current_miles": "120"}

    def test_storage_error_event(self):
        storage = InMemoryAuditStorage()
        AuditLogger(storage).log_storage_error("put", "timeout")

        event = storage.get_recent_events()[0]
        assert event.event_type == AuditEventType.STORAGE_ERROR
        assert event.severity == AuditSeverity.ERROR
        assert event.details["operation"] == "put"

    def test_system_error_event(self):
        storage = InMemoryAuditStorage()
        AuditLogger(storage).log_error("RateFeed", "stale snapshot", details={"age_hours": 30})

        event = storage.get_recent_events()[0]
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.description == "System error: RateFeed"
        assert event.details == {"age_hours": 30}
