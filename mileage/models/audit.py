"""
Audit Models for the Mileage Engine

Every state change in the engine is logged for audit purposes.
This provides:
1. Traceability of how a goal reached its current miles
2. Debugging information when an accrual is disputed
3. A record of rejected actions (duplicate rules, double links)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from mileage.models.mileage import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Rules
    RULE_CREATED = "rule_created"
    RULE_REPLACED = "rule_replaced"
    RULES_TOGGLED = "rules_toggled"
    RULES_DELETED = "rules_deleted"
    RULE_REJECTED = "rule_rejected"

    # Ledger
    ACCRUAL_RECORDED = "accrual_recorded"
    ACCRUAL_SKIPPED = "accrual_skipped"
    ACCRUAL_REJECTED = "accrual_rejected"

    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_PROGRESS_RECOMPUTED = "goal_progress_recomputed"
    GOAL_COMPLETED = "goal_completed"
    GOAL_DELETED = "goal_deleted"
    GOAL_LINK_REJECTED = "goal_link_rejected"

    # Analysis
    ANALYSIS_COMPUTED = "analysis_computed"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'rule', 'goal', 'accrual')"
    )
    entity_id: Optional[UUID] = None
    owner_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one spend and the goals it moved)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "owner_id": self.owner_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.rule_created(rule_id, owner_id, card_id, "domestic")
        event = AuditEventBuilder.accrual_recorded(record_id, ...)
    """

    @staticmethod
    def rule_created(
        rule_id: UUID,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: str,
        replaced: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_REPLACED if replaced else AuditEventType.RULE_CREATED,
            entity_type="rule",
            entity_id=rule_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"{purchase_type.capitalize()} rule {'replaced' if replaced else 'created'} for card {card_id}",
            details={
                "card_id": card_id,
                "purchase_type": purchase_type,
            },
            is_user_action=True,
        )

    @staticmethod
    def rule_rejected(
        owner_id: str,
        card_id: Optional[str],
        purchase_type: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="rule",
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Rule rejected for card {card_id}",
            details={
                "card_id": card_id,
                "purchase_type": purchase_type,
            },
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def rules_toggled(
        rule_ids: list[UUID],
        active_states: dict[str, bool],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULES_TOGGLED,
            entity_type="rule",
            correlation_id=correlation_id,
            description=f"Toggled {len(rule_ids)} rule(s)",
            details={
                "rule_ids": [str(rule_id) for rule_id in rule_ids],
                "is_active": active_states,
            },
            is_user_action=True,
        )

    @staticmethod
    def rules_deleted(
        rule_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULES_DELETED,
            entity_type="rule",
            correlation_id=correlation_id,
            description=f"Deleted {len(rule_ids)} rule(s)",
            details={
                "rule_ids": [str(rule_id) for rule_id in rule_ids],
            },
            is_user_action=True,
        )

    @staticmethod
    def accrual_recorded(
        record_id: UUID,
        owner_id: str,
        card_id: Optional[str],
        amount_spent: Decimal,
        miles_earned: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCRUAL_RECORDED,
            entity_type="accrual",
            entity_id=record_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Accrued {miles_earned} miles on card {card_id}",
            details={
                "card_id": card_id,
                "amount_spent": str(amount_spent),
                "miles_earned": str(miles_earned),
            },
        )

    @staticmethod
    def accrual_skipped(
        owner_id: str,
        card_id: Optional[str],
        purchase_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCRUAL_SKIPPED,
            entity_type="accrual",
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"No active {purchase_type} rule for card {card_id}; nothing accrued",
            details={
                "card_id": card_id,
                "purchase_type": purchase_type,
            },
        )

    @staticmethod
    def accrual_rejected(
        owner_id: str,
        card_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCRUAL_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="accrual",
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Accrual rejected for card {card_id}",
            details={"card_id": card_id},
            error_message=reason,
        )

    @staticmethod
    def goal_created(
        goal_id: UUID,
        owner_id: str,
        source_card_id: Optional[str],
        initial_miles: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            entity_type="goal",
            entity_id=goal_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description="Mileage goal created",
            details={
                "source_card_id": source_card_id,
                "initial_miles": str(initial_miles),
            },
            is_user_action=True,
        )

    @staticmethod
    def goal_link_rejected(
        owner_id: str,
        source_card_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_LINK_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="goal",
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Card {source_card_id} cannot back another goal",
            details={"source_card_id": source_card_id},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def goal_recomputed(
        goal_id: UUID,
        previous_miles: Decimal,
        current_miles: Decimal,
        completed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.GOAL_COMPLETED
                if completed
                else AuditEventType.GOAL_PROGRESS_RECOMPUTED
            ),
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=(
                "Goal reached its target"
                if completed
                else f"Goal progress recomputed: {current_miles} miles"
            ),
            details={
                "previous_miles": str(previous_miles),
                "current_miles": str(current_miles),
            },
        )

    @staticmethod
    def goal_deleted(
        goal_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_DELETED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Mileage goal deleted",
            is_user_action=True,
        )

    @staticmethod
    def analysis_computed(
        goal_count: int,
        trips_ready: int,
        trips_soon: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_COMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="analysis",
            correlation_id=correlation_id,
            description=f"Analysed {goal_count} goal(s)",
            details={
                "trips_ready": trips_ready,
                "trips_soon": trips_soon,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
