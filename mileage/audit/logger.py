"""
Audit Logger

DESIGN DECISION: Every rule change, accrual and goal change is logged.
This provides:
1. Traceability of how a goal's progress came to be
2. Debugging capability
3. A user-visible history of configuration changes

The audit logger:
- Gracefully handles failures (a broken audit store never fails a spend)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from mileage.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from mileage.models.mileage import MileageGoal, MileageHistoryRecord, MileageRule
from mileage.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence and user visibility), when given
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("mileage.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_rule_saved(
        self,
        rule: MileageRule,
        replaced: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.rule_created(
            rule_id=rule.id,
            owner_id=rule.owner_id,
            card_id=rule.card_id,
            purchase_type=rule.purchase_type.value,
            replaced=replaced,
            correlation_id=correlation_id,
        ))

    def log_rule_rejected(
        self,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.rule_rejected(
            owner_id=owner_id,
            card_id=card_id,
            purchase_type=purchase_type,
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_rules_toggled(
        self,
        rules: list[MileageRule],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.rules_toggled(
            rule_ids=[rule.id for rule in rules],
            active_states={str(rule.id): rule.is_active for rule in rules},
            correlation_id=correlation_id,
        ))

    def log_rules_deleted(
        self,
        rule_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.rules_deleted(
            rule_ids=rule_ids,
            correlation_id=correlation_id,
        ))

    def log_accrual_recorded(
        self,
        record: MileageHistoryRecord,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.accrual_recorded(
            record_id=record.id,
            owner_id=record.owner_id,
            card_id=record.card_id,
            amount_spent=record.amount_spent,
            miles_earned=record.miles_earned,
            correlation_id=correlation_id,
        ))

    def log_accrual_skipped(
        self,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.accrual_skipped(
            owner_id=owner_id,
            card_id=card_id,
            purchase_type=purchase_type,
            correlation_id=correlation_id,
        ))

    def log_accrual_rejected(
        self,
        owner_id: str,
        card_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.accrual_rejected(
            owner_id=owner_id,
            card_id=card_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_goal_created(
        self,
        goal: MileageGoal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.goal_created(
            goal_id=goal.id,
            owner_id=goal.owner_id,
            source_card_id=goal.source_card_id,
            initial_miles=goal.initial_miles,
            correlation_id=correlation_id,
        ))

    def log_goal_link_rejected(
        self,
        owner_id: str,
        source_card_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.goal_link_rejected(
            owner_id=owner_id,
            source_card_id=source_card_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_goal_recomputed(
        self,
        goal: MileageGoal,
        previous_miles: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.goal_recomputed(
            goal_id=goal.id,
            previous_miles=previous_miles,
            current_miles=goal.current_miles,
            completed=goal.is_completed,
            correlation_id=correlation_id,
        ))

    def log_goal_deleted(
        self,
        goal_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.goal_deleted(
            goal_id=goal_id,
            correlation_id=correlation_id,
        ))

    def log_analysis(
        self,
        goal_count: int,
        trips_ready: int,
        trips_soon: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.analysis_computed(
            goal_count=goal_count,
            trips_ready=trips_ready,
            trips_soon=trips_soon,
            correlation_id=correlation_id,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., recording a spend).
    Pass it through all subsequent operations.
    """
    return uuid4()
