"""
History Ledger

Append-only record of accrual events; the source of truth for "miles
earned over time" per owner, card and rule.

GUARANTEES:
- Records are never edited. miles_earned is whatever the calculator
  said at creation time; later rule changes are not retroactive.
- Sums and velocity are pure aggregations over the full record set,
  ordered by calculation_date, so backdated or out-of-order arrivals
  never corrupt them.
- Recording the same source transaction against the same rule twice
  returns the first record instead of appending a duplicate.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog

from mileage.accrual.calculator import AccrualCalculator
from mileage.config import get_settings
from mileage.errors import InvalidRuleError, NotFoundError
from mileage.models.mileage import MileageHistoryRecord, ensure_aware, utcnow
from mileage.periods import add_months, month_span
from mileage.rules import RuleStore
from mileage.scope import OwnerFilter, owner_set
from mileage.services.storage import HISTORY_COLLECTION, RecordStore


logger = structlog.get_logger(__name__)


class HistoryLedger:
    """Append-only accrual history."""

    def __init__(
        self,
        store: RecordStore,
        rule_store: RuleStore,
        calculator: Optional[AccrualCalculator] = None,
    ):
        self._store = store
        self._rules = rule_store
        self._calculator = calculator or AccrualCalculator()

    @staticmethod
    def _from_record(record: dict) -> MileageHistoryRecord:
        return MileageHistoryRecord.model_validate(record)

    def record_accrual(
        self,
        owner_id: str,
        card_id: Optional[str],
        rule_id: UUID,
        amount_spent: Decimal,
        calculation_date: datetime,
        source_transaction_id: Optional[str] = None,
    ) -> MileageHistoryRecord:
        """
        Compute miles for a spend and append the record.

        Raises:
            NotFoundError: unknown rule
            InvalidRuleError: rule inactive, invalid, or not this owner's card
        """
        rule = self._rules.get_rule(rule_id)
        if rule is None:
            raise NotFoundError("rule", [rule_id])
        if rule.owner_id != owner_id or rule.card_id != card_id:
            raise InvalidRuleError(
                f"Rule {rule_id} does not belong to card {card_id} of owner {owner_id}"
            )

        if source_transaction_id:
            existing = self._store.query(
                HISTORY_COLLECTION,
                rule_id=str(rule_id),
                source_transaction_id=source_transaction_id,
            )
            if existing:
                logger.info(
                    "accrual_already_recorded",
                    rule_id=str(rule_id),
                    source_transaction_id=source_transaction_id,
                )
                return self._from_record(existing[0])

        miles = self._calculator.compute_miles(amount_spent, rule)
        record = MileageHistoryRecord(
            owner_id=owner_id,
            card_id=card_id,
            rule_id=rule_id,
            amount_spent=amount_spent,
            miles_earned=miles,
            calculation_date=calculation_date,
            source_transaction_id=source_transaction_id,
        )
        self._store.put(HISTORY_COLLECTION, str(record.id), record.model_dump(mode="json"))
        logger.info(
            "accrual_recorded",
            record_id=str(record.id),
            owner_id=owner_id,
            card_id=card_id,
            miles_earned=str(miles),
        )
        return record

    def list_history(
        self,
        owner: OwnerFilter,
        card_id: Optional[str] = None,
    ) -> list[MileageHistoryRecord]:
        """Records in scope, newest calculation_date first. None card = every card."""
        fields = {"owner_id": owner_set(owner)}
        if card_id is not None:
            fields["card_id"] = card_id
        records = [self._from_record(r) for r in self._store.query(HISTORY_COLLECTION, **fields)]
        records.sort(key=lambda r: (r.calculation_date, r.created_at), reverse=True)
        return records

    def sum_miles_since(
        self,
        owner: OwnerFilter,
        card_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Decimal:
        """Total miles with calculation_date >= since (None = all history)."""
        if since is not None:
            since = ensure_aware(since)
        return sum(
            (
                record.miles_earned
                for record in self.list_history(owner, card_id)
                if since is None or record.calculation_date >= since
            ),
            Decimal("0"),
        )

    def monthly_velocity(
        self,
        owner: OwnerFilter,
        card_id: Optional[str] = None,
        lookback_months: Optional[int] = None,
        as_of: Optional[datetime] = None,
    ) -> Decimal:
        """
        Average miles per month over the lookback window.

        The total inside the window is divided by the number of calendar
        months between the earliest and latest record in it (at least 1).
        Returns 0 when there is no history in the window.
        """
        lookback = lookback_months or get_settings().app.velocity_lookback_months
        as_of = ensure_aware(as_of) if as_of else utcnow()
        window_start = add_months(as_of, -lookback)

        recent = [
            record
            for record in self.list_history(owner, card_id)
            if window_start <= record.calculation_date <= as_of
        ]
        if not recent:
            return Decimal("0")

        total = sum((record.miles_earned for record in recent), Decimal("0"))
        dates = [record.calculation_date for record in recent]
        span = max(1, month_span(min(dates), max(dates)))
        return total / Decimal(span)

    def purge_for_rules(self, rule_ids: Iterable[UUID]) -> int:
        """
        Administrative cascade delete of a removed rule's history.

        Not part of normal accrual flow.
        """
        records = self._store.query(HISTORY_COLLECTION, rule_id={str(rule_id) for rule_id in rule_ids})
        deleted = self._store.delete_by_ids(HISTORY_COLLECTION, [r["id"] for r in records])
        logger.warning("history_purged", record_count=deleted)
        return deleted
