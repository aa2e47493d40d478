"""
Tests for the history ledger.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from mileage.errors import InvalidRuleError, NotFoundError
from mileage.models.mileage import PurchaseType, RuleConfig
from mileage.scope import OwnerScope


def at(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def rule(rule_store, brl_config):
    return rule_store.upsert_rule("alice", "card-1", PurchaseType.DOMESTIC, brl_config)


class TestRecordAccrual:
    """Tests for appending accrual records."""

    def test_records_computed_miles(self, ledger, rule):
        record = ledger.record_accrual("alice", "card-1", rule.id, Decimal("150.75"), at(2026, 1, 10))

        assert record.miles_earned == Decimal("150")
        assert record.amount_spent == Decimal("150.75")
        assert [r.id for r in ledger.list_history("alice")] == [record.id]

    def test_unknown_rule(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.record_accrual("alice", "card-1", uuid4(), Decimal("10"), at(2026, 1, 10))

    def test_rule_of_another_card(self, ledger, rule):
        with pytest.raises(InvalidRuleError):
            ledger.record_accrual("alice", "card-2", rule.id, Decimal("10"), at(2026, 1, 10))

    def test_rule_of_another_owner(self, ledger, rule):
        with pytest.raises(InvalidRuleError):
            ledger.record_accrual("bob", "card-1", rule.id, Decimal("10"), at(2026, 1, 10))

    def test_inactive_rule_writes_nothing(self, ledger, rule_store, rule):
        rule_store.toggle_active([rule.id])

        with pytest.raises(InvalidRuleError):
            ledger.record_accrual("alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 10))
        assert ledger.list_history("alice") == []

    def test_same_transaction_recorded_once(self, ledger, rule):
        first = ledger.record_accrual(
            "alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 10),
            source_transaction_id="tx-1",
        )
        second = ledger.record_accrual(
            "alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 10),
            source_transaction_id="tx-1",
        )

        assert second.id == first.id
        assert len(ledger.list_history("alice")) == 1

    def test_records_are_immutable(self, ledger, rule):
        record = ledger.record_accrual("alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 10))
        with pytest.raises(ValidationError):
            record.miles_earned = Decimal("999")

    def test_later_rule_change_is_not_retroactive(self, ledger, rule_store, rule):
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("100"), at(2026, 1, 10))

        rule_store.toggle_active([rule.id])
        rule_store.upsert_rule(
            "alice", "card-1", PurchaseType.DOMESTIC,
            RuleConfig(currency="BRL", miles_per_unit=Decimal("5"), unit_threshold=Decimal("1")),
        )

        assert ledger.sum_miles_since("alice") == Decimal("100")


class TestAggregation:
    """Tests for sums, ordering and velocity."""

    def test_newest_first_regardless_of_arrival(self, ledger, rule):
        late = ledger.record_accrual("alice", "card-1", rule.id, Decimal("30"), at(2026, 3, 1))
        early = ledger.record_accrual("alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 1))
        middle = ledger.record_accrual("alice", "card-1", rule.id, Decimal("20"), at(2026, 2, 1))

        assert [r.id for r in ledger.list_history("alice")] == [late.id, middle.id, early.id]

    def test_sum_since(self, ledger, rule):
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 1))
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("20"), at(2026, 2, 1))

        assert ledger.sum_miles_since("alice") == Decimal("30")
        assert ledger.sum_miles_since("alice", "card-1", since=at(2026, 1, 15)) == Decimal("20")

    def test_sum_accepts_naive_since(self, ledger, rule):
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("20"), at(2026, 2, 1))
        assert ledger.sum_miles_since("alice", since=datetime(2026, 1, 1)) == Decimal("20")

    def test_sum_filters_card(self, ledger, rule_store, rule, brl_config):
        other = rule_store.upsert_rule("alice", "card-2", PurchaseType.DOMESTIC, brl_config)
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 1))
        ledger.record_accrual("alice", "card-2", other.id, Decimal("25"), at(2026, 1, 1))

        assert ledger.sum_miles_since("alice", "card-2") == Decimal("25")
        assert ledger.sum_miles_since("alice") == Decimal("35")

    def test_sum_over_scope(self, ledger, rule_store, rule, brl_config):
        bob_rule = rule_store.upsert_rule("bob", "card-9", PurchaseType.DOMESTIC, brl_config)
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 1))
        ledger.record_accrual("bob", "card-9", bob_rule.id, Decimal("5"), at(2026, 1, 1))

        scope = OwnerScope(owner_ids=frozenset({"alice", "bob"}))
        assert ledger.sum_miles_since(scope) == Decimal("15")
        assert ledger.sum_miles_since("bob") == Decimal("5")

    def test_velocity_without_history(self, ledger):
        assert ledger.monthly_velocity("alice", as_of=at(2026, 3, 31)) == Decimal("0")

    def test_velocity_divides_by_month_span(self, ledger, rule):
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("100"), at(2026, 1, 10))
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("200"), at(2026, 3, 5))

        velocity = ledger.monthly_velocity("alice", lookback_months=3, as_of=at(2026, 3, 31))
        assert velocity == Decimal("100")

    def test_velocity_single_month(self, ledger, rule):
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("200"), at(2026, 3, 5))
        velocity = ledger.monthly_velocity("alice", "card-1", lookback_months=3, as_of=at(2026, 3, 31))
        assert velocity == Decimal("200")

    def test_velocity_ignores_old_history(self, ledger, rule):
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("900"), at(2025, 6, 1))
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("60"), at(2026, 3, 5))

        velocity = ledger.monthly_velocity("alice", lookback_months=3, as_of=at(2026, 3, 31))
        assert velocity == Decimal("60")


class TestPurge:
    """Tests for the administrative cascade delete."""

    def test_purge_for_rules(self, ledger, rule_store, rule, brl_config):
        other = rule_store.upsert_rule("alice", "card-2", PurchaseType.DOMESTIC, brl_config)
        ledger.record_accrual("alice", "card-1", rule.id, Decimal("10"), at(2026, 1, 1))
        ledger.record_accrual("alice", "card-2", other.id, Decimal("25"), at(2026, 1, 1))

        assert ledger.purge_for_rules([rule.id]) == 1
        assert [r.rule_id for r in ledger.list_history("alice")] == [other.id]
