"""
Shared fixtures.

Everything runs in memory with a fixed exchange-rate snapshot, so no
test depends on external services or on the wall clock.
"""

from decimal import Decimal

import pytest

from mileage.accrual import AccrualCalculator, HistoryLedger
from mileage.audit import AuditLogger
from mileage.goals import GoalTracker
from mileage.models.mileage import MileageRule, PurchaseType, RuleConfig
from mileage.orchestrator import MileageService
from mileage.rules import RuleStore
from mileage.services.currency import RateSnapshotConverter
from mileage.services.storage import InMemoryAuditStorage, InMemoryRecordStore


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def converter():
    # 1 BRL = 0.2 USD
    return RateSnapshotConverter(
        rates={"BRL": Decimal("1"), "USD": Decimal("0.2"), "EUR": Decimal("0.17")},
        base_currency="BRL",
    )


@pytest.fixture
def calculator(converter):
    return AccrualCalculator(converter=converter, home_currency="BRL")


@pytest.fixture
def rule_store(store):
    return RuleStore(store)


@pytest.fixture
def ledger(store, rule_store, calculator):
    return HistoryLedger(store, rule_store, calculator)


@pytest.fixture
def tracker(store, rule_store, ledger):
    return GoalTracker(store, rule_store, ledger)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def service(store, audit_storage, converter):
    return MileageService(store, AuditLogger(audit_storage), converter)


@pytest.fixture
def brl_config():
    """One mile per BRL spent."""
    return RuleConfig(
        bank_name="Itaú",
        card_brand="Visa Infinite",
        currency="BRL",
        miles_per_unit=Decimal("1"),
        unit_threshold=Decimal("1"),
    )


@pytest.fixture
def make_rule():
    def _make(**overrides) -> MileageRule:
        fields = {
            "owner_id": "alice",
            "card_id": "card-1",
            "purchase_type": PurchaseType.DOMESTIC,
            "currency": "BRL",
            "miles_per_unit": Decimal("1"),
            "unit_threshold": Decimal("1"),
        }
        fields.update(overrides)
        return MileageRule(**fields)
    return _make
