"""
Program Balance Pool

Balances reported by connected loyalty programs. They already include
transferred and bonus miles, so this pool is reported next to the
rule-derived miles and never added to them.
"""

from decimal import Decimal
from typing import Iterable

from mileage.models.mileage import (
    MileageOverview,
    MileageRule,
    ProgramBalance,
    ProgramBalanceSummary,
)
from mileage.scope import OwnerFilter, owner_set


def summarize_program_balances(
    balances: Iterable[ProgramBalance],
    scope: OwnerFilter,
) -> ProgramBalanceSummary:
    """Totals of the external pool for the owners in scope."""
    owners = owner_set(scope)
    visible = [balance for balance in balances if balance.owner_id in owners]
    return ProgramBalanceSummary(
        total_miles=sum((b.balance_miles for b in visible), Decimal("0")),
        total_value=sum((b.balance_value or Decimal("0") for b in visible), Decimal("0")),
        program_count=len(visible),
    )


def build_overview(
    rules: Iterable[MileageRule],
    accrued_miles: Decimal,
    balances: Iterable[ProgramBalance],
    scope: OwnerFilter,
) -> MileageOverview:
    """
    Dashboard totals for a scope.

    rule_miles is the existing-miles snapshots of the rules in scope plus
    ledger accrual; program balances are summarized separately.
    """
    owners = owner_set(scope)
    existing = sum(
        (rule.existing_miles for rule in rules if rule.owner_id in owners),
        Decimal("0"),
    )
    return MileageOverview(
        rule_miles=existing + accrued_miles,
        existing_miles=existing,
        accrued_miles=accrued_miles,
        programs=summarize_program_balances(balances, owners),
    )
