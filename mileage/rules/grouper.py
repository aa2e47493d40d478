"""
Rule Grouping

A card usually has two rules, domestic and international, that the
user edits, toggles and deletes as one "card rule". This module turns a
flat rule list into those units.

DESIGN DECISION: Grouping is an explicit index (card -> rule ids)
rather than ad hoc filtering at each call site. The RuleStore bulk
operations use the same index, so "toggle/delete the card as a unit"
is enforced in one place.

Everything here is pure and recomputed on every read.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from mileage.models.mileage import (
    ActivityState,
    MileageRule,
    PurchaseType,
    RuleGroup,
)

# Rules are grouped per owner so two partners' unlinked rules never merge
CardKey = tuple[str, Optional[str]]

_TYPE_ORDER = {PurchaseType.DOMESTIC: 0, PurchaseType.INTERNATIONAL: 1}


def card_key(rule: MileageRule) -> CardKey:
    return (rule.owner_id, rule.card_id)


def index_by_card(rules: Iterable[MileageRule]) -> dict[CardKey, list[UUID]]:
    """Map each (owner, card) to the ids of its rules, domestic first."""
    buckets: dict[CardKey, list[MileageRule]] = defaultdict(list)
    for rule in rules:
        buckets[card_key(rule)].append(rule)

    return {
        key: [rule.id for rule in sorted(members, key=lambda r: _TYPE_ORDER[r.purchase_type])]
        for key, members in buckets.items()
    }


def _activity(members: list[MileageRule]) -> ActivityState:
    active = sum(1 for rule in members if rule.is_active)
    if active == len(members):
        return ActivityState.ALL
    if active == 0:
        return ActivityState.NONE
    return ActivityState.SOME


def group_rules(rules: Iterable[MileageRule]) -> list[RuleGroup]:
    """
    Build one RuleGroup per card.

    existing_miles is summed across the group even though only the
    domestic rule should carry a value.
    """
    by_id = {rule.id: rule for rule in rules}
    groups = []

    for (owner_id, card_id), rule_ids in index_by_card(by_id.values()).items():
        members = [by_id[rule_id] for rule_id in rule_ids]
        head = members[0]
        groups.append(RuleGroup(
            card_id=card_id,
            owner_id=owner_id,
            bank_name=head.bank_name,
            card_brand=head.card_brand,
            rule_ids=rule_ids,
            purchase_types=[rule.purchase_type for rule in members],
            activity=_activity(members),
            total_existing_miles=sum((rule.existing_miles for rule in members), Decimal("0")),
            rates={rule.purchase_type: rule.rate for rule in members},
        ))

    groups.sort(key=lambda g: (g.bank_name.lower(), g.card_brand.lower(), g.owner_id, g.card_id or ""))
    return groups
