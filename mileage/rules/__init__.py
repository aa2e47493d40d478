"""Mileage rule storage and grouping package."""

from mileage.rules.grouper import CardKey, card_key, group_rules, index_by_card
from mileage.rules.store import RuleStore

__all__ = ["CardKey", "RuleStore", "card_key", "group_rules", "index_by_card"]
