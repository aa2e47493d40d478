"""
Rule Store

Holds per-card mileage-earning rules keyed by (owner, card, purchase type).

INVARIANTS:
- At most one rule per (owner_id, card_id, purchase_type).
- A second ACTIVE rule for a key is rejected with DuplicateRuleError.
  An inactive rule for the key is replaced in place (same id), which
  is what makes "deactivate, then add a new rule" legal.
- existing_miles lives only on the domestic rule of a card.
- Bulk toggle and delete are all-or-nothing: unknown ids fail the
  whole call before anything is written.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog

from mileage.errors import DuplicateRuleError, NotFoundError
from mileage.models.mileage import (
    MileageRule,
    PurchaseType,
    RateConfig,
    RuleConfig,
    RuleGroup,
    utcnow,
)
from mileage.rules.grouper import group_rules, index_by_card
from mileage.scope import OwnerFilter, owner_set
from mileage.services.storage import RULES_COLLECTION, RecordStore
from mileage.validation import RuleValidator


logger = structlog.get_logger(__name__)


class RuleStore:
    """Persistence and invariants for mileage rules."""

    def __init__(
        self,
        store: RecordStore,
        validator: Optional[RuleValidator] = None,
    ):
        self._store = store
        self._validator = validator or RuleValidator()

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_record(rule: MileageRule) -> dict:
        return rule.model_dump(mode="json")

    @staticmethod
    def _from_record(record: dict) -> MileageRule:
        return MileageRule.model_validate(record)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_rule(self, rule_id: UUID) -> Optional[MileageRule]:
        record = self._store.get(RULES_COLLECTION, str(rule_id))
        return self._from_record(record) if record else None

    def _rule_for_key(
        self,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: PurchaseType,
    ) -> Optional[MileageRule]:
        records = self._store.query(
            RULES_COLLECTION,
            owner_id=owner_id,
            card_id=card_id,
            purchase_type=purchase_type.value,
        )
        if not records:
            return None
        # More than one would mean the store was written around this class
        rules = sorted((self._from_record(r) for r in records), key=lambda r: r.created_at)
        return rules[0]

    def find_active_rule(
        self,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: PurchaseType,
    ) -> Optional[MileageRule]:
        """Return the active rule for the key, or None."""
        rule = self._rule_for_key(owner_id, card_id, purchase_type)
        if rule is None or not rule.is_active:
            return None
        return rule

    def list_rules(self, owner: OwnerFilter, active_only: bool = False) -> list[MileageRule]:
        """Rules for one owner or a whole scope, oldest first."""
        fields = {"owner_id": owner_set(owner)}
        if active_only:
            fields["is_active"] = True
        rules = [self._from_record(r) for r in self._store.query(RULES_COLLECTION, **fields)]
        rules.sort(key=lambda r: (r.created_at, r.purchase_type.value))
        return rules

    def rules_for_card(self, owner_id: str, card_id: Optional[str]) -> list[MileageRule]:
        records = self._store.query(RULES_COLLECTION, owner_id=owner_id, card_id=card_id)
        return [self._from_record(r) for r in records]

    def groups(self, owner: OwnerFilter) -> list[RuleGroup]:
        """Card-level view of every rule in scope."""
        return group_rules(self.list_rules(owner))

    def card_rule_ids(self, owner_id: str, card_id: Optional[str]) -> list[UUID]:
        """Ids of a card's rules, resolved through the grouping index."""
        index = index_by_card(self.rules_for_card(owner_id, card_id))
        rule_ids = index.get((owner_id, card_id))
        if not rule_ids:
            raise NotFoundError("card rule", [card_id])
        return rule_ids

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _prepare(
        self,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: PurchaseType,
        config: RuleConfig,
    ) -> tuple[MileageRule, bool]:
        """
        Validate and build the rule to write.

        Returns: (rule, replaced_existing)
        """
        self._validator.ensure_valid(config, purchase_type)

        existing = self._rule_for_key(owner_id, card_id, purchase_type)
        if existing is not None and existing.is_active:
            raise DuplicateRuleError(owner_id, card_id, purchase_type.value)

        now = utcnow()
        fields = {
            "owner_id": owner_id,
            "card_id": card_id,
            "bank_name": config.bank_name,
            "card_brand": config.card_brand,
            "purchase_type": purchase_type,
            "currency": config.currency,
            "miles_per_unit": config.miles_per_unit,
            "unit_threshold": config.unit_threshold,
            "existing_miles": config.existing_miles,
            "is_active": config.is_active,
            "updated_at": now,
        }
        if existing is None:
            return MileageRule(created_at=now, **fields), False
        return MileageRule(id=existing.id, created_at=existing.created_at, **fields), True

    def upsert_rule(
        self,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: PurchaseType,
        config: RuleConfig,
    ) -> MileageRule:
        """
        Create the rule for (owner, card, purchase type).

        Raises:
            DuplicateRuleError: an active rule already exists for the key
            InvalidRuleError: the configuration failed validation
        """
        rule, replaced = self._prepare(owner_id, card_id, purchase_type, config)
        self._store.put(RULES_COLLECTION, str(rule.id), self._to_record(rule))
        logger.info(
            "rule_saved",
            rule_id=str(rule.id),
            owner_id=owner_id,
            card_id=card_id,
            purchase_type=purchase_type.value,
            replaced=replaced,
        )
        return rule

    def configure_card(
        self,
        owner_id: str,
        card_id: Optional[str],
        bank_name: str,
        card_brand: str,
        domestic: RateConfig,
        international: Optional[RateConfig] = None,
        existing_miles: Decimal = Decimal("0"),
    ) -> list[MileageRule]:
        """
        Two-step wizard: earning model (bank/brand) then rates.

        Writes the domestic rule, carrying existing_miles, and optionally
        the international counterpart with existing_miles fixed at zero.
        Both rules are validated before either is written.
        """
        configs = [(
            PurchaseType.DOMESTIC,
            RuleConfig(
                bank_name=bank_name,
                card_brand=card_brand,
                currency=domestic.currency,
                miles_per_unit=domestic.miles_per_unit,
                unit_threshold=domestic.unit_threshold,
                existing_miles=existing_miles,
            ),
        )]
        if international is not None:
            configs.append((
                PurchaseType.INTERNATIONAL,
                RuleConfig(
                    bank_name=bank_name,
                    card_brand=card_brand,
                    currency=international.currency,
                    miles_per_unit=international.miles_per_unit,
                    unit_threshold=international.unit_threshold,
                    existing_miles=Decimal("0"),
                ),
            ))

        prepared = [
            self._prepare(owner_id, card_id, purchase_type, config)[0]
            for purchase_type, config in configs
        ]
        self._store.put_many(
            RULES_COLLECTION,
            {str(rule.id): self._to_record(rule) for rule in prepared},
        )
        logger.info(
            "card_configured",
            owner_id=owner_id,
            card_id=card_id,
            rule_ids=[str(rule.id) for rule in prepared],
        )
        return prepared

    def _load_all(self, rule_ids: Iterable[UUID]) -> list[MileageRule]:
        wanted = list(dict.fromkeys(rule_ids))
        rules, missing = [], []
        for rule_id in wanted:
            rule = self.get_rule(rule_id)
            if rule is None:
                missing.append(rule_id)
            else:
                rules.append(rule)
        if missing:
            raise NotFoundError("rule", missing)
        return rules

    def toggle_active(self, rule_ids: Iterable[UUID]) -> list[MileageRule]:
        """
        Flip is_active on every rule as one batch write.

        Raises:
            NotFoundError: any id is unknown (nothing is written)
        """
        now = utcnow()
        toggled = [
            rule.model_copy(update={"is_active": not rule.is_active, "updated_at": now})
            for rule in self._load_all(rule_ids)
        ]
        self._store.put_many(
            RULES_COLLECTION,
            {str(rule.id): self._to_record(rule) for rule in toggled},
        )
        return toggled

    def set_active(self, rule_ids: Iterable[UUID], is_active: bool) -> list[MileageRule]:
        """Set every rule to the same state as one batch write."""
        now = utcnow()
        updated = [
            rule.model_copy(update={"is_active": is_active, "updated_at": now})
            for rule in self._load_all(rule_ids)
        ]
        self._store.put_many(
            RULES_COLLECTION,
            {str(rule.id): self._to_record(rule) for rule in updated},
        )
        return updated

    def toggle_card(self, owner_id: str, card_id: Optional[str]) -> list[MileageRule]:
        """
        Toggle a card's rules together.

        A fully active card is switched off; a partly or fully inactive
        card is switched on, so the pair always ends in the same state.
        """
        rule_ids = self.card_rule_ids(owner_id, card_id)
        group = group_rules(self._load_all(rule_ids))[0]
        return self.set_active(rule_ids, not group.all_active)

    def delete_rules(self, rule_ids: Iterable[UUID]) -> int:
        """
        Hard delete.

        Raises:
            NotFoundError: any id is unknown (nothing is deleted)
        """
        rules = self._load_all(rule_ids)
        deleted = self._store.delete_by_ids(RULES_COLLECTION, [str(rule.id) for rule in rules])
        logger.info("rules_deleted", rule_ids=[str(rule.id) for rule in rules])
        return deleted

    def delete_card(self, owner_id: str, card_id: Optional[str]) -> int:
        """Delete a card's domestic and international rules together."""
        return self.delete_rules(self.card_rule_ids(owner_id, card_id))
