"""
Domain Errors

Every error here is a recoverable, user-facing condition. The engine
raises them to the caller (the CRUD orchestration layer) which turns
them into a validation message. None are swallowed inside the engine.

Arithmetic outcomes such as zero velocity or "no promotion" are NOT
errors; they are represented as absent values on the analysis models.
"""

from typing import Optional

from mileage.models.mileage import ValidationIssue


class MileageError(Exception):
    """Base exception for mileage engine errors."""
    pass


class DuplicateRuleError(MileageError):
    """An active rule already exists for this card and purchase type."""

    def __init__(self, owner_id: str, card_id: Optional[str], purchase_type: str):
        self.owner_id = owner_id
        self.card_id = card_id
        self.purchase_type = purchase_type
        super().__init__(
            f"An active {purchase_type} rule already exists for card {card_id}. "
            "Deactivate or delete it before adding another."
        )


class InvalidRuleError(MileageError):
    """Rule cannot be saved or cannot accrue (bad rate, inactive, wrong card)."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        self.issues = issues or []
        super().__init__(message)


class CardAlreadyLinkedError(MileageError):
    """The card already backs an incomplete goal."""

    def __init__(self, card_id: str, goal_name: str):
        self.card_id = card_id
        self.goal_name = goal_name
        super().__init__(
            f"Card {card_id} is already linked to the goal '{goal_name}'. "
            "Its existing miles can only count once."
        )


class NotFoundError(MileageError):
    """An operation referenced ids that do not exist (or are not visible)."""

    def __init__(self, entity_type: str, missing_ids: list):
        self.entity_type = entity_type
        self.missing_ids = list(missing_ids)
        ids = ", ".join(str(entity_id) for entity_id in self.missing_ids)
        super().__init__(f"{entity_type.capitalize()} not found: {ids}")
