"""
Two-Stage Rule Validation

DESIGN DECISION: Rule configuration is validated in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Earning rate and threshold are positive
- Currency is a supported ISO code
- Existing miles are not negative

STAGE 2 - SEMANTIC VALIDATION:
- Existing miles only on the domestic rule of a card
- Unusually generous earning rates are flagged

Stage 2 is skipped if stage 1 fails. Warnings never block a rule;
errors raise InvalidRuleError carrying every issue found.

IMPORTANT: Validation NEVER silently fixes values.
"""

from decimal import Decimal
from typing import Optional

from mileage.config import get_settings
from mileage.errors import InvalidRuleError
from mileage.models.mileage import (
    PurchaseType,
    RuleConfig,
    RuleValidationResult,
    ValidationIssue,
)


class RuleValidator:
    """Validates rule wizard configuration before it is stored."""

    def __init__(self, supported_currencies: Optional[list[str]] = None):
        self._settings = get_settings().app
        self._currencies = [
            code.upper()
            for code in (supported_currencies or self._settings.supported_currencies_list)
        ]

    def _validate_schema(self, config: RuleConfig) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if config.unit_threshold <= 0:
            issues.append(ValidationIssue(
                field="unit_threshold",
                issue_type="invalid_value",
                message="Spend threshold must be greater than zero",
                severity="error",
                suggested_fix="Enter the amount that earns the miles, e.g. 1 or 4",
            ))

        if config.miles_per_unit <= 0:
            issues.append(ValidationIssue(
                field="miles_per_unit",
                issue_type="invalid_value",
                message="Miles per threshold must be greater than zero",
                severity="error",
            ))

        if config.currency not in self._currencies:
            issues.append(ValidationIssue(
                field="currency",
                issue_type="unsupported",
                message=f"Currency {config.currency} is not supported",
                severity="error",
                suggested_fix=f"Use one of: {', '.join(self._currencies)}",
            ))

        if config.existing_miles < 0:
            issues.append(ValidationIssue(
                field="existing_miles",
                issue_type="invalid_value",
                message="Existing miles cannot be negative",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        config: RuleConfig,
        purchase_type: PurchaseType,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if purchase_type == PurchaseType.INTERNATIONAL and config.existing_miles > 0:
            issues.append(ValidationIssue(
                field="existing_miles",
                issue_type="misplaced",
                message="Existing miles belong on the card's domestic rule only",
                severity="error",
                suggested_fix="Enter existing miles on the domestic rule",
            ))

        max_rate = self._settings.max_reasonable_miles_per_unit
        rate = miles_per_home_unit(config)
        if rate > max_rate:
            issues.append(ValidationIssue(
                field="miles_per_unit",
                issue_type="suspicious_value",
                message=f"{rate:.2f} miles per {config.currency} 1 seems unusually high",
                severity="warning",
                suggested_fix="Check the rate against the card's terms",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        config: RuleConfig,
        purchase_type: PurchaseType,
    ) -> RuleValidationResult:
        """Run both stages and return every issue found."""
        schema_valid, issues = self._validate_schema(config)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(config, purchase_type)
            issues.extend(semantic_issues)

        return RuleValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
        )

    def ensure_valid(
        self,
        config: RuleConfig,
        purchase_type: PurchaseType,
    ) -> RuleValidationResult:
        """Validate and raise InvalidRuleError on any error-level issue."""
        result = self.validate(config, purchase_type)
        if result.has_errors:
            messages = "; ".join(
                issue.message for issue in result.issues if issue.severity == "error"
            )
            raise InvalidRuleError(f"Invalid {purchase_type.value} rule: {messages}", result.issues)
        return result


def miles_per_home_unit(config: RuleConfig) -> Decimal:
    """Earning rate normalized to one unit of the rule's currency."""
    if config.unit_threshold <= 0:
        return Decimal("0")
    return config.miles_per_unit / config.unit_threshold
