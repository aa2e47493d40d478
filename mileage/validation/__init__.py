"""Rule validation package."""

from mileage.validation.validator import RuleValidator, miles_per_home_unit

__all__ = ["RuleValidator", "miles_per_home_unit"]
