"""
Accrual Calculation

milesEarned = floor((converted_amount / unit_threshold) * miles_per_unit)

CRITICAL: Rounding is always floor. The ledger must never over-credit,
and stored history depends on this exact policy, so it must not change.

The calculator is a pure function of (amount, rule, rate snapshot):
repeated calls with the same inputs always give the same result.
"""

from decimal import ROUND_FLOOR, Decimal
from typing import Optional

from pydantic import BaseModel

from mileage.config import get_settings
from mileage.errors import InvalidRuleError
from mileage.models.mileage import MileageRule
from mileage.services.currency import CurrencyNormalizer, RateSnapshotConverter


class AccrualPreview(BaseModel):
    """What a spend would earn, shown in the rule wizard."""

    amount_spent: Decimal
    home_currency: str
    converted_amount: Decimal
    rule_currency: str
    miles_earned: Decimal


class AccrualCalculator:
    """Converts a home-currency spend into miles under a rule."""

    def __init__(
        self,
        converter: Optional[CurrencyNormalizer] = None,
        home_currency: Optional[str] = None,
    ):
        self._converter = converter or RateSnapshotConverter()
        self._home_currency = (home_currency or get_settings().app.home_currency).upper()

    @property
    def home_currency(self) -> str:
        return self._home_currency

    @staticmethod
    def _check_rule(rule: MileageRule) -> None:
        if not rule.is_active:
            raise InvalidRuleError(f"Rule {rule.id} is inactive and cannot accrue miles")
        if rule.unit_threshold <= 0:
            raise InvalidRuleError(f"Rule {rule.id} has a non-positive spend threshold")
        if rule.miles_per_unit <= 0:
            raise InvalidRuleError(f"Rule {rule.id} has a non-positive earning rate")

    def _convert(self, amount: Decimal, rule: MileageRule) -> Decimal:
        if amount < 0:
            raise ValueError("Amount spent cannot be negative")
        return self._converter.convert(amount, self._home_currency, rule.currency)

    def compute_miles(self, amount_spent: Decimal, rule: MileageRule) -> Decimal:
        """
        Miles earned for a spend in home currency.

        Raises:
            InvalidRuleError: rule inactive or with a non-positive rate/threshold
            ValueError: negative amount
        """
        self._check_rule(rule)
        converted = self._convert(amount_spent, rule)
        raw = (converted * rule.miles_per_unit) / rule.unit_threshold
        return raw.to_integral_value(rounding=ROUND_FLOOR)

    def preview(self, amount_spent: Decimal, rule: MileageRule) -> AccrualPreview:
        """Same calculation as compute_miles, with the intermediate amount."""
        miles = self.compute_miles(amount_spent, rule)
        return AccrualPreview(
            amount_spent=amount_spent,
            home_currency=self._home_currency,
            converted_amount=self._convert(amount_spent, rule),
            rule_currency=rule.currency,
            miles_earned=miles,
        )
