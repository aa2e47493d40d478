"""
Currency Normalization

The engine never sources exchange rates itself. It consumes a
CurrencyNormalizer: convert(amount, from_currency, to_currency).

RateSnapshotConverter is the default implementation: every rate is
quoted as "units of currency per one unit of the base currency", so a
conversion goes amount -> base -> target. Settings provide a fallback
snapshot for when the application has not fetched live rates.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from mileage.config import get_settings


class CurrencyNormalizer(ABC):
    """Converts amounts between ISO currency codes."""

    @abstractmethod
    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """
        Convert an amount.

        Must return the input unchanged when the codes match.
        """
        pass


class RateSnapshotConverter(CurrencyNormalizer):
    """Converts through a base currency using a fixed rate snapshot."""

    def __init__(
        self,
        rates: Optional[dict[str, Decimal]] = None,
        base_currency: Optional[str] = None,
    ):
        settings = get_settings().currency
        self._base = (base_currency or settings.base_currency).upper()
        snapshot = rates if rates is not None else settings.fallback_rates
        self._rates = {code.upper(): Decimal(rate) for code, rate in snapshot.items()}
        self._rates.setdefault(self._base, Decimal("1"))

        for code, rate in self._rates.items():
            if rate <= 0:
                raise ValueError(f"Exchange rate for {code} must be positive")

    @property
    def base_currency(self) -> str:
        return self._base

    @property
    def rates(self) -> dict[str, Decimal]:
        return dict(self._rates)

    def _rate(self, currency: str) -> Decimal:
        try:
            return self._rates[currency]
        except KeyError:
            raise ValueError(f"No exchange rate for currency: {currency}") from None

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        from_code = from_currency.upper()
        to_code = to_currency.upper()
        if from_code == to_code:
            return amount

        amount_in_base = amount / self._rate(from_code)
        return amount_in_base * self._rate(to_code)
