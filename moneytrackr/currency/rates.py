"""
Currency table, conversion and formatting.

Rates are expressed relative to USD (the base unit). The module-level
``convert_currency`` / ``format_currency`` helpers work from the static
default rates; live, refreshable rates belong to an ``ExchangeRateTable``
instance so no module state is ever mutated.
"""

import random
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


BASE_CURRENCY = "USD"

# Largest relative change applied by a simulated refresh (±1%)
RATE_FLUCTUATION = 0.01


class CurrencyError(ValueError):
    """Unknown or unsupported currency code."""
    pass


class Currency(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=3, max_length=3)
    symbol: str
    name: str
    rate: float = Field(..., gt=0, description="Units per 1 USD")
    decimal_places: int = Field(..., ge=0, le=4)


SUPPORTED_CURRENCIES: dict[str, Currency] = {
    "USD": Currency(code="USD", symbol="$", name="US Dollar", rate=1.0, decimal_places=2),
    "EUR": Currency(code="EUR", symbol="€", name="Euro", rate=0.85, decimal_places=2),
    "GBP": Currency(code="GBP", symbol="£", name="British Pound", rate=0.73, decimal_places=2),
    "JPY": Currency(code="JPY", symbol="¥", name="Japanese Yen", rate=110.0, decimal_places=0),
    "IDR": Currency(code="IDR", symbol="Rp", name="Indonesian Rupiah", rate=15000.0, decimal_places=0),
}


def is_supported(code: str) -> bool:
    return code in SUPPORTED_CURRENCIES


def get_currency_symbol(code: str) -> str:
    currency = SUPPORTED_CURRENCIES.get(code)
    return currency.symbol if currency else "$"


def _format(amount: float, currency: Currency) -> str:
    # Sign is the caller's job: only the magnitude is rendered
    return f"{currency.symbol}{abs(amount):,.{currency.decimal_places}f}"


class ExchangeRateTable:
    """Mutable set of exchange rates, seeded from SUPPORTED_CURRENCIES."""

    def __init__(self, rates: Optional[dict[str, float]] = None):
        self._rates = dict(rates) if rates else {
            code: currency.rate for code, currency in SUPPORTED_CURRENCIES.items()
        }

    @property
    def rates(self) -> dict[str, float]:
        return dict(self._rates)

    def rate(self, code: str) -> float:
        try:
            return self._rates[code]
        except KeyError:
            raise CurrencyError(f"Unsupported currency: {code}") from None

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        """Convert through the base unit: amount / rate[from] * rate[to]."""
        if from_currency == to_currency:
            return amount
        return amount / self.rate(from_currency) * self.rate(to_currency)

    def format(self, amount: float, currency_code: str) -> str:
        """
        Format the absolute value with the currency's decimals and symbol.

        Negative amounts render without a minus sign; callers that need a
        sign prepend their own. Unknown codes render the bare number.
        """
        currency = SUPPORTED_CURRENCIES.get(currency_code)
        if currency is None:
            return str(amount)
        return _format(amount, currency)

    def update_exchange_rates(self, rng: Optional[random.Random] = None) -> dict[str, float]:
        """
        Simulated refresh: nudge every non-base rate by up to ±1%.

        Stands in for a rate-provider call; returns the new rates.
        """
        rng = rng or random.Random()
        for code in self._rates:
            if code == BASE_CURRENCY:
                continue
            fluctuation = (rng.random() - 0.5) * 2 * RATE_FLUCTUATION
            self._rates[code] *= 1 + fluctuation
        return self.rates


def convert_currency(amount: float, from_currency: str, to_currency: str) -> float:
    """Convert with the static default rates."""
    if from_currency == to_currency:
        return amount
    try:
        source = SUPPORTED_CURRENCIES[from_currency]
        target = SUPPORTED_CURRENCIES[to_currency]
    except KeyError as e:
        raise CurrencyError(f"Unsupported currency: {e.args[0]}") from None
    return amount / source.rate * target.rate


def format_currency(amount: float, currency_code: str) -> str:
    """Format ``amount`` as ``<symbol><absolute value>``; see ExchangeRateTable.format."""
    currency = SUPPORTED_CURRENCIES.get(currency_code)
    if currency is None:
        return str(amount)
    return _format(amount, currency)
