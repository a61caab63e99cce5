"""
Currency conversion context.

Holds the user's display currency and a live ExchangeRateTable. One
instance is created per application session and passed to whatever
needs it.
"""

import random
from typing import Optional

import structlog

from moneytrackr.currency.rates import (
    BASE_CURRENCY,
    SUPPORTED_CURRENCIES,
    ExchangeRateTable,
)
from moneytrackr.services.storage.local import LocalStore


logger = structlog.get_logger(__name__)

CURRENCY_KEY = "currency"


class CurrencyConverter:
    """Current-currency state plus conversion and formatting helpers."""

    def __init__(
        self,
        local_store: Optional[LocalStore] = None,
        rates: Optional[ExchangeRateTable] = None,
        rng: Optional[random.Random] = None,
    ):
        self._local = local_store
        self._rates = rates or ExchangeRateTable()
        self._rng = rng
        self.is_loading = False
        self.current_currency = BASE_CURRENCY

        saved = self._local.get(CURRENCY_KEY) if self._local is not None else None
        if saved in SUPPORTED_CURRENCIES:
            self.current_currency = saved

    @property
    def exchange_rates(self) -> dict[str, float]:
        return self._rates.rates

    def set_currency(self, currency: str) -> bool:
        """Switch the display currency. Unsupported codes are ignored."""
        if currency not in SUPPORTED_CURRENCIES:
            logger.warning("unsupported_currency_ignored", currency=currency)
            return False
        self.current_currency = currency
        if self._local is not None:
            self._local.set(CURRENCY_KEY, currency)
        return True

    def convert_amount(self, amount: float, from_currency: str = BASE_CURRENCY) -> float:
        """Convert ``amount`` into the current currency."""
        return self._rates.convert(amount, from_currency, self.current_currency)

    def format_amount(self, amount: float, currency: Optional[str] = None) -> str:
        return self._rates.format(amount, currency or self.current_currency)

    async def refresh_rates(self) -> dict[str, float]:
        """Refresh the rate table. Failures are logged and leave rates unchanged."""
        self.is_loading = True
        try:
            rates = self._rates.update_exchange_rates(self._rng)
            logger.info("exchange_rates_refreshed", rates=rates)
            return rates
        except Exception as e:
            logger.error("exchange_rate_refresh_failed", error=str(e))
            return self._rates.rates
        finally:
            self.is_loading = False
