"""Currency table, conversion and the per-session currency context."""

from moneytrackr.currency.converter import CurrencyConverter
from moneytrackr.currency.rates import (
    BASE_CURRENCY,
    SUPPORTED_CURRENCIES,
    Currency,
    CurrencyError,
    ExchangeRateTable,
    convert_currency,
    format_currency,
    get_currency_symbol,
    is_supported,
)

__all__ = [
    "BASE_CURRENCY",
    "SUPPORTED_CURRENCIES",
    "Currency",
    "CurrencyConverter",
    "CurrencyError",
    "ExchangeRateTable",
    "convert_currency",
    "format_currency",
    "get_currency_symbol",
    "is_supported",
]
