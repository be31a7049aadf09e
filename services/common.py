"""
Common utilities and shared functions.
Symbol normalization, stable-value recognition and the realized-gain qualification rule.
"""

import logging
from typing import Iterable, Optional

from config import get_settings
from models import PaymentMethod, TransactionKind

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: Optional[str]) -> str:
    """
    Normalize an asset or currency symbol for comparisons.

    Args:
        symbol: Raw symbol (e.g., " btc ")

    Returns:
        Upper-case symbol without surrounding whitespace ("" for None)
    """
    if not symbol:
        return ""
    return symbol.strip().upper()


def safe_percentage(part: float, whole: float) -> float:
    """Return part/whole as a percentage, 0 when whole is not positive."""
    return (part / whole) * 100 if whole > 0 else 0.0


class StableValueRegistry:
    """
    Membership check for currencies pegged 1:1 to the unit of account.
    Defaults to the configured set of stable-value currencies.
    """

    def __init__(self, symbols: Optional[Iterable[str]] = None,
                 price: Optional[float] = None):
        settings = get_settings()
        if symbols is None:
            symbols = settings.stable_value_set
        self._symbols = frozenset(normalize_symbol(s) for s in symbols if s)
        self.price = settings.stable_value_price if price is None else price

    def is_stable_value(self, symbol: Optional[str]) -> bool:
        """Check whether a symbol is a recognized stable-value currency."""
        return normalize_symbol(symbol) in self._symbols


def is_stable_value_settlement(payment_method: Optional[PaymentMethod],
                               payment_currency: Optional[str],
                               registry: StableValueRegistry) -> bool:
    """Check whether a payment leg settles in a recognized stable-value currency."""
    if payment_method != PaymentMethod.CRYPTO:
        return False
    if not payment_currency:
        return False
    return registry.is_stable_value(payment_currency)


def is_realized_gain_transaction(kind: TransactionKind,
                                 payment_method: Optional[PaymentMethod],
                                 payment_currency: Optional[str],
                                 registry: StableValueRegistry) -> bool:
    """
    Check whether a transaction produces a realized-gain record.

    Only sales settled in crypto with a recognized stable-value currency qualify.
    """
    if kind != TransactionKind.SALE:
        return False
    return is_stable_value_settlement(payment_method, payment_currency, registry)
