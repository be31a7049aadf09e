"""
Test helpers: timestamps, event builders and a fake price provider.
"""

from datetime import datetime, timedelta
from typing import Optional

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def at(day: int, hours: int = 0) -> datetime:
    """Timestamp ``day`` days (and ``hours`` hours) after the base time."""
    return BASE_TIME + timedelta(days=day, hours=hours)


class FakePriceProvider:
    """Price provider returning fixed quotes; unknown symbols have no price."""

    def __init__(self, prices):
        self.prices = {k.upper(): v for k, v in prices.items()}
        self.requested = []

    def get_current_price(self, symbol: str) -> Optional[float]:
        self.requested.append(symbol)
        return self.prices.get(symbol.upper())


def purchase(owner, symbol, quantity, unit_price, day, **extra):
    """Event dict for LedgerService.append_transaction."""
    return {
        'owner': owner,
        'asset_symbol': symbol,
        'kind': 'buy',
        'quantity': quantity,
        'unit_price': unit_price,
        'timestamp': at(day),
        **extra,
    }


def sale(owner, symbol, quantity, unit_price, day, currency="USDT", method="crypto", **extra):
    """Sale event dict, settled in a stable-value currency by default."""
    return {
        'owner': owner,
        'asset_symbol': symbol,
        'kind': 'sell',
        'quantity': quantity,
        'unit_price': unit_price,
        'timestamp': at(day),
        'payment_method': method,
        'payment_currency': currency,
        **extra,
    }
