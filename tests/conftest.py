"""
Shared fixtures: a throwaway SQLite database per test and transaction builders.
"""

from itertools import count

import pytest

import config
import db_engine
from models import PaymentMethod, Transaction, TransactionKind
from services import LedgerService, MarketDataService, StableValueRegistry

from helpers import at


@pytest.fixture
def database(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'ledgerfolio_test.db'}")
    config.reload_settings()
    db_engine.reset_engine()
    db_engine.init_db()
    MarketDataService.clear_cache()
    yield
    db_engine.reset_engine()


@pytest.fixture
def ledger(database) -> LedgerService:
    return LedgerService()


@pytest.fixture
def stable_values() -> StableValueRegistry:
    return StableValueRegistry(symbols=["USDT", "USDC", "DAI"], price=1.0)


@pytest.fixture
def make_tx():
    """Build unsaved Transaction rows with increasing ids (for pure replay/calculator tests)."""
    ids = count(1)

    def _make(kind, symbol, quantity, unit_price=0.0, day=0, *,
              total_amount=None, payment_method=None, payment_currency=None,
              category=None, synthetic=False, owner="alice", tx_id=None, timestamp=None):
        kind = TransactionKind(kind)
        if total_amount is None:
            total_amount = 0.0 if kind.is_zero_cost else quantity * unit_price
        return Transaction(
            id=tx_id if tx_id is not None else next(ids),
            owner=owner,
            asset_symbol=symbol,
            kind=kind,
            quantity=quantity,
            unit_price=0.0 if kind.is_zero_cost else unit_price,
            total_amount=total_amount,
            timestamp=timestamp or at(day),
            payment_method=PaymentMethod(payment_method) if payment_method else None,
            payment_currency=payment_currency,
            category=category,
            synthetic=synthetic,
        )

    return _make
