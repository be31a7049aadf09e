"""
Tests for the analytical cost-basis view and investment breakdown.
"""

import pytest

from repositories import RealizedGainRepository
from services import AnalyticsService, TransactionValidationError

from helpers import purchase, sale


@pytest.fixture
def two_lots(ledger):
    ledger.append_transaction(purchase("alice", "X", 10, 10.0, day=0, payment_method="bank_transfer", payment_currency="EUR"))
    ledger.append_transaction(purchase("alice", "X", 10, 20.0, day=1, payment_method="crypto", payment_currency="USDT"))
    return ledger.append_transaction(sale("alice", "X", 5, 30.0, day=2))


@pytest.mark.parametrize("method, expected", [
    ("fifo", 100.0),
    ("lifo", 50.0),
    ("average", 75.0),
])
def test_historical_view_by_method(two_lots, method, expected):
    report = AnalyticsService.get_realized_gains_historical("alice", method)

    x = next(a for a in report['assets'] if a['symbol'] == "X")
    assert report['method'] == method
    assert report['method_description']
    assert x['realized_gain'] == pytest.approx(expected)
    assert x['remaining_quantity'] == pytest.approx(15)
    assert x['sales'][0]['transaction_id'] == two_lots.id


def test_stored_gain_stays_average_cost(two_lots):
    AnalyticsService.get_realized_gains_historical("alice", "fifo")

    assert RealizedGainRepository.get_by_origin(two_lots.id).gain_loss == pytest.approx(75)


def test_synthetic_legs_are_lots_in_the_analytical_view(two_lots):
    report = AnalyticsService.get_realized_gains_historical("alice", "fifo")

    usdt = next(a for a in report['assets'] if a['symbol'] == "USDT")
    assert usdt['total_acquired'] == pytest.approx(150)


def test_default_method_comes_from_settings(two_lots):
    report = AnalyticsService.get_realized_gains_historical("alice")

    assert report['method'] == "fifo"
    assert report['total_realized_gain'] == pytest.approx(100)


def test_unknown_method_is_rejected(two_lots):
    with pytest.raises(TransactionValidationError):
        AnalyticsService.get_realized_gains_historical("alice", "hifo")


def test_insufficient_lot_is_skipped(ledger):
    ledger.append_transaction(purchase("alice", "Y", 3, 10.0, day=0))
    ledger.append_transaction(sale("alice", "Y", 5, 20.0, day=1, method="bank_transfer", currency="EUR"))

    report = AnalyticsService.get_realized_gains_historical("alice", "fifo")

    y = report['assets'][0]
    assert y['skipped_sales'] == 1
    assert y['sales'] == []
    assert report['total_realized_gain'] == 0


def test_investment_by_payment_method(two_lots, ledger):
    ledger.append_transaction(purchase("alice", "Y", 1, 100.0, day=3))

    breakdown = AnalyticsService.get_investment_by_payment_method("alice")

    assert breakdown['total_investment'] == pytest.approx(400)
    methods = {m['method']: m for m in breakdown['methods']}
    assert set(methods) == {"bank_transfer", "crypto", "other"}
    assert methods['bank_transfer']['percentage'] == pytest.approx(25)
    assert methods['crypto']['total'] == pytest.approx(200)
    assert methods['crypto']['currencies'][0]['currency'] == "USDT"
    assert methods['other']['currencies'][0]['currency'] == "N/A"


def test_investment_without_purchases(database):
    assert AnalyticsService.get_investment_by_payment_method("nobody") == {'total_investment': 0.0, 'methods': []}
