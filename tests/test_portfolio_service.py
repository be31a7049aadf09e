"""
Tests for portfolio reads and valuation with an injected price provider.
"""

import pytest

from services import PortfolioService

from helpers import FakePriceProvider, purchase, sale


@pytest.fixture
def example_portfolio(ledger):
    ledger.append_transaction(purchase("alice", "X", 10, 10.0, day=0))
    ledger.append_transaction(purchase("alice", "X", 10, 20.0, day=1))
    ledger.append_transaction(sale("alice", "X", 5, 30.0, day=2))


def test_get_portfolio(example_portfolio):
    portfolio = PortfolioService.get_portfolio("alice")

    assert portfolio['last_updated'] is not None
    assert [h['symbol'] for h in portfolio['holdings']] == ["X", "USDT"]
    assert portfolio['holdings'][1]['origin'] == "stable_value"


def test_unknown_owner_has_empty_portfolio(database):
    portfolio = PortfolioService.get_portfolio("nobody")

    assert portfolio['holdings'] == []
    assert portfolio['last_updated'] is None


def test_portfolio_value(example_portfolio):
    provider = FakePriceProvider({"X": 20.0})

    value = PortfolioService.get_portfolio_value("alice", provider)

    assert "USDT" not in provider.requested
    x, usdt = value['assets']
    assert x['current_value'] == pytest.approx(300)
    assert x['investment_value'] == pytest.approx(225)
    assert x['pnl'] == pytest.approx(75)
    assert x['pnl_pct'] == pytest.approx(33.33)
    assert usdt['current_value'] == pytest.approx(150)
    assert value['total_value'] == pytest.approx(450)
    assert value['total_investment'] == pytest.approx(375)
    assert value['total_pnl_pct'] == pytest.approx(20)


def test_missing_price_values_at_zero(example_portfolio):
    value = PortfolioService.get_portfolio_value("alice", FakePriceProvider({}))

    x = value['assets'][0]
    assert x['current_price'] == 0
    assert x['pnl'] == pytest.approx(-225)


def test_non_positive_holdings_are_not_valued(ledger):
    ledger.append_transaction(sale("bob", "Z", 1, 5.0, day=0, method="bank_transfer", currency="EUR"))

    value = PortfolioService.get_portfolio_value("bob", FakePriceProvider({"Z": 5.0}))

    assert value['assets'] == []
    assert value['total_value'] == 0


def test_by_category(example_portfolio):
    result = PortfolioService.get_portfolio_by_category("alice", FakePriceProvider({"X": 20.0}))

    categories = {c['name']: c for c in result['categories']}
    assert categories['Uncategorized']['total_value'] == pytest.approx(300)
    assert categories['stablecoin']['total_value'] == pytest.approx(150)
    assert categories['stablecoin']['portfolio_pct'] == pytest.approx(33.33)


def test_distribution_by_origin(example_portfolio):
    result = PortfolioService.get_distribution_by_origin("alice", FakePriceProvider({"X": 20.0}))

    origins = {o['origin']: o for o in result['origins']}
    assert origins['purchased']['value'] == pytest.approx(300)
    assert origins['stable_value']['assets'] == ["USDT"]
    assert origins['stable_value']['percentage'] == pytest.approx(33.33)


def test_historical_performance_ends_at_current_value(example_portfolio):
    result = PortfolioService.get_historical_performance("alice", "all", FakePriceProvider({"X": 20.0}))

    timeline = result['timeline']
    assert timeline[0]['estimated_value'] == 0
    assert timeline[-1]['estimated_value'] == pytest.approx(450)
    assert timeline[-1]['total_investment'] == pytest.approx(375)
    assert result['performance_pct'] == pytest.approx(20)


def test_historical_performance_outside_window(example_portfolio):
    result = PortfolioService.get_historical_performance("alice", "1m", FakePriceProvider({"X": 20.0}))

    assert result['timeline'] == []
