"""
Tests for the portfolio rebuild script.
"""

import pytest

from repositories import PortfolioRepository
from rebuild_portfolios import rebuild_portfolios

from helpers import purchase, sale


def test_rebuild_every_owner(ledger):
    ledger.append_transaction(purchase("alice", "X", 10, 10.0, day=0))
    ledger.append_transaction(sale("alice", "X", 4, 12.0, day=1))
    ledger.append_transaction(purchase("bob", "Y", 1, 5.0, day=0))

    assert rebuild_portfolios() == 2
    assert PortfolioRepository.get_holding("alice", "X").quantity == pytest.approx(6)
    assert PortfolioRepository.get_holding("alice", "USDT").quantity == pytest.approx(48)


def test_rebuild_single_owner(ledger):
    ledger.append_transaction(purchase("alice", "X", 1, 10.0, day=0))

    assert rebuild_portfolios(["alice"]) == 1
