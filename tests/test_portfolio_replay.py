"""
Tests for the in-memory portfolio replay (Average-Cost semantics).
"""

import math
import random

import pytest

from models import HoldingOrigin, PaymentMethod, TransactionKind
from services.portfolio import PortfolioReconstructor, weighted_average


@pytest.fixture
def reconstructor(stable_values):
    return PortfolioReconstructor(stable_values)


def test_purchases_build_weighted_average(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 10, 10.0, day=0),
        make_tx("buy", "X", 10, 20.0, day=1),
    ])

    holding = result.get("X")
    assert holding.quantity == pytest.approx(20)
    assert holding.average_price == pytest.approx(15)
    assert holding.origin == HoldingOrigin.PURCHASED


def test_weighted_average_invariant(reconstructor, make_tx):
    purchases = [(3.5, 101.0), (0.25, 87.4), (12, 93.1), (1, 250.0), (7.75, 11.0)]
    transactions = [make_tx("buy", "X", q, p, day=i) for i, (q, p) in enumerate(purchases)]

    holding = reconstructor.replay(transactions).get("X")

    assert holding.average_price * holding.quantity == pytest.approx(sum(q * p for q, p in purchases))


def test_airdrop_dilutes_average(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 10, 10.0, day=0),
        make_tx("airdrop", "X", 10, day=1),
    ])

    holding = result.get("X")
    assert holding.quantity == pytest.approx(20)
    assert holding.average_price == pytest.approx(5)


def test_first_zero_cost_acquisition_sets_origin(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("airdrop", "A", 5, day=0),
        make_tx("farming", "F", 2, day=0),
    ])

    assert result.get("A").origin == HoldingOrigin.AIRDROPPED
    assert result.get("A").average_price == 0
    assert result.get("F").origin == HoldingOrigin.FARMED


def test_farming_keeps_existing_category(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 1, 10.0, day=0, category="DeFi"),
        make_tx("farming", "X", 1, day=1, category="Rewards"),
        make_tx("buy", "Y", 1, 10.0, day=0, category="L1"),
        make_tx("buy", "Y", 1, 10.0, day=1, category="L2"),
    ])

    assert result.get("X").category == "DeFi"
    assert result.get("Y").category == "L2"


def test_sale_keeps_average(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 10, 10.0, day=0),
        make_tx("sell", "X", 4, 50.0, day=1),
    ])

    holding = result.get("X")
    assert holding.quantity == pytest.approx(6)
    assert holding.average_price == pytest.approx(10)


def test_crossing_below_zero_resets_average_to_sale_price(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 5, 10.0, day=0),
        make_tx("sell", "X", 8, 30.0, day=1),
    ])

    holding = result.get("X")
    assert holding.quantity == pytest.approx(-3)
    assert holding.average_price == pytest.approx(30)


def test_sale_from_negative_position_keeps_average(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 5, 10.0, day=0),
        make_tx("sell", "X", 8, 30.0, day=1),
        make_tx("sell", "X", 2, 40.0, day=2),
    ])

    holding = result.get("X")
    assert holding.quantity == pytest.approx(-5)
    assert holding.average_price == pytest.approx(30)


def test_sale_without_holding_opens_negative_position(reconstructor, make_tx):
    holding = reconstructor.replay([make_tx("sell", "X", 5, 12.0, day=0)]).get("X")

    assert holding.quantity == pytest.approx(-5)
    assert holding.average_price == pytest.approx(12)


def test_stable_value_sale_credits_currency_and_emits_leg(reconstructor, make_tx):
    sell = make_tx("sell", "X", 5, 30.0, day=2, payment_method="crypto", payment_currency="usdt")
    result = reconstructor.replay([
        make_tx("buy", "X", 10, 10.0, day=0),
        make_tx("buy", "X", 10, 20.0, day=1),
        sell,
    ])

    usdt = result.get("USDT")
    assert usdt.quantity == pytest.approx(150)
    assert usdt.average_price == 1.0
    assert usdt.origin == HoldingOrigin.STABLE_VALUE
    assert usdt.category == "stablecoin"

    assert len(result.synthetic_legs) == 1
    leg = result.synthetic_legs[0]
    assert leg.synthetic is True
    assert leg.origin_transaction_id == sell.id
    assert leg.kind == TransactionKind.PURCHASE
    assert leg.asset_symbol == "USDT"
    assert leg.quantity == pytest.approx(150)
    assert leg.payment_method == PaymentMethod.CRYPTO
    assert leg.payment_currency == "X"
    assert leg.timestamp == sell.timestamp


def test_stable_value_upsert_pins_average(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "USDT", 100, 0.98, day=0),
        make_tx("buy", "X", 1, 10.0, day=0),
        make_tx("sell", "X", 1, 50.0, day=1, payment_method="crypto", payment_currency="USDT"),
    ])

    usdt = result.get("USDT")
    assert usdt.quantity == pytest.approx(150)
    assert usdt.average_price == 1.0


@pytest.mark.parametrize("method, currency", [
    ("bank_transfer", "USDT"),
    ("crypto", "BTC"),
    ("crypto", None),
])
def test_non_qualifying_sale_has_no_conversion(reconstructor, make_tx, method, currency):
    result = reconstructor.replay([
        make_tx("buy", "X", 10, 10.0, day=0),
        make_tx("sell", "X", 5, 30.0, day=1, payment_method=method, payment_currency=currency),
    ])

    assert result.synthetic_legs == []
    assert result.get("USDT") is None
    assert result.get("BTC") is None


def test_synthetic_legs_are_not_replayed(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 10, 10.0, day=0),
        make_tx("sell", "X", 5, 30.0, day=1, payment_method="crypto", payment_currency="USDT"),
        make_tx("buy", "USDT", 150, 1.0, day=1, synthetic=True),
    ])

    assert result.get("USDT").quantity == pytest.approx(150)
    assert result.processed == 2


def test_non_finite_average_is_sanitized(reconstructor, make_tx, caplog):
    with caplog.at_level("WARNING"):
        result = reconstructor.replay([
            make_tx("sell", "X", 5, 10.0, day=0),
            make_tx("buy", "X", 5, 10.0, day=1),
        ])

    holding = result.get("X")
    assert holding.quantity == pytest.approx(0)
    assert holding.average_price == 0.0
    assert result.sanitized == ["X"]
    assert "anomalous average price" in caplog.text


def test_zero_quantity_holdings_are_kept(reconstructor, make_tx):
    result = reconstructor.replay([
        make_tx("buy", "X", 5, 10.0, day=0),
        make_tx("sell", "X", 5, 12.0, day=1),
    ])

    assert [h.asset_symbol for h in result.holdings] == ["X"]
    assert result.get("X").quantity == pytest.approx(0)


def test_ties_replay_in_insertion_order(reconstructor, make_tx):
    transactions = [
        make_tx("buy", "X", 5, 10.0, day=0),
        make_tx("sell", "X", 8, 30.0, day=0),
        make_tx("buy", "X", 10, 20.0, day=0),
    ]
    expected = reconstructor.replay(transactions).get("X")

    for seed in range(5):
        shuffled = list(transactions)
        random.Random(seed).shuffle(shuffled)
        holding = reconstructor.replay(shuffled).get("X")
        assert holding.quantity == expected.quantity
        assert holding.average_price == expected.average_price

    # buy 5@10, sell 8 crosses to -3 at 30, buy 10@20 -> (-90 + 200) / 7
    assert expected.average_price == pytest.approx(110 / 7)


def test_replay_is_deterministic(reconstructor, make_tx):
    transactions = [
        make_tx("buy", "X", 10, 10.0, day=0),
        make_tx("airdrop", "X", 3, day=1),
        make_tx("sell", "X", 4, 30.0, day=2, payment_method="crypto", payment_currency="USDC"),
    ]

    first = reconstructor.replay(transactions)
    second = reconstructor.replay(transactions)

    assert [(h.asset_symbol, h.quantity, h.average_price) for h in first.holdings] == \
        [(h.asset_symbol, h.quantity, h.average_price) for h in second.holdings]


def test_weighted_average_of_empty_position_is_nan():
    assert math.isnan(weighted_average(-5, 10.0, 5, 10.0))
