"""
Portfolio service for rebuilding holdings from the ledger and valuing them.
Holdings are never edited in place: every write replays the owner's full history.
"""

import logging
import math
from typing import Callable, Dict, List, Optional, Protocol
from datetime import datetime
from dataclasses import dataclass, field

import pandas as pd
from sqlmodel import Session

from models import (
    Holding, HoldingOrigin, PaymentMethod, Portfolio, Transaction, TransactionKind,
)
from repositories import PortfolioRepository, TransactionRepository
from services.common import (
    StableValueRegistry, is_stable_value_settlement, normalize_symbol, safe_percentage,
)

logger = logging.getLogger(__name__)

STABLE_VALUE_CATEGORY = "stablecoin"

# Origin recorded when an acquisition creates a holding
ACQUISITION_ORIGINS = {
    TransactionKind.PURCHASE: HoldingOrigin.PURCHASED,
    TransactionKind.AIRDROP: HoldingOrigin.AIRDROPPED,
    TransactionKind.FARMING: HoldingOrigin.FARMED,
}

# Lookback windows for the approximate performance timeline
PERFORMANCE_PERIODS = {
    "1m": pd.DateOffset(months=1),
    "3m": pd.DateOffset(months=3),
    "6m": pd.DateOffset(months=6),
    "1y": pd.DateOffset(years=1),
    "all": None,
}
MAX_TIMELINE_POINTS = 30


class PriceProvider(Protocol):
    """Anything that can quote the current price of an asset."""

    def get_current_price(self, symbol: str) -> Optional[float]:
        ...


@dataclass
class HoldingState:
    """Mutable holding used while replaying the ledger."""
    asset_symbol: str
    quantity: float
    average_price: float
    category: Optional[str] = None
    origin: HoldingOrigin = HoldingOrigin.PURCHASED

    def to_row(self) -> Holding:
        return Holding(
            asset_symbol=self.asset_symbol,
            quantity=self.quantity,
            average_price=self.average_price,
            category=self.category,
            origin=self.origin
        )


@dataclass
class ReplayResult:
    """Holdings and audit legs produced by one replay."""
    holdings: List[HoldingState] = field(default_factory=list)
    synthetic_legs: List[Transaction] = field(default_factory=list)
    processed: int = 0
    sanitized: List[str] = field(default_factory=list)

    def get(self, symbol: str) -> Optional[HoldingState]:
        symbol = normalize_symbol(symbol)
        for holding in self.holdings:
            if holding.asset_symbol == symbol:
                return holding
        return None


def weighted_average(old_quantity: float, old_average: float,
                     quantity: float, price: float) -> float:
    """
    Weighted average cost after adding ``quantity`` units at ``price``.

    Returns NaN when the combined quantity is zero; replay sanitation turns it into 0.
    """
    new_quantity = old_quantity + quantity
    if new_quantity == 0:
        return math.nan
    return (old_quantity * old_average + quantity * price) / new_quantity


class PortfolioReconstructor:
    """
    Full-replay engine for an owner's holdings (Average-Cost semantics).

    Replays user transactions in ascending timestamp order, ties in insertion
    order. Synthetic conversion legs are never replay input: the sale that
    spawned them applies their effect directly.
    """

    def __init__(self, stable_values: Optional[StableValueRegistry] = None):
        self.stable_values = stable_values or StableValueRegistry()
        self._handlers: Dict[TransactionKind, Callable[[Dict[str, HoldingState], Transaction, str], None]] = {
            TransactionKind.PURCHASE: self._apply_acquisition,
            TransactionKind.AIRDROP: self._apply_acquisition,
            TransactionKind.FARMING: self._apply_acquisition,
            TransactionKind.SALE: self._apply_sale,
        }

    def replay(self, transactions: List[Transaction]) -> ReplayResult:
        """
        Rebuild holdings from ledger events without touching storage.

        Args:
            transactions: Events of one owner, any order

        Returns:
            ReplayResult with holdings in first-seen order and the synthetic legs to persist
        """
        ordered = sorted(
            (tx for tx in transactions if not tx.synthetic),
            key=lambda tx: (tx.timestamp, tx.id is None, tx.id or 0)
        )

        holdings: Dict[str, HoldingState] = {}
        result = ReplayResult()

        for tx in ordered:
            symbol = normalize_symbol(tx.asset_symbol)
            kind = TransactionKind(tx.kind)
            self._handlers[kind](holdings, tx, symbol)

            if kind == TransactionKind.SALE:
                leg = self._apply_conversion(holdings, tx, symbol)
                if leg is not None:
                    result.synthetic_legs.append(leg)
            result.processed += 1

        result.sanitized = self._sanitize(holdings)
        result.holdings = list(holdings.values())
        return result

    def recompute(self, owner: str, session: Session) -> Portfolio:
        """
        Discard and rebuild the owner's holdings inside the caller's unit.

        Previous synthetic legs are deleted and regenerated, so repeated runs
        leave the ledger and the holdings unchanged.

        Args:
            owner: Portfolio owner
            session: Unit-of-work session; nothing is committed here

        Returns:
            The rewritten Portfolio row
        """
        transactions = TransactionRepository.get_history(owner, session=session)
        discarded = TransactionRepository.delete_synthetic_legs(owner, session=session)
        logger.info(
            f"Rebuilding portfolio for {owner}: {len(transactions)} ledger events, "
            f"{discarded} synthetic legs discarded"
        )

        result = self.replay(transactions)

        for leg in result.synthetic_legs:
            TransactionRepository.add(leg, session=session)

        portfolio = PortfolioRepository.replace_holdings(
            owner, [h.to_row() for h in result.holdings], session=session
        )
        logger.info(
            f"Portfolio saved for {owner}: {len(result.holdings)} holdings, "
            f"{len(result.synthetic_legs)} synthetic legs"
        )
        return portfolio

    @staticmethod
    def _apply_acquisition(holdings: Dict[str, HoldingState], tx: Transaction, symbol: str):
        kind = TransactionKind(tx.kind)
        price = 0.0 if kind.is_zero_cost else tx.unit_price
        holding = holdings.get(symbol)

        if holding is None:
            holdings[symbol] = HoldingState(
                asset_symbol=symbol,
                quantity=tx.quantity,
                average_price=price,
                category=tx.category,
                origin=ACQUISITION_ORIGINS[kind]
            )
            return

        holding.average_price = weighted_average(
            holding.quantity, holding.average_price, tx.quantity, price
        )
        holding.quantity += tx.quantity

        # Farming rewards keep the category of the position they accrue to
        if tx.category and kind != TransactionKind.FARMING:
            holding.category = tx.category

    @staticmethod
    def _apply_sale(holdings: Dict[str, HoldingState], tx: Transaction, symbol: str):
        holding = holdings.get(symbol)

        if holding is None:
            holdings[symbol] = HoldingState(
                asset_symbol=symbol,
                quantity=-tx.quantity,
                average_price=tx.unit_price,
                category=tx.category,
                origin=HoldingOrigin.PURCHASED
            )
            return

        old_quantity = holding.quantity
        holding.quantity -= tx.quantity

        # Crossing from long to short resets the average to the sale price
        if old_quantity > 0 and holding.quantity < 0:
            holding.average_price = tx.unit_price

    def _apply_conversion(self, holdings: Dict[str, HoldingState], tx: Transaction,
                          symbol: str) -> Optional[Transaction]:
        """Credit sale proceeds received in a stable-value currency and build the audit leg."""
        if not is_stable_value_settlement(tx.payment_method, tx.payment_currency, self.stable_values):
            return None

        currency = normalize_symbol(tx.payment_currency)
        amount = tx.total_amount
        price = self.stable_values.price
        holding = holdings.get(currency)

        if holding is None:
            holdings[currency] = HoldingState(
                asset_symbol=currency,
                quantity=amount,
                average_price=price,
                category=STABLE_VALUE_CATEGORY,
                origin=HoldingOrigin.STABLE_VALUE
            )
        else:
            holding.quantity += amount
            holding.average_price = price

        return Transaction(
            owner=tx.owner,
            asset_symbol=currency,
            kind=TransactionKind.PURCHASE,
            quantity=amount,
            unit_price=price,
            total_amount=amount * price,
            timestamp=tx.timestamp,
            payment_method=PaymentMethod.CRYPTO,
            payment_currency=symbol,
            category=STABLE_VALUE_CATEGORY,
            notes=f"Auto-generated from sale of {tx.quantity} {symbol}",
            synthetic=True,
            origin_transaction_id=tx.id
        )

    @staticmethod
    def _sanitize(holdings: Dict[str, HoldingState]) -> List[str]:
        """Reset non-finite or negative average prices to 0."""
        sanitized = []
        for holding in holdings.values():
            average = holding.average_price
            if average is None or not math.isfinite(average) or average < 0:
                logger.warning(
                    f"Corrected anomalous average price for {holding.asset_symbol}: "
                    f"was {average}, set to 0"
                )
                holding.average_price = 0.0
                sanitized.append(holding.asset_symbol)
        return sanitized


class PortfolioService:
    """
    Read-side service for portfolio holdings and valuation.
    Prices come from an injected provider (default: MarketDataService).
    """

    @staticmethod
    def _holding_to_dict(holding: Holding) -> Dict:
        return {
            'symbol': holding.asset_symbol,
            'quantity': holding.quantity,
            'average_price': holding.average_price,
            'category': holding.category,
            'origin': HoldingOrigin(holding.origin).value,
        }

    @staticmethod
    def get_holdings(owner: str) -> List[Holding]:
        """Get the owner's holdings in replay order (empty before the first write)."""
        return PortfolioRepository.get_holdings(owner)

    @staticmethod
    def get_portfolio(owner: str) -> Dict:
        """
        Get the owner's derived portfolio.

        Returns:
            Dictionary with owner, last reconstruction time and holdings
        """
        portfolio = PortfolioRepository.get_by_owner(owner)
        holdings = PortfolioService.get_holdings(owner) if portfolio else []
        return {
            'owner': owner,
            'last_updated': portfolio.last_updated if portfolio else None,
            'holdings': [PortfolioService._holding_to_dict(h) for h in holdings],
        }

    @staticmethod
    def _fetch_prices(symbols: List[str],
                      price_provider: Optional[PriceProvider]) -> Dict[str, Optional[float]]:
        if price_provider is None:
            from services.market_data import MarketDataService
            return MarketDataService.get_current_prices_batch(symbols)

        prices = {}
        for symbol in symbols:
            try:
                prices[symbol] = price_provider.get_current_price(symbol)
            except Exception as e:
                logger.error(f"Error fetching price for {symbol}: {e}")
                prices[symbol] = None
        return prices

    @staticmethod
    def get_portfolio_value(owner: str,
                            price_provider: Optional[PriceProvider] = None,
                            stable_values: Optional[StableValueRegistry] = None) -> Dict:
        """
        Value the owner's holdings at current prices.

        Only holdings with a positive quantity are included. Stable-value
        holdings are valued at their fixed price without a quote.

        Args:
            owner: Portfolio owner
            price_provider: Object exposing get_current_price(symbol)
            stable_values: Stable-value registry (default: from settings)

        Returns:
            Dictionary with per-asset values and portfolio totals
        """
        stable_values = stable_values or StableValueRegistry()
        holdings = [h for h in PortfolioService.get_holdings(owner) if h.quantity > 0]

        if not holdings:
            return {
                'owner': owner,
                'total_value': 0.0,
                'total_investment': 0.0,
                'total_pnl': 0.0,
                'total_pnl_pct': 0.0,
                'assets': [],
            }

        quoted = [h.asset_symbol for h in holdings if not stable_values.is_stable_value(h.asset_symbol)]
        prices = PortfolioService._fetch_prices(quoted, price_provider)

        assets = []
        for holding in holdings:
            if stable_values.is_stable_value(holding.asset_symbol):
                current_price = stable_values.price
            else:
                current_price = prices.get(holding.asset_symbol) or 0.0

            current_value = holding.quantity * current_price
            investment_value = holding.quantity * holding.average_price
            pnl = current_value - investment_value

            assets.append({
                **PortfolioService._holding_to_dict(holding),
                'current_price': current_price,
                'current_value': round(current_value, 2),
                'investment_value': round(investment_value, 2),
                'pnl': round(pnl, 2),
                'pnl_pct': round(safe_percentage(pnl, investment_value), 2),
            })

        total_value = sum(a['current_value'] for a in assets)
        total_investment = sum(a['investment_value'] for a in assets)
        total_pnl = total_value - total_investment

        return {
            'owner': owner,
            'total_value': round(total_value, 2),
            'total_investment': round(total_investment, 2),
            'total_pnl': round(total_pnl, 2),
            'total_pnl_pct': round(safe_percentage(total_pnl, total_investment), 2),
            'assets': assets,
        }

    @staticmethod
    def get_portfolio_by_category(owner: str,
                                  price_provider: Optional[PriceProvider] = None) -> Dict:
        """Group valued holdings by category with per-category totals and weights."""
        valuation = PortfolioService.get_portfolio_value(owner, price_provider)
        if not valuation['assets']:
            return {'categories': [], 'total_value': 0.0, 'total_investment': 0.0, 'total_pnl': 0.0}

        df = pd.DataFrame(valuation['assets'])
        df['category'] = df['category'].fillna('Uncategorized')
        grouped = df.groupby('category', sort=True).agg(
            total_value=('current_value', 'sum'),
            total_investment=('investment_value', 'sum'),
            total_pnl=('pnl', 'sum'),
        )

        categories = []
        for name, row in grouped.iterrows():
            members = [a for a in valuation['assets'] if (a['category'] or 'Uncategorized') == name]
            categories.append({
                'name': name,
                'assets': members,
                'total_value': round(float(row['total_value']), 2),
                'total_investment': round(float(row['total_investment']), 2),
                'total_pnl': round(float(row['total_pnl']), 2),
                'pnl_pct': round(safe_percentage(float(row['total_pnl']), float(row['total_investment'])), 2),
                'portfolio_pct': round(safe_percentage(float(row['total_value']), valuation['total_value']), 2),
            })

        return {
            'categories': categories,
            'total_value': valuation['total_value'],
            'total_investment': valuation['total_investment'],
            'total_pnl': valuation['total_pnl'],
        }

    @staticmethod
    def get_distribution_by_origin(owner: str,
                                   price_provider: Optional[PriceProvider] = None) -> Dict:
        """Split the current value by holding origin (purchased, airdropped, farmed, stable value)."""
        valuation = PortfolioService.get_portfolio_value(owner, price_provider)
        if not valuation['assets']:
            return {'origins': [], 'total_value': 0.0}

        df = pd.DataFrame(valuation['assets'])
        grouped = df.groupby('origin', sort=True)['current_value'].sum()

        origins = []
        for origin, value in grouped.items():
            origins.append({
                'origin': origin,
                'value': round(float(value), 2),
                'percentage': round(safe_percentage(float(value), valuation['total_value']), 2),
                'assets': [a['symbol'] for a in valuation['assets'] if a['origin'] == origin],
            })

        return {'origins': origins, 'total_value': valuation['total_value']}

    @staticmethod
    def get_historical_performance(owner: str, period: str = "1y",
                                   price_provider: Optional[PriceProvider] = None) -> Dict:
        """
        Approximate the portfolio's value over time.

        No historical prices are used: the timeline interpolates linearly from
        zero toward today's valuation across the dates that carry transactions.

        Args:
            owner: Portfolio owner
            period: "1m", "3m", "6m", "1y" or "all" (unknown values fall back to "1y")
            price_provider: Object exposing get_current_price(symbol)

        Returns:
            Dictionary with the timeline points and current totals
        """
        offset = PERFORMANCE_PERIODS.get(period, PERFORMANCE_PERIODS["1y"])
        now = datetime.now()
        start = (pd.Timestamp(now) - offset).to_pydatetime() if offset is not None else None

        transactions = [
            tx for tx in TransactionRepository.get_history(owner, include_synthetic=True)
            if start is None or tx.timestamp >= start
        ]
        if not transactions:
            return {'timeline': [], 'total_investment': 0.0, 'current_value': 0.0, 'performance_pct': 0.0}

        current = PortfolioService.get_portfolio_value(owner, price_provider)

        dates = sorted({tx.timestamp.date() for tx in transactions})
        if now.date() not in dates:
            dates.append(now.date())
        step = max(1, len(dates) // MAX_TIMELINE_POINTS)

        timeline = []
        last_value = 0.0
        last_investment = 0.0
        for i in range(0, len(dates), step):
            day = dates[i]
            progress = i / len(dates)
            estimated_value = last_value + progress * (current['total_value'] - last_value)
            estimated_investment = last_investment + progress * (current['total_investment'] - last_investment)
            timeline.append({
                'date': day,
                'total_investment': round(estimated_investment, 2),
                'estimated_value': round(estimated_value, 2),
                'transactions': sum(1 for tx in transactions if tx.timestamp.date() <= day),
            })
            last_value = estimated_value
            last_investment = estimated_investment

        timeline.append({
            'date': now.date(),
            'total_investment': current['total_investment'],
            'estimated_value': current['total_value'],
            'transactions': len(transactions),
        })

        return {
            'timeline': timeline,
            'total_investment': current['total_investment'],
            'current_value': current['total_value'],
            'performance_pct': current['total_pnl_pct'],
        }
