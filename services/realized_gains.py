"""
Realized-gain service.
Maintains the derived gain/loss records of qualifying sales and answers aggregate queries.
"""

import logging
from typing import Dict, List, Optional

import pandas as pd
from sqlmodel import Session

from models import PeriodBucket, RealizedGain, RealizedGainFilter, Transaction, TransactionKind
from repositories import PortfolioRepository, RealizedGainRepository
from services.common import (
    StableValueRegistry, is_realized_gain_transaction, normalize_symbol, safe_percentage,
)
from services.errors import TransactionValidationError

logger = logging.getLogger(__name__)


class RealizedGainService:
    """
    Service for realized-gain records.

    Records always use the portfolio's Average-Cost at the time of the sale,
    whatever method the analytical view is asked for.
    """

    def __init__(self, stable_values: Optional[StableValueRegistry] = None):
        self.stable_values = stable_values or StableValueRegistry()

    def qualifies(self, transaction: Transaction) -> bool:
        """Check whether a transaction must carry a realized-gain record."""
        return is_realized_gain_transaction(
            TransactionKind(transaction.kind),
            transaction.payment_method,
            transaction.payment_currency,
            self.stable_values
        )

    def record_gain(self, sale: Transaction, session: Session) -> Optional[RealizedGain]:
        """
        Create the realized-gain record of a qualifying sale.

        Must run after the owner's portfolio was rebuilt in the same unit, so the
        holding's average price is current.

        Args:
            sale: Persisted sale transaction
            session: Unit-of-work session

        Returns:
            The new RealizedGain, or None if the transaction does not qualify
        """
        if not self.qualifies(sale):
            return None

        symbol = normalize_symbol(sale.asset_symbol)
        holding = PortfolioRepository.get_holding(sale.owner, symbol, session=session)
        cost_per_unit = holding.average_price if holding is not None else sale.unit_price

        total_cost_basis = sale.quantity * cost_per_unit
        proceeds = sale.total_amount
        gain_loss = proceeds - total_cost_basis

        gain = RealizedGain(
            owner=sale.owner,
            origin_transaction_id=sale.id,
            asset_symbol=symbol,
            target_currency=normalize_symbol(sale.payment_currency),
            is_stable_value=True,
            quantity_sold=sale.quantity,
            cost_basis_per_unit=cost_per_unit,
            sale_price=sale.unit_price,
            total_cost_basis=total_cost_basis,
            proceeds=proceeds,
            gain_loss=gain_loss,
            gain_loss_pct=safe_percentage(gain_loss, total_cost_basis),
            timestamp=sale.timestamp,
            category=sale.category,
            notes=sale.notes
        )
        RealizedGainRepository.add(gain, session=session)
        logger.info(
            f"Realized gain recorded for {sale.owner}: {sale.quantity} {symbol} "
            f"-> {gain.target_currency}, gain/loss {gain_loss:.2f}"
        )
        return gain

    def replace_for_transaction(self, transaction: Transaction,
                                session: Session) -> Optional[RealizedGain]:
        """Drop the record of an edited transaction and regenerate it if it still qualifies."""
        RealizedGainRepository.delete_by_origin(transaction.id, session=session)
        return self.record_gain(transaction, session)

    @staticmethod
    def remove_for_transaction(transaction_id: int, session: Session) -> int:
        """Drop the record of a deleted transaction."""
        return RealizedGainRepository.delete_by_origin(transaction_id, session=session)

    @staticmethod
    def get_realized_gains(owner: str,
                           filters: Optional[RealizedGainFilter] = None) -> List[RealizedGain]:
        """Get an owner's realized-gain records, newest first."""
        return RealizedGainRepository.find_all(owner, filters)

    @staticmethod
    def _to_frame(gains: List[RealizedGain]) -> pd.DataFrame:
        return pd.DataFrame([
            {
                'asset_symbol': g.asset_symbol,
                'quantity_sold': g.quantity_sold,
                'total_cost_basis': g.total_cost_basis,
                'proceeds': g.proceeds,
                'gain_loss': g.gain_loss,
                'gain_loss_pct': g.gain_loss_pct,
                'timestamp': pd.Timestamp(g.timestamp),
            }
            for g in gains
        ])

    @staticmethod
    def get_realized_gains_by_asset(owner: str,
                                    filters: Optional[RealizedGainFilter] = None) -> List[Dict]:
        """
        Break realized gains down per asset.

        Returns:
            List of per-asset dictionaries sorted by symbol
        """
        gains = RealizedGainRepository.find_all(owner, filters)
        if not gains:
            return []

        df = RealizedGainService._to_frame(gains)
        grouped = df.groupby('asset_symbol', sort=True).agg(
            total_gain_loss=('gain_loss', 'sum'),
            total_proceeds=('proceeds', 'sum'),
            total_cost_basis=('total_cost_basis', 'sum'),
            total_quantity_sold=('quantity_sold', 'sum'),
            avg_profit_percentage=('gain_loss_pct', 'mean'),
            transaction_count=('gain_loss', 'size'),
        )

        return [
            {
                'symbol': symbol,
                'total_gain_loss': float(row['total_gain_loss']),
                'total_proceeds': float(row['total_proceeds']),
                'total_cost_basis': float(row['total_cost_basis']),
                'total_quantity_sold': float(row['total_quantity_sold']),
                'avg_profit_percentage': float(row['avg_profit_percentage']),
                'transaction_count': int(row['transaction_count']),
            }
            for symbol, row in grouped.iterrows()
        ]

    @staticmethod
    def get_realized_gain_total(owner: str,
                                filters: Optional[RealizedGainFilter] = None) -> Dict:
        """
        Summarize realized gains with profitable/unprofitable counts.

        A break-even sale counts as unprofitable.

        Returns:
            Dictionary with totals, counts, percentages and the per-asset breakdown
        """
        gains = RealizedGainRepository.find_all(owner, filters)

        total_gain_loss = sum(g.gain_loss for g in gains)
        total_proceeds = sum(g.proceeds for g in gains)
        total_cost_basis = sum(g.total_cost_basis for g in gains)
        count = len(gains)
        profitable = sum(1 for g in gains if g.gain_loss > 0)
        unprofitable = count - profitable

        return {
            'total_gain_loss': total_gain_loss,
            'total_proceeds': total_proceeds,
            'total_cost_basis': total_cost_basis,
            'total_gain_loss_pct': safe_percentage(total_gain_loss, total_cost_basis),
            'transaction_count': count,
            'profitable_count': profitable,
            'unprofitable_count': unprofitable,
            'profitable_pct': safe_percentage(profitable, count),
            'unprofitable_pct': safe_percentage(unprofitable, count),
            'by_asset': RealizedGainService.get_realized_gains_by_asset(owner, filters),
        }

    @staticmethod
    def get_realized_gains_by_period(owner: str, bucket: str = "month",
                                     filters: Optional[RealizedGainFilter] = None) -> List[Dict]:
        """
        Group realized gains by time bucket.

        Args:
            owner: Record owner
            bucket: "day", "week", "month" or "year"
            filters: Optional record filters

        Returns:
            List of per-period dictionaries in ascending period order

        Raises:
            TransactionValidationError: If the bucket is not recognized
        """
        try:
            period_bucket = PeriodBucket(bucket.lower() if isinstance(bucket, str) else bucket)
        except ValueError as e:
            raise TransactionValidationError(f"Unknown period bucket: {bucket}") from e

        gains = RealizedGainRepository.find_all(owner, filters)
        if not gains:
            return []

        df = RealizedGainService._to_frame(gains)
        df['period'] = df['timestamp'].dt.strftime(period_bucket.strftime_format)
        grouped = df.groupby('period', sort=True).agg(
            total_gain_loss=('gain_loss', 'sum'),
            total_proceeds=('proceeds', 'sum'),
            total_cost_basis=('total_cost_basis', 'sum'),
            transaction_count=('gain_loss', 'size'),
        )

        return [
            {
                'period': period,
                'total_gain_loss': float(row['total_gain_loss']),
                'total_proceeds': float(row['total_proceeds']),
                'total_cost_basis': float(row['total_cost_basis']),
                'transaction_count': int(row['transaction_count']),
            }
            for period, row in grouped.iterrows()
        ]

    @staticmethod
    def get_performance_stats(owner: str,
                              filters: Optional[RealizedGainFilter] = None) -> Dict:
        """
        Trading performance summary over the realized-gain records.

        Returns:
            Dictionary with profit/loss totals, best and worst trade,
            average profit and loss per trade, win rate and a monthly summary
        """
        gains = RealizedGainRepository.find_all(owner, filters)
        if not gains:
            return {
                'total_profit': 0.0,
                'total_loss': 0.0,
                'net_gain_loss': 0.0,
                'best_trade': None,
                'worst_trade': None,
                'average_profit': 0.0,
                'average_loss': 0.0,
                'win_rate': 0.0,
                'trade_count': 0,
                'monthly_summary': [],
            }

        profits = [g.gain_loss for g in gains if g.gain_loss > 0]
        losses = [abs(g.gain_loss) for g in gains if g.gain_loss <= 0]
        best = max(gains, key=lambda g: g.gain_loss)
        worst = min(gains, key=lambda g: g.gain_loss)

        def _trade(g: RealizedGain) -> Dict:
            return {
                'transaction_id': g.origin_transaction_id,
                'symbol': g.asset_symbol,
                'gain_loss': g.gain_loss,
                'gain_loss_pct': g.gain_loss_pct,
                'timestamp': g.timestamp,
            }

        total_profit = sum(profits)
        total_loss = sum(losses)

        return {
            'total_profit': total_profit,
            'total_loss': total_loss,
            'net_gain_loss': total_profit - total_loss,
            'best_trade': _trade(best),
            'worst_trade': _trade(worst),
            'average_profit': total_profit / len(profits) if profits else 0.0,
            'average_loss': total_loss / len(losses) if losses else 0.0,
            'win_rate': safe_percentage(len(profits), len(gains)),
            'trade_count': len(gains),
            'monthly_summary': RealizedGainService.get_realized_gains_by_period(
                owner, PeriodBucket.MONTH.value, filters
            ),
        }
