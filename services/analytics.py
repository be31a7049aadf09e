"""
Analytics service for read-only reporting over the ledger.
Runs the method-selectable cost-basis view; never writes.
"""

import logging
from typing import Dict, Optional, Union

import pandas as pd

from config import get_settings
from models import CostBasisMethod, TransactionFilter, TransactionKind
from repositories import TransactionRepository
from services.common import safe_percentage
from services.cost_basis import CostBasisCalculator
from services.errors import TransactionValidationError

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Service for analytical queries over an owner's transactions."""

    @staticmethod
    def get_realized_gains_historical(owner: str,
                                      method: Optional[Union[CostBasisMethod, str]] = None,
                                      filters: Optional[TransactionFilter] = None) -> Dict:
        """
        Compute realized gains under FIFO, LIFO or Average-Cost.

        The figures are not reconciled with the stored realized-gain records,
        which always use the portfolio's average cost.

        Args:
            owner: Ledger owner
            method: "fifo", "lifo" or "average" (default: from settings)
            filters: Transaction filters (default: every event, synthetic legs included)

        Returns:
            Dictionary with the method, its description, per-asset summaries and the total

        Raises:
            TransactionValidationError: If the method is not recognized
        """
        method = method or get_settings().default_cost_basis_method
        try:
            calculator = CostBasisCalculator(method)
        except ValueError as e:
            raise TransactionValidationError(f"Unknown cost basis method: {method}") from e

        filters = filters or TransactionFilter(include_synthetic=True)
        transactions = TransactionRepository.query(owner, filters)
        report = calculator.calculate(transactions)

        skipped = sum(len(a.skipped_sales) for a in report.assets)
        if skipped:
            logger.warning(f"{skipped} sales skipped for {owner} under {report.method.value}")

        return {
            'method': report.method.value,
            'method_description': report.method_description,
            'total_realized_gain': report.realized_gain,
            'assets': [
                {
                    'symbol': summary.symbol,
                    'total_acquired': summary.total_acquired,
                    'total_sold': summary.total_sold,
                    'remaining_quantity': summary.remaining_quantity,
                    'realized_gain': summary.realized_gain,
                    'skipped_sales': len(summary.skipped_sales),
                    'sales': [
                        {
                            'transaction_id': sale.transaction_id,
                            'quantity': sale.quantity,
                            'sale_price': sale.sale_price,
                            'proceeds': sale.proceeds,
                            'cost_basis': sale.cost_basis,
                            'cost_basis_per_unit': sale.cost_basis_per_unit,
                            'gain': sale.gain,
                            'timestamp': sale.timestamp,
                            'method': sale.method.value,
                        }
                        for sale in summary.sales
                    ],
                }
                for summary in report.assets
            ],
        }

    @staticmethod
    def get_investment_by_payment_method(owner: str) -> Dict:
        """
        Group purchase amounts by payment method and currency.

        Returns:
            Dictionary with the total invested and one entry per payment method
        """
        purchases = TransactionRepository.query(
            owner, TransactionFilter(kind=TransactionKind.PURCHASE)
        )
        if not purchases:
            return {'total_investment': 0.0, 'methods': []}

        df = pd.DataFrame([
            {
                'method': tx.payment_method.value if tx.payment_method else 'other',
                'currency': tx.payment_currency or 'N/A',
                'amount': tx.total_amount,
            }
            for tx in purchases
        ])
        total = float(df['amount'].sum())

        methods = []
        for method, group in df.groupby('method', sort=True):
            method_total = float(group['amount'].sum())
            by_currency = group.groupby('currency', sort=True)['amount'].agg(['sum', 'size'])
            methods.append({
                'method': method,
                'total': method_total,
                'count': int(len(group)),
                'percentage': safe_percentage(method_total, total),
                'currencies': [
                    {
                        'currency': currency,
                        'total': float(row['sum']),
                        'count': int(row['size']),
                        'percentage': safe_percentage(float(row['sum']), method_total),
                    }
                    for currency, row in by_currency.iterrows()
                ],
            })

        return {'total_investment': total, 'methods': methods}
