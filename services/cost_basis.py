"""
Cost-basis calculator for realized gain/loss analysis.
Matches disposals against acquisition lots using FIFO, LIFO or Average-Cost.
Pure computation: callers pass the transactions, nothing is read or written here.
"""

import logging
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Union
from datetime import datetime
from dataclasses import dataclass, field

from models import CostBasisMethod, Transaction, TransactionKind
from services.common import normalize_symbol

logger = logging.getLogger(__name__)

# Float noise tolerated when comparing quantities
QUANTITY_EPSILON = 1e-9

# Kinds that open lots in the analytical view; farming rewards are not lots
LOT_KINDS = (TransactionKind.PURCHASE, TransactionKind.AIRDROP)


@dataclass
class Lot:
    """A discrete acquisition batch."""
    quantity: float
    unit_price: float
    timestamp: datetime
    kind: TransactionKind = TransactionKind.PURCHASE


@dataclass
class SaleResult:
    """Outcome of matching one sale against the lots."""
    transaction_id: Optional[int]
    quantity: float
    sale_price: float
    timestamp: datetime
    proceeds: float
    cost_basis: float
    gain: float
    method: CostBasisMethod

    @property
    def cost_basis_per_unit(self) -> float:
        return self.cost_basis / self.quantity if self.quantity > 0 else 0.0


@dataclass
class SkippedSale:
    """A sale that could not be matched because too few units were held."""
    transaction_id: Optional[int]
    quantity: float
    available_quantity: float
    timestamp: datetime


@dataclass
class AssetCostBasisSummary:
    """Per-asset result of a cost-basis run."""
    symbol: str
    total_acquired: float = 0.0
    total_sold: float = 0.0
    realized_gain: float = 0.0
    sales: List[SaleResult] = field(default_factory=list)
    acquisitions: List[Lot] = field(default_factory=list)
    skipped_sales: List[SkippedSale] = field(default_factory=list)

    @property
    def remaining_quantity(self) -> float:
        return self.total_acquired - self.total_sold


@dataclass
class CostBasisReport:
    """Result of a cost-basis run across every asset."""
    method: CostBasisMethod
    realized_gain: float
    assets: List[AssetCostBasisSummary]

    @property
    def method_description(self) -> str:
        return self.method.description

    def get_asset(self, symbol: str) -> Optional[AssetCostBasisSummary]:
        symbol = normalize_symbol(symbol)
        for summary in self.assets:
            if summary.symbol == symbol:
                return summary
        return None


class _LotTracker:
    """Remaining lots of one asset plus the aggregate used by Average-Cost."""

    def __init__(self):
        self.lots: Deque[Lot] = deque()
        self.total_quantity = 0.0
        self.total_cost = 0.0

    def add(self, lot: Lot):
        self.lots.append(Lot(lot.quantity, lot.unit_price, lot.timestamp, lot.kind))
        self.total_quantity += lot.quantity
        self.total_cost += lot.quantity * lot.unit_price

    @property
    def available(self) -> float:
        return self.total_quantity


class CostBasisCalculator:
    """
    Method-selectable cost-basis engine.

    Transactions are processed in chronological order per asset. Purchases and
    airdrops open lots; each sale consumes lots according to the method. A sale
    larger than the remaining lots is skipped with a warning and does not count
    toward the realized gain.
    """

    def __init__(self, method: Union[CostBasisMethod, str] = CostBasisMethod.FIFO):
        """
        Initialize the calculator.

        Args:
            method: "fifo", "lifo" or "average"

        Raises:
            ValueError: If the method is not recognized
        """
        self.method = CostBasisMethod(method.lower() if isinstance(method, str) else method)
        self._consumers = {
            CostBasisMethod.FIFO: self._consume_fifo,
            CostBasisMethod.LIFO: self._consume_lifo,
            CostBasisMethod.AVERAGE: self._consume_average,
        }

    def calculate(self, transactions: Iterable[Transaction]) -> CostBasisReport:
        """
        Compute realized gains for every asset in the given transactions.

        Args:
            transactions: Ledger events of a single owner, any order

        Returns:
            CostBasisReport with per-asset summaries and the grand total
        """
        ordered = sorted(
            transactions,
            key=lambda tx: (tx.timestamp, tx.id is None, tx.id or 0)
        )

        trackers: Dict[str, _LotTracker] = {}
        summaries: Dict[str, AssetCostBasisSummary] = {}

        for tx in ordered:
            symbol = normalize_symbol(tx.asset_symbol)
            summary = summaries.setdefault(symbol, AssetCostBasisSummary(symbol=symbol))
            tracker = trackers.setdefault(symbol, _LotTracker())

            kind = TransactionKind(tx.kind)
            if kind in LOT_KINDS:
                lot = Lot(
                    quantity=tx.quantity,
                    unit_price=0.0 if kind.is_zero_cost else tx.unit_price,
                    timestamp=tx.timestamp,
                    kind=kind
                )
                tracker.add(lot)
                summary.acquisitions.append(lot)
                summary.total_acquired += tx.quantity
            elif kind == TransactionKind.SALE:
                self._process_sale(tx, symbol, tracker, summary)

        assets = list(summaries.values())
        total = sum(s.realized_gain for s in assets)

        return CostBasisReport(method=self.method, realized_gain=total, assets=assets)

    def _process_sale(self, tx: Transaction, symbol: str,
                      tracker: _LotTracker, summary: AssetCostBasisSummary):
        if tracker.available + QUANTITY_EPSILON < tx.quantity:
            logger.warning(
                f"Skipping sale of {tx.quantity} {symbol}: only {tracker.available} acquired"
            )
            summary.skipped_sales.append(SkippedSale(
                transaction_id=tx.id,
                quantity=tx.quantity,
                available_quantity=tracker.available,
                timestamp=tx.timestamp
            ))
            return

        cost_basis = self._consumers[self.method](tracker, tx.quantity)
        proceeds = tx.quantity * tx.unit_price
        gain = proceeds - cost_basis

        summary.sales.append(SaleResult(
            transaction_id=tx.id,
            quantity=tx.quantity,
            sale_price=tx.unit_price,
            timestamp=tx.timestamp,
            proceeds=proceeds,
            cost_basis=cost_basis,
            gain=gain,
            method=self.method
        ))
        summary.total_sold += tx.quantity
        summary.realized_gain += gain

    @staticmethod
    def _consume_lots(tracker: _LotTracker, quantity: float, newest_first: bool) -> float:
        """Consume lots from one end of the queue, splitting the last one if needed."""
        remaining = quantity
        cost_basis = 0.0

        while remaining > QUANTITY_EPSILON and tracker.lots:
            lot = tracker.lots[-1] if newest_first else tracker.lots[0]
            if lot.quantity <= remaining + QUANTITY_EPSILON:
                cost_basis += lot.quantity * lot.unit_price
                remaining -= lot.quantity
                if newest_first:
                    tracker.lots.pop()
                else:
                    tracker.lots.popleft()
            else:
                cost_basis += remaining * lot.unit_price
                lot.quantity -= remaining
                remaining = 0.0

        tracker.total_quantity -= quantity
        tracker.total_cost -= cost_basis
        return cost_basis

    def _consume_fifo(self, tracker: _LotTracker, quantity: float) -> float:
        return self._consume_lots(tracker, quantity, newest_first=False)

    def _consume_lifo(self, tracker: _LotTracker, quantity: float) -> float:
        return self._consume_lots(tracker, quantity, newest_first=True)

    @staticmethod
    def _consume_average(tracker: _LotTracker, quantity: float) -> float:
        average_cost = (
            tracker.total_cost / tracker.total_quantity
            if tracker.total_quantity > 0 else 0.0
        )
        cost_basis = quantity * average_cost

        tracker.total_quantity -= quantity
        if tracker.total_quantity > QUANTITY_EPSILON:
            tracker.total_cost = tracker.total_quantity * average_cost
        else:
            tracker.total_quantity = max(tracker.total_quantity, 0.0)
            tracker.total_cost = 0.0

        # Keep the lot queue in step so remaining lots stay meaningful
        remaining = quantity
        while remaining > QUANTITY_EPSILON and tracker.lots:
            lot = tracker.lots[0]
            if lot.quantity <= remaining + QUANTITY_EPSILON:
                remaining -= lot.quantity
                tracker.lots.popleft()
            else:
                lot.quantity -= remaining
                remaining = 0.0

        return cost_basis


def calculate_realized_gains(transactions: Iterable[Transaction],
                             method: Union[CostBasisMethod, str] = CostBasisMethod.FIFO) -> CostBasisReport:
    """Convenience wrapper around CostBasisCalculator.calculate."""
    return CostBasisCalculator(method).calculate(transactions)
