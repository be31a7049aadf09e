"""
Database models for Ledgerfolio.
All SQLModel table definitions are centralized here.
"""

from models.enums import (
    TransactionKind,
    PaymentMethod,
    HoldingOrigin,
    CostBasisMethod,
    PeriodBucket,
)
from models.transaction import (
    Transaction,
    TransactionCreate,
    TransactionUpdate,
    TransactionFilter,
)
from models.portfolio import Portfolio, Holding
from models.realized_gain import RealizedGain, RealizedGainFilter

__all__ = [
    'TransactionKind',
    'PaymentMethod',
    'HoldingOrigin',
    'CostBasisMethod',
    'PeriodBucket',
    'Transaction',
    'TransactionCreate',
    'TransactionUpdate',
    'TransactionFilter',
    'Portfolio',
    'Holding',
    'RealizedGain',
    'RealizedGainFilter',
]
