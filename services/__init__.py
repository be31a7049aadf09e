"""
Services package for Ledgerfolio.
Provides core business logic separated from the data layer.
"""

from services.common import (
    normalize_symbol,
    safe_percentage,
    StableValueRegistry,
    is_stable_value_settlement,
    is_realized_gain_transaction,
)
from services.errors import (
    LedgerError,
    TransactionValidationError,
    ImmutableTransactionError,
    TransactionNotFoundError,
    AtomicUnitError,
)
from services.cost_basis import (
    CostBasisCalculator,
    CostBasisReport,
    AssetCostBasisSummary,
    SaleResult,
    SkippedSale,
    Lot,
    calculate_realized_gains,
)
from services.market_data import MarketDataService
from services.portfolio import PortfolioReconstructor, PortfolioService, ReplayResult, HoldingState
from services.realized_gains import RealizedGainService
from services.ledger import LedgerService, OwnerLockRegistry
from services.analytics import AnalyticsService

__all__ = [
    # Common utilities
    'normalize_symbol',
    'safe_percentage',
    'StableValueRegistry',
    'is_stable_value_settlement',
    'is_realized_gain_transaction',
    # Errors
    'LedgerError',
    'TransactionValidationError',
    'ImmutableTransactionError',
    'TransactionNotFoundError',
    'AtomicUnitError',
    # Cost basis
    'CostBasisCalculator',
    'CostBasisReport',
    'AssetCostBasisSummary',
    'SaleResult',
    'SkippedSale',
    'Lot',
    'calculate_realized_gains',
    # Services
    'MarketDataService',
    'PortfolioReconstructor',
    'PortfolioService',
    'ReplayResult',
    'HoldingState',
    'RealizedGainService',
    'LedgerService',
    'OwnerLockRegistry',
    'AnalyticsService',
]
