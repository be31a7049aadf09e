"""
Repositories package for Ledgerfolio.
Provides data access layer for all database operations.
"""

from repositories.transaction_repository import TransactionRepository
from repositories.portfolio_repository import PortfolioRepository
from repositories.realized_gain_repository import RealizedGainRepository

__all__ = [
    'TransactionRepository',
    'PortfolioRepository',
    'RealizedGainRepository',
]
