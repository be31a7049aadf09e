"""
Portfolio rebuild script for Ledgerfolio.
Replays the ledger of every owner (or of the owner given on the command line).

Usage:
    python rebuild_portfolios.py [owner]
"""

import logging
import sys
from typing import List, Optional

from config import get_settings
from db_engine import init_db
from repositories import TransactionRepository, PortfolioRepository
from services import LedgerService

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def rebuild_portfolios(owners: Optional[List[str]] = None) -> int:
    """
    Force a full replay for the given owners.

    Args:
        owners: Owners to rebuild (default: every owner with transactions or a portfolio)

    Returns:
        Number of portfolios rebuilt
    """
    init_db()
    if not owners:
        owners = sorted(set(TransactionRepository.get_owners()) | set(PortfolioRepository.get_owners()))

    ledger = LedgerService()
    rebuilt = 0
    for owner in owners:
        portfolio = ledger.recalculate_portfolio(owner)
        logger.info(f"Rebuilt {owner}: {len(portfolio['holdings'])} holdings")
        rebuilt += 1
    return rebuilt


if __name__ == "__main__":
    print("=" * 60)
    print("Ledgerfolio Portfolio Rebuild")
    print("=" * 60)

    count = rebuild_portfolios(sys.argv[1:] or None)

    print("=" * 60)
    print(f"Rebuild complete: {count} portfolio(s)")
    print("=" * 60)
