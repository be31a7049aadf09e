"""
RealizedGain Repository - data access layer for RealizedGain model.
"""

from typing import List, Optional
from sqlmodel import Session, select, col

from models import RealizedGain, RealizedGainFilter
from repositories.base import run_in_session


class RealizedGainRepository:
    """Repository for realized-gain records."""

    @staticmethod
    def add(gain: RealizedGain, session: Optional[Session] = None) -> RealizedGain:
        """Insert a realized-gain record."""
        def _add(sess: Session) -> RealizedGain:
            sess.add(gain)
            sess.flush()
            sess.refresh(gain)
            return gain

        return run_in_session(_add, session, commit=True)

    @staticmethod
    def get_by_origin(transaction_id: int,
                      session: Optional[Session] = None) -> Optional[RealizedGain]:
        """Retrieve the record produced by a given sale."""
        def _get_by_origin(sess: Session) -> Optional[RealizedGain]:
            statement = select(RealizedGain).where(
                RealizedGain.origin_transaction_id == transaction_id
            )
            return sess.exec(statement).first()

        return run_in_session(_get_by_origin, session)

    @staticmethod
    def delete_by_origin(transaction_id: int, session: Optional[Session] = None) -> int:
        """
        Delete the record produced by a given sale.

        Returns:
            Number of records deleted (0 or 1)
        """
        def _delete_by_origin(sess: Session) -> int:
            statement = select(RealizedGain).where(
                RealizedGain.origin_transaction_id == transaction_id
            )
            count = 0
            for gain in sess.exec(statement).all():
                sess.delete(gain)
                count += 1
            sess.flush()
            return count

        return run_in_session(_delete_by_origin, session, commit=True)

    @staticmethod
    def find_all(owner: str, filters: Optional[RealizedGainFilter] = None,
                 session: Optional[Session] = None) -> List[RealizedGain]:
        """
        Retrieve an owner's realized gains, newest first.

        Args:
            owner: Record owner
            filters: Optional filters (symbol, date range, profit/loss, target currency, category)
            session: Optional existing session for transaction reuse
        """
        filters = filters or RealizedGainFilter()

        def _find_all(sess: Session) -> List[RealizedGain]:
            statement = select(RealizedGain).where(RealizedGain.owner == owner)
            if filters.asset_symbol:
                statement = statement.where(RealizedGain.asset_symbol == filters.asset_symbol)
            if filters.start_date is not None:
                statement = statement.where(RealizedGain.timestamp >= filters.start_date)
            if filters.end_date is not None:
                statement = statement.where(RealizedGain.timestamp <= filters.end_date)
            if filters.is_profit is True:
                statement = statement.where(RealizedGain.gain_loss > 0)
            elif filters.is_profit is False:
                statement = statement.where(RealizedGain.gain_loss <= 0)
            if filters.target_currency:
                statement = statement.where(RealizedGain.target_currency == filters.target_currency)
            if filters.category:
                statement = statement.where(RealizedGain.category == filters.category)
            statement = statement.order_by(col(RealizedGain.timestamp).desc(), col(RealizedGain.id).desc())
            return list(sess.exec(statement).all())

        return run_in_session(_find_all, session)
