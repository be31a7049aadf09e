"""
Portfolio Repository - data access layer for Portfolio and Holding models.
"""

from typing import List, Optional
from datetime import datetime
from sqlmodel import Session, select

from models import Portfolio, Holding
from repositories.base import run_in_session


class PortfolioRepository:
    """Repository for the derived holdings aggregate."""

    @staticmethod
    def get_by_owner(owner: str, session: Optional[Session] = None) -> Optional[Portfolio]:
        """Retrieve an owner's portfolio, or None if it was never reconstructed."""
        def _get_by_owner(sess: Session) -> Optional[Portfolio]:
            statement = select(Portfolio).where(Portfolio.owner == owner)
            return sess.exec(statement).first()

        return run_in_session(_get_by_owner, session)

    @staticmethod
    def get_holdings(owner: str, session: Optional[Session] = None) -> List[Holding]:
        """Retrieve an owner's holdings in replay order."""
        def _get_holdings(sess: Session) -> List[Holding]:
            statement = (
                select(Holding)
                .join(Portfolio, Holding.portfolio_id == Portfolio.id)
                .where(Portfolio.owner == owner)
                .order_by(Holding.position)
            )
            return list(sess.exec(statement).all())

        return run_in_session(_get_holdings, session)

    @staticmethod
    def get_holding(owner: str, asset_symbol: str,
                    session: Optional[Session] = None) -> Optional[Holding]:
        """Retrieve a single holding by symbol."""
        def _get_holding(sess: Session) -> Optional[Holding]:
            statement = (
                select(Holding)
                .join(Portfolio, Holding.portfolio_id == Portfolio.id)
                .where(Portfolio.owner == owner, Holding.asset_symbol == asset_symbol)
            )
            return sess.exec(statement).first()

        return run_in_session(_get_holding, session)

    @staticmethod
    def replace_holdings(owner: str, holdings: List[Holding],
                         last_updated: Optional[datetime] = None,
                         session: Optional[Session] = None) -> Portfolio:
        """
        Overwrite an owner's holdings wholesale.

        Creates the portfolio row on first use, deletes every existing holding
        and inserts the given ones in list order.

        Args:
            owner: Portfolio owner
            holdings: Unsaved Holding rows (portfolio_id is assigned here)
            last_updated: Reconstruction timestamp (default: now)
            session: Optional existing session for transaction reuse

        Returns:
            The Portfolio row
        """
        def _replace(sess: Session) -> Portfolio:
            statement = select(Portfolio).where(Portfolio.owner == owner)
            portfolio = sess.exec(statement).first()
            if portfolio is None:
                portfolio = Portfolio(owner=owner)
                sess.add(portfolio)
                sess.flush()
            else:
                existing = sess.exec(
                    select(Holding).where(Holding.portfolio_id == portfolio.id)
                ).all()
                for holding in existing:
                    sess.delete(holding)
                sess.flush()

            for position, holding in enumerate(holdings):
                holding.portfolio_id = portfolio.id
                holding.position = position
                sess.add(holding)

            portfolio.last_updated = last_updated or datetime.now()
            sess.add(portfolio)
            sess.flush()
            sess.refresh(portfolio)
            return portfolio

        return run_in_session(_replace, session, commit=True)

    @staticmethod
    def get_owners(session: Optional[Session] = None) -> List[str]:
        """Retrieve every owner with a stored portfolio."""
        def _get_owners(sess: Session) -> List[str]:
            statement = select(Portfolio.owner).order_by(Portfolio.owner)
            return list(sess.exec(statement).all())

        return run_in_session(_get_owners, session)
