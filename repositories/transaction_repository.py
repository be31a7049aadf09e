"""
Transaction Repository - data access layer for the ledger.
Optimized with optional session parameter for transaction reuse.
"""

from typing import Any, Dict, List, Optional
from sqlmodel import Session, select, col

from models import Transaction, TransactionFilter
from repositories.base import run_in_session


class TransactionRepository:
    """Repository for Transaction CRUD operations."""

    @staticmethod
    def add(transaction: Transaction, session: Optional[Session] = None) -> Transaction:
        """
        Insert a transaction into the ledger.

        Args:
            transaction: Unsaved Transaction row
            session: Optional existing session for transaction reuse

        Returns:
            The Transaction with its id assigned
        """
        def _add(sess: Session) -> Transaction:
            sess.add(transaction)
            sess.flush()
            sess.refresh(transaction)
            return transaction

        return run_in_session(_add, session, commit=True)

    @staticmethod
    def get_by_id(transaction_id: int, session: Optional[Session] = None) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Args:
            transaction_id: Transaction ID to look up
            session: Optional existing session for transaction reuse

        Returns:
            Transaction object or None if not found
        """
        def _get_by_id(sess: Session) -> Optional[Transaction]:
            return sess.get(Transaction, transaction_id)

        return run_in_session(_get_by_id, session)

    @staticmethod
    def update(transaction_id: int, fields: Dict[str, Any],
               session: Optional[Session] = None) -> Optional[Transaction]:
        """
        Apply already-validated field values to an existing transaction.

        Args:
            transaction_id: Transaction ID to update
            fields: Mapping of column name to new value
            session: Optional existing session for transaction reuse

        Returns:
            Updated Transaction object or None if not found
        """
        def _update(sess: Session) -> Optional[Transaction]:
            transaction = sess.get(Transaction, transaction_id)
            if transaction is None:
                return None
            for name, value in fields.items():
                setattr(transaction, name, value)
            sess.add(transaction)
            sess.flush()
            sess.refresh(transaction)
            return transaction

        return run_in_session(_update, session, commit=True)

    @staticmethod
    def delete(transaction_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete a transaction by its ID.

        Returns:
            True if a row was deleted, False if it did not exist
        """
        def _delete(sess: Session) -> bool:
            transaction = sess.get(Transaction, transaction_id)
            if transaction is None:
                return False
            sess.delete(transaction)
            sess.flush()
            return True

        return run_in_session(_delete, session, commit=True)

    @staticmethod
    def query(owner: str, filters: Optional[TransactionFilter] = None,
              session: Optional[Session] = None) -> List[Transaction]:
        """
        Retrieve an owner's transactions, newest first.

        Args:
            owner: Ledger owner
            filters: Optional filters (kind, symbol, date range, category, payment method)
            session: Optional existing session for transaction reuse
        """
        filters = filters or TransactionFilter()

        def _query(sess: Session) -> List[Transaction]:
            statement = select(Transaction).where(Transaction.owner == owner)
            if not filters.include_synthetic:
                statement = statement.where(Transaction.synthetic == False)  # noqa: E712
            if filters.kind is not None:
                statement = statement.where(Transaction.kind == filters.kind)
            if filters.asset_symbol:
                statement = statement.where(Transaction.asset_symbol == filters.asset_symbol)
            if filters.start_date is not None:
                statement = statement.where(Transaction.timestamp >= filters.start_date)
            if filters.end_date is not None:
                statement = statement.where(Transaction.timestamp <= filters.end_date)
            if filters.category:
                statement = statement.where(Transaction.category == filters.category)
            if filters.payment_method is not None:
                statement = statement.where(Transaction.payment_method == filters.payment_method)
            statement = statement.order_by(col(Transaction.timestamp).desc(), col(Transaction.id).desc())
            return list(sess.exec(statement).all())

        return run_in_session(_query, session)

    @staticmethod
    def get_history(owner: str, include_synthetic: bool = False,
                    session: Optional[Session] = None) -> List[Transaction]:
        """
        Retrieve an owner's ledger in replay order.

        Ascending by timestamp; ties keep insertion (id) order so repeated
        replays see the same sequence.
        """
        def _get_history(sess: Session) -> List[Transaction]:
            statement = select(Transaction).where(Transaction.owner == owner)
            if not include_synthetic:
                statement = statement.where(Transaction.synthetic == False)  # noqa: E712
            statement = statement.order_by(col(Transaction.timestamp).asc(), col(Transaction.id).asc())
            return list(sess.exec(statement).all())

        return run_in_session(_get_history, session)

    @staticmethod
    def delete_synthetic_legs(owner: str, session: Optional[Session] = None) -> int:
        """
        Delete every synthetic conversion leg of an owner.

        Returns:
            Number of legs deleted
        """
        def _delete_synthetic(sess: Session) -> int:
            statement = select(Transaction).where(
                Transaction.owner == owner,
                Transaction.synthetic == True  # noqa: E712
            )
            legs = sess.exec(statement).all()
            count = 0
            for leg in legs:
                sess.delete(leg)
                count += 1
            sess.flush()
            return count

        return run_in_session(_delete_synthetic, session, commit=True)

    @staticmethod
    def get_owners(session: Optional[Session] = None) -> List[str]:
        """Retrieve every owner that has at least one ledger event."""
        def _get_owners(sess: Session) -> List[str]:
            statement = select(Transaction.owner).distinct().order_by(Transaction.owner)
            return list(sess.exec(statement).all())

        return run_in_session(_get_owners, session)
