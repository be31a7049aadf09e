"""
Ledger service - the write path of the system.

Every append, update or delete runs as one atomic unit for its owner: the
ledger write, the full portfolio replay and the realized-gain maintenance are
committed together or not at all. Writes for the same owner are serialized.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Union
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from config import get_settings
from db_engine import unit_of_work
from models import (
    PaymentMethod, Transaction, TransactionCreate, TransactionFilter,
    TransactionKind, TransactionUpdate,
)
from repositories import TransactionRepository
from services.common import StableValueRegistry, normalize_symbol
from services.errors import (
    AtomicUnitError, ImmutableTransactionError, TransactionNotFoundError,
    TransactionValidationError,
)
from services.portfolio import PortfolioReconstructor, PortfolioService
from services.realized_gains import RealizedGainService

logger = logging.getLogger(__name__)

# Fields an update may never touch
PROTECTED_FIELDS = {'id', 'owner', 'synthetic', 'origin_transaction_id', 'created_at'}

# Fields that must keep a value once set; the rest may be cleared with None
REQUIRED_FIELDS = {'asset_symbol', 'kind', 'quantity', 'unit_price', 'total_amount', 'timestamp'}


class OwnerLockRegistry:
    """One re-entrant lock per owner, created on first use."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, owner: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(owner)
            if lock is None:
                lock = threading.RLock()
                self._locks[owner] = lock
            return lock

    @contextmanager
    def hold(self, owner: str) -> Iterator[None]:
        with self.get(owner):
            yield


# Shared by every LedgerService so all writers for an owner take the same lock
_owner_locks = OwnerLockRegistry()


class LedgerService:
    """
    Entry point for ledger mutations and reads.

    Example:
        ledger = LedgerService()
        ledger.append_transaction({
            'owner': 'alice', 'asset_symbol': 'BTC', 'kind': 'buy',
            'quantity': 0.5, 'unit_price': 40000,
        })
    """

    def __init__(self, stable_values: Optional[StableValueRegistry] = None,
                 locks: Optional[OwnerLockRegistry] = None):
        self.stable_values = stable_values or StableValueRegistry()
        self.reconstructor = PortfolioReconstructor(self.stable_values)
        self.gains = RealizedGainService(self.stable_values)
        self.locks = locks or _owner_locks

    @contextmanager
    def _atomic(self, owner: str, operation: str) -> Iterator[Session]:
        """Serialize on the owner and run the block as one unit of work."""
        with self.locks.hold(owner):
            try:
                with unit_of_work() as session:
                    yield session
            except SQLAlchemyError as e:
                logger.error(f"{operation} for {owner} rolled back: {e}")
                raise AtomicUnitError(owner, operation, e) from e

    @staticmethod
    def _validate_create(event: Union[TransactionCreate, Dict[str, Any]]) -> TransactionCreate:
        if isinstance(event, TransactionCreate):
            return event
        data = dict(event)
        if not data.get('owner'):
            data['owner'] = get_settings().default_owner
        try:
            return TransactionCreate.model_validate(data)
        except ValidationError as e:
            raise TransactionValidationError(f"Invalid transaction: {e}") from e

    @staticmethod
    def _validate_update(fields: Union[TransactionUpdate, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(fields, TransactionUpdate):
            changes = fields.model_dump(exclude_unset=True)
        else:
            protected = PROTECTED_FIELDS.intersection(fields)
            if protected:
                raise TransactionValidationError(
                    f"Fields cannot be updated: {', '.join(sorted(protected))}"
                )
            try:
                changes = TransactionUpdate.model_validate(fields).model_dump(exclude_unset=True)
            except ValidationError as e:
                raise TransactionValidationError(f"Invalid update: {e}") from e

        for name in REQUIRED_FIELDS:
            if name in changes and changes[name] is None:
                raise TransactionValidationError(f"{name} cannot be cleared")
        return changes

    @staticmethod
    def _apply_amount_rules(transaction: Transaction, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Force zero-cost amounts and refill the total when quantity or price changed."""
        merged = dict(changes)
        kind = TransactionKind(merged.get('kind', transaction.kind))

        if kind.is_zero_cost:
            merged['unit_price'] = 0.0
            merged['total_amount'] = 0.0
        elif 'total_amount' not in merged and ('quantity' in merged or 'unit_price' in merged):
            quantity = merged.get('quantity', transaction.quantity)
            unit_price = merged.get('unit_price', transaction.unit_price)
            merged['total_amount'] = quantity * unit_price
        return merged

    def append_transaction(self, event: Union[TransactionCreate, Dict[str, Any]]) -> Transaction:
        """
        Append a user transaction and rebuild the owner's portfolio.

        Args:
            event: TransactionCreate or a dict of its fields (owner defaults to settings)

        Returns:
            The persisted Transaction

        Raises:
            TransactionValidationError: If the input is malformed (nothing is written)
            AtomicUnitError: If storage fails (nothing is committed)
        """
        data = self._validate_create(event)

        with self._atomic(data.owner, "append_transaction") as session:
            transaction = TransactionRepository.add(Transaction.model_validate(data), session=session)
            self.reconstructor.recompute(data.owner, session)
            self.gains.record_gain(transaction, session)

        logger.info(
            f"Appended {TransactionKind(transaction.kind).value} of {transaction.quantity} "
            f"{transaction.asset_symbol} for {transaction.owner} (id={transaction.id})"
        )
        return transaction

    def record_airdrop(self, owner: str, asset_symbol: str, quantity: float,
                       timestamp: Optional[datetime] = None,
                       category: Optional[str] = None,
                       notes: Optional[str] = None) -> Transaction:
        """Record tokens received for free; the position's average cost is diluted."""
        if not quantity or quantity <= 0:
            raise TransactionValidationError("Airdrop quantity must be positive")

        event = {
            'owner': owner,
            'asset_symbol': asset_symbol,
            'kind': TransactionKind.AIRDROP,
            'quantity': quantity,
            'category': category,
            'notes': notes,
        }
        if timestamp is not None:
            event['timestamp'] = timestamp
        return self.append_transaction(event)

    def record_farming(self, owner: str, asset_symbol: str, quantity: float,
                       timestamp: Optional[datetime] = None,
                       category: Optional[str] = None,
                       notes: Optional[str] = None,
                       payment_currency: Optional[str] = None) -> Transaction:
        """Record a yield-farming reward, settled in crypto in the farmed asset by default."""
        if not quantity or quantity <= 0:
            raise TransactionValidationError("Farming reward quantity must be positive")

        event = {
            'owner': owner,
            'asset_symbol': asset_symbol,
            'kind': TransactionKind.FARMING,
            'quantity': quantity,
            'payment_method': PaymentMethod.CRYPTO,
            'payment_currency': payment_currency or normalize_symbol(asset_symbol),
            'category': category,
            'notes': notes,
        }
        if timestamp is not None:
            event['timestamp'] = timestamp
        return self.append_transaction(event)

    def _load_mutable(self, transaction_id: int, session: Optional[Session] = None) -> Transaction:
        transaction = TransactionRepository.get_by_id(transaction_id, session=session)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        if transaction.synthetic:
            raise ImmutableTransactionError(transaction_id)
        return transaction

    def update_transaction(self, transaction_id: int,
                           fields: Union[TransactionUpdate, Dict[str, Any]]) -> Transaction:
        """
        Edit a user transaction, then rebuild the portfolio and its realized gain.

        Raises:
            TransactionNotFoundError: If the id is unknown
            ImmutableTransactionError: If the id is a synthetic leg
            TransactionValidationError: If the fields are malformed
            AtomicUnitError: If storage fails (nothing is committed)
        """
        changes = self._validate_update(fields)
        owner = self._load_mutable(transaction_id).owner

        with self._atomic(owner, "update_transaction") as session:
            current = self._load_mutable(transaction_id, session=session)
            merged = self._apply_amount_rules(current, changes)
            transaction = TransactionRepository.update(transaction_id, merged, session=session)
            self.reconstructor.recompute(owner, session)
            self.gains.replace_for_transaction(transaction, session)

        logger.info(f"Updated transaction {transaction_id} for {owner}: {sorted(merged)}")
        return transaction

    def delete_transaction(self, transaction_id: int) -> bool:
        """
        Remove a user transaction, its realized gain, and rebuild the portfolio.

        Raises:
            TransactionNotFoundError: If the id is unknown
            ImmutableTransactionError: If the id is a synthetic leg
            AtomicUnitError: If storage fails (nothing is committed)
        """
        owner = self._load_mutable(transaction_id).owner

        with self._atomic(owner, "delete_transaction") as session:
            self._load_mutable(transaction_id, session=session)
            self.gains.remove_for_transaction(transaction_id, session)
            TransactionRepository.delete(transaction_id, session=session)
            self.reconstructor.recompute(owner, session)

        logger.info(f"Deleted transaction {transaction_id} for {owner}")
        return True

    def recalculate_portfolio(self, owner: str) -> Dict:
        """
        Force a fresh full replay of the owner's ledger.

        Returns:
            The rebuilt portfolio (see PortfolioService.get_portfolio)
        """
        with self._atomic(owner, "recalculate_portfolio") as session:
            self.reconstructor.recompute(owner, session)
        return PortfolioService.get_portfolio(owner)

    @staticmethod
    def get_transaction(transaction_id: int) -> Optional[Transaction]:
        """Get a single transaction by id."""
        return TransactionRepository.get_by_id(transaction_id)

    @staticmethod
    def get_transactions(owner: str,
                         filters: Optional[TransactionFilter] = None) -> List[Transaction]:
        """Get an owner's transactions, newest first (synthetic legs only on request)."""
        return TransactionRepository.query(owner, filters)
