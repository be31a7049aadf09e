"""
Exceptions raised by the ledger services.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for exceptions defined in the ledger services."""


class TransactionValidationError(LedgerError):
    """Input rejected before anything was written."""


class ImmutableTransactionError(TransactionValidationError):
    """Raised when a synthetic conversion leg is edited or deleted.

    Attributes:
        transaction_id: id of the synthetic leg.
    """

    def __init__(self, transaction_id: int) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} is system-generated and cannot be changed")


class TransactionNotFoundError(LedgerError):
    """Raised when an update or delete targets an unknown transaction."""

    def __init__(self, transaction_id: int) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class AtomicUnitError(LedgerError):
    """Storage failure inside an atomic unit; nothing was committed.

    The whole operation can be retried: reconstruction is idempotent.

    Attributes:
        owner: owner whose unit was aborted.
        operation: name of the aborted operation.
    """

    retryable = True

    def __init__(self, owner: str, operation: str, cause: Optional[BaseException] = None) -> None:
        self.owner = owner
        self.operation = operation
        message = f"{operation} for owner '{owner}' aborted"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
