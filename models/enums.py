"""
Closed enumerations shared by the ledger models and services.
"""

from enum import Enum


class TransactionKind(str, Enum):
    """Kind of a ledger event."""
    PURCHASE = "buy"
    AIRDROP = "airdrop"
    FARMING = "farming"
    SALE = "sell"

    @property
    def is_zero_cost(self) -> bool:
        """Airdrops and farming rewards never carry a price."""
        return self in (TransactionKind.AIRDROP, TransactionKind.FARMING)


class PaymentMethod(str, Enum):
    """How a transaction was settled."""
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    CRYPTO = "crypto"
    OTHER = "other"


class HoldingOrigin(str, Enum):
    """How a holding first entered the portfolio."""
    PURCHASED = "purchased"
    AIRDROPPED = "airdropped"
    FARMED = "farmed"
    STABLE_VALUE = "stable_value"


class CostBasisMethod(str, Enum):
    """Lot matching convention for the analytical cost-basis view."""
    FIFO = "fifo"
    LIFO = "lifo"
    AVERAGE = "average"

    @property
    def description(self) -> str:
        return _METHOD_DESCRIPTIONS[self]


_METHOD_DESCRIPTIONS = {
    CostBasisMethod.FIFO: "First In, First Out: the earliest acquired units are sold first.",
    CostBasisMethod.LIFO: "Last In, First Out: the most recently acquired units are sold first.",
    CostBasisMethod.AVERAGE: (
        "Average Cost: every unit sold carries the same cost basis, "
        "the average of all prior acquisitions."
    ),
}


class PeriodBucket(str, Enum):
    """Time bucket for realized-gain grouping."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def strftime_format(self) -> str:
        return _BUCKET_FORMATS[self]


_BUCKET_FORMATS = {
    PeriodBucket.DAY: "%Y-%m-%d",
    PeriodBucket.WEEK: "%Y-W%U",  # Sunday-based week number
    PeriodBucket.MONTH: "%Y-%m",
    PeriodBucket.YEAR: "%Y",
}
