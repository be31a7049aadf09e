"""
Transaction model - a single ledger event for an owner.
Also holds the create/update/filter schemas used to validate input before it is persisted.
"""

from typing import Optional
from datetime import datetime

from pydantic import field_validator, model_validator
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from models.enums import TransactionKind, PaymentMethod


class TransactionBase(SQLModel):
    """Fields shared by the ledger table and its input schema."""
    owner: str = Field(index=True, min_length=1)
    asset_symbol: str = Field(index=True)  # e.g., "BTC", "ETH"
    kind: TransactionKind
    quantity: float = Field(ge=0)
    unit_price: float = Field(default=0.0, ge=0)
    total_amount: float = Field(default=0.0, ge=0)  # Proceeds for a sale, cost for a purchase
    # Timestamps are stored naive, in local time
    timestamp: datetime = Field(default_factory=datetime.now, index=True, sa_type=DateTime)
    payment_method: Optional[PaymentMethod] = Field(default=None)
    payment_currency: Optional[str] = Field(default=None)  # e.g., "USDT"
    category: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None, max_length=500)


class Transaction(TransactionBase, table=True):
    """Represents an acquisition or disposal event in the ledger."""
    id: Optional[int] = Field(default=None, primary_key=True)
    synthetic: bool = Field(default=False, index=True)  # System-generated conversion leg
    origin_transaction_id: Optional[int] = Field(default=None, index=True)  # Sale that spawned a synthetic leg
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


def _normalize_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    return value or None


class TransactionCreate(TransactionBase):
    """Validated input for appending a user transaction."""

    @field_validator("asset_symbol")
    @classmethod
    def _symbol_required(cls, value: str) -> str:
        symbol = _normalize_code(value)
        if not symbol:
            raise ValueError("asset symbol is required")
        return symbol

    @field_validator("payment_currency")
    @classmethod
    def _normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_code(value)

    @model_validator(mode="after")
    def _apply_amount_rules(self) -> "TransactionCreate":
        if self.kind.is_zero_cost:
            self.unit_price = 0.0
            self.total_amount = 0.0
        elif not self.total_amount:
            self.total_amount = self.quantity * self.unit_price
        return self


class TransactionUpdate(SQLModel):
    """Partial update of a user transaction. Only fields that are set are applied."""
    asset_symbol: Optional[str] = None
    kind: Optional[TransactionKind] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    unit_price: Optional[float] = Field(default=None, ge=0)
    total_amount: Optional[float] = Field(default=None, ge=0)
    timestamp: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    payment_currency: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("asset_symbol")
    @classmethod
    def _symbol_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        symbol = _normalize_code(value)
        if not symbol:
            raise ValueError("asset symbol cannot be blank")
        return symbol

    @field_validator("payment_currency")
    @classmethod
    def _normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_code(value)


class TransactionFilter(SQLModel):
    """Filters for ledger queries."""
    kind: Optional[TransactionKind] = None
    asset_symbol: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    category: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    include_synthetic: bool = False

    @field_validator("asset_symbol")
    @classmethod
    def _normalize_symbol(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_code(value)
