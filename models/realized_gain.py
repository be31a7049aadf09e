"""
RealizedGain model - derived record of the gain or loss realized by a qualifying sale.
"""

from typing import Optional
from datetime import datetime

from pydantic import field_validator
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class RealizedGain(SQLModel, table=True):
    """
    Gain/loss of a sale settled in a stable-value currency.
    Created, regenerated and deleted together with the originating sale.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    owner: str = Field(index=True)
    origin_transaction_id: int = Field(foreign_key="transaction.id", index=True, unique=True)
    asset_symbol: str = Field(index=True)
    target_currency: str
    is_stable_value: bool = True
    quantity_sold: float
    cost_basis_per_unit: float  # Portfolio average cost at the time of the sale
    sale_price: float
    total_cost_basis: float
    proceeds: float
    gain_loss: float
    gain_loss_pct: float
    timestamp: datetime = Field(index=True, sa_type=DateTime)
    category: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class RealizedGainFilter(SQLModel):
    """Filters for realized-gain queries."""
    asset_symbol: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_profit: Optional[bool] = None  # True: gains only, False: losses and break-even only
    target_currency: Optional[str] = None
    category: Optional[str] = None

    @field_validator("asset_symbol", "target_currency")
    @classmethod
    def _normalize_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().upper() or None
