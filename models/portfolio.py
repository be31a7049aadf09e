"""
Portfolio and Holding models - the derived holdings aggregate for an owner.
Rows are rewritten wholesale by every reconstruction; callers never edit them.
"""

from typing import Optional
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from models.enums import HoldingOrigin


class Portfolio(SQLModel, table=True):
    """One portfolio per owner."""
    id: Optional[int] = Field(default=None, primary_key=True)
    owner: str = Field(index=True, unique=True)
    last_updated: datetime = Field(default_factory=datetime.now, sa_type=DateTime)  # Last reconstruction


class Holding(SQLModel, table=True):
    """A per-asset position derived from the ledger."""
    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolio.id", index=True)
    position: int = Field(default=0)  # Order in which the asset first appeared during replay
    asset_symbol: str = Field(index=True)
    quantity: float = 0.0  # Signed: may go negative when disposals exceed acquisitions
    average_price: float = 0.0
    category: Optional[str] = Field(default=None)
    origin: HoldingOrigin = Field(default=HoldingOrigin.PURCHASED)
