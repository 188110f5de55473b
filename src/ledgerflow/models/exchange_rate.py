"""Directional exchange-rate table."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from .enums import Currency
from .types import money_column, utcnow


class ExchangeRate(SQLModel, table=True):
    """Multiply a ``from_currency`` amount by ``rate`` to get ``to_currency``."""

    __tablename__: ClassVar[str] = "exchange_rate"

    id: Optional[int] = Field(default=None, primary_key=True)
    from_currency: Currency = Field(nullable=False, index=True)
    to_currency: Currency = Field(nullable=False, index=True)
    rate: Decimal = Field(sa_column=money_column())
    effective_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    source: str = Field(default="MANUAL", max_length=32)
