"""Financial products: cash, accounts, cards and loans."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from .enums import CardProvider, Currency, ProductType
from .types import money_column, utcnow


class FinancialProduct(SQLModel, table=True):
    """A named holding of money in a single currency.

    ``balance`` is signed: credit cards and loans carry debt as a negative
    balance. It is only changed through version-checked deltas.
    """

    __tablename__: ClassVar[str] = "financial_product"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80)
    type: ProductType = Field(nullable=False, index=True)
    currency: Currency = Field(nullable=False)
    balance: Decimal = Field(default=Decimal("0"), sa_column=money_column())
    institution_id: Optional[int] = Field(default=None, foreign_key="financial_institution.id", index=True)

    # Credit-card cycle and limits
    closing_day: Optional[int] = Field(default=None)
    due_day: Optional[int] = Field(default=None)
    limit: Optional[Decimal] = Field(default=None, sa_column=money_column(nullable=True))
    limit_single_payment: Optional[Decimal] = Field(default=None, sa_column=money_column(nullable=True))
    limit_installments: Optional[Decimal] = Field(default=None, sa_column=money_column(nullable=True))
    shared_limit: bool = Field(default=False, nullable=False)
    unified_limit: bool = Field(default=False, nullable=False)
    # Debit card -> savings account it draws from; shared-limit card -> card holding the limit.
    linked_product_id: Optional[int] = Field(default=None, foreign_key="financial_product.id")

    # Card metadata
    last_four_digits: Optional[str] = Field(default=None, max_length=4)
    provider: Optional[CardProvider] = Field(default=None)
    expiration_date: Optional[date] = Field(default=None)

    version: int = Field(default=1, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
