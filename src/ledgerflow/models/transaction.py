"""SQLModel definitions for ledger transactions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from .enums import TransactionType
from .types import money_column, utcnow


class Transaction(SQLModel, table=True):
    """One movement of money.

    ``amount`` is always positive; direction comes from ``type`` and which
    product reference is set (INCOME -> to, EXPENSE -> from, TRANSFER -> both).
    """

    __tablename__: ClassVar[str] = "transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    type: TransactionType = Field(nullable=False, index=True)
    amount: Decimal = Field(sa_column=money_column())
    occurred_on: date = Field(nullable=False, index=True)
    description: str = Field(nullable=False, max_length=255)
    category_id: Optional[int] = Field(default=None, foreign_key="category.id", index=True)
    from_product_id: Optional[int] = Field(default=None, foreign_key="financial_product.id", index=True)
    to_product_id: Optional[int] = Field(default=None, foreign_key="financial_product.id", index=True)

    # Cross-currency transfers keep the destination amount and the rate used.
    converted_amount: Optional[Decimal] = Field(default=None, sa_column=money_column(nullable=True))
    exchange_rate: Optional[Decimal] = Field(default=None, sa_column=money_column(nullable=True))

    # Present only on the N rows generated from one financed purchase.
    installment_number: Optional[int] = Field(default=None)
    installment_total: Optional[int] = Field(default=None)
    installment_amount: Optional[Decimal] = Field(default=None, sa_column=money_column(nullable=True))
    installment_group: Optional[str] = Field(default=None, index=True, max_length=36)

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    @property
    def destination_amount(self) -> Decimal:
        """Amount credited to the destination leg."""
        return self.converted_amount if self.converted_amount is not None else self.amount
