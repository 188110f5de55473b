"""Credit-card statements (summaries), their items and manual adjustments."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .enums import AdjustmentType, SummaryStatus
from .types import money_column, utcnow


class CreditCardSummary(SQLModel, table=True):
    """One billing cycle of a credit card.

    ``total_amount`` is always ``calculated_amount + adjustments_amount``;
    the engine recomputes it whenever either part changes.
    """

    __tablename__: ClassVar[str] = "credit_card_summary"
    __table_args__ = (UniqueConstraint("product_id", "year", "month", name="uq_summary_period"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    product_id: int = Field(foreign_key="financial_product.id", nullable=False, index=True)
    year: int = Field(nullable=False)
    month: int = Field(nullable=False)
    closing_date: date = Field(nullable=False)
    due_date: date = Field(nullable=False)
    paid_date: Optional[date] = Field(default=None)
    calculated_amount: Decimal = Field(default=Decimal("0"), sa_column=money_column())
    adjustments_amount: Decimal = Field(default=Decimal("0"), sa_column=money_column())
    total_amount: Decimal = Field(default=Decimal("0"), sa_column=money_column())
    status: SummaryStatus = Field(default=SummaryStatus.OPEN, nullable=False, index=True)
    paid_from_product_id: Optional[int] = Field(default=None, foreign_key="financial_product.id")
    payment_transaction_id: Optional[int] = Field(default=None, foreign_key="transaction.id")
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class SummaryItem(SQLModel, table=True):
    """A transaction's contribution to a statement."""

    __tablename__: ClassVar[str] = "summary_item"
    __table_args__ = (UniqueConstraint("summary_id", "transaction_id", name="uq_summary_item"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    summary_id: int = Field(foreign_key="credit_card_summary.id", nullable=False, index=True)
    transaction_id: int = Field(foreign_key="transaction.id", nullable=False, index=True)
    amount: Decimal = Field(sa_column=money_column())
    is_reconciled: bool = Field(default=False, nullable=False)
    has_discrepancy: bool = Field(default=False, nullable=False)
    note: Optional[str] = Field(default=None, max_length=255)


class SummaryAdjustment(SQLModel, table=True):
    """Manual correction (fee, tax, credit) added outside the transaction flow."""

    __tablename__: ClassVar[str] = "summary_adjustment"

    id: Optional[int] = Field(default=None, primary_key=True)
    summary_id: int = Field(foreign_key="credit_card_summary.id", nullable=False, index=True)
    type: AdjustmentType = Field(nullable=False)
    description: str = Field(nullable=False, max_length=255)
    # CREDIT adjustments are stored negative so the sum is the net adjustment.
    amount: Decimal = Field(sa_column=money_column())
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
