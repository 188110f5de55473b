"""Recurring services, their payment rules and per-period bills."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .enums import BenefitType, BillStatus
from .types import money_column, utcnow


class Service(SQLModel, table=True):
    """A recurring obligation such as electricity or a streaming plan."""

    __tablename__: ClassVar[str] = "service"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80)
    category_id: Optional[int] = Field(default=None, foreign_key="category.id")
    default_amount: Decimal = Field(default=Decimal("0"), sa_column=money_column())
    # None marks a manual service: bills are only created by hand.
    default_due_day: Optional[int] = Field(default=None)
    active: bool = Field(default=True, nullable=False)
    renewal_date: Optional[date] = Field(default=None)
    renewal_note: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class ServicePaymentRule(SQLModel, table=True):
    """How a service is usually paid: product, due day and card benefit."""

    __tablename__: ClassVar[str] = "service_payment_rule"
    __table_args__ = (UniqueConstraint("service_id", "product_id", name="uq_rule_service_product"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    service_id: int = Field(foreign_key="service.id", nullable=False, index=True)
    product_id: int = Field(foreign_key="financial_product.id", nullable=False)
    due_day: Optional[int] = Field(default=None)
    benefit_type: BenefitType = Field(default=BenefitType.NONE, nullable=False)
    benefit_value: Decimal = Field(default=Decimal("0"), sa_column=money_column())
    is_default: bool = Field(default=False, nullable=False)


class ServiceBill(SQLModel, table=True):
    """One period's instance of a service. Overdue-ness is derived, not stored."""

    __tablename__: ClassVar[str] = "service_bill"
    __table_args__ = (UniqueConstraint("service_id", "year", "month", name="uq_bill_period"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    service_id: int = Field(foreign_key="service.id", nullable=False, index=True)
    year: int = Field(nullable=False)
    month: int = Field(nullable=False)
    due_date: date = Field(nullable=False)
    amount: Decimal = Field(sa_column=money_column())
    status: BillStatus = Field(default=BillStatus.PENDING, nullable=False, index=True)
    transaction_id: Optional[int] = Field(default=None, foreign_key="transaction.id")
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
