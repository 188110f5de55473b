"""SQLModel implementation of Transaction repository."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from ...errors import TransactionNotFound
from ...models.enums import TransactionType
from ...models.transaction import Transaction


@dataclass(slots=True)
class TransactionFilters:
    """Optional narrowing for transaction listings."""

    product_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    limit: Optional[int] = None
    offset: int = 0


class SQLModelTransactionRepository:
    """SQLModel-based transaction repository implementation."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, transaction_id: int, *, user_id: int) -> Optional[Transaction]:
        """Retrieve a transaction by ID."""
        return self.session.exec(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .where(Transaction.user_id == user_id)
        ).first()

    def require(self, transaction_id: int, *, user_id: int) -> Transaction:
        txn = self.get_by_id(transaction_id, user_id=user_id)
        if txn is None:
            raise TransactionNotFound("Transaction not found.", transaction_id=transaction_id)
        return txn

    def search(self, filters: TransactionFilters, *, user_id: int) -> list[Transaction]:
        """Newest first; the product filter matches either side of a transfer."""
        statement = select(Transaction).where(Transaction.user_id == user_id)
        if filters.product_id is not None:
            statement = statement.where(
                or_(
                    Transaction.from_product_id == filters.product_id,
                    Transaction.to_product_id == filters.product_id,
                )
            )
        if filters.start_date is not None:
            statement = statement.where(Transaction.occurred_on >= filters.start_date)
        if filters.end_date is not None:
            statement = statement.where(Transaction.occurred_on <= filters.end_date)
        if filters.type is not None:
            statement = statement.where(Transaction.type == filters.type)
        if filters.category_id is not None:
            statement = statement.where(Transaction.category_id == filters.category_id)
        statement = statement.order_by(
            Transaction.occurred_on.desc(), Transaction.id.desc()  # type: ignore
        ).offset(filters.offset)
        if filters.limit is not None:
            statement = statement.limit(filters.limit)
        return list(self.session.exec(statement).all())

    def list_group(self, installment_group: str, *, user_id: int) -> list[Transaction]:
        """All rows of one financed purchase, in installment order."""
        statement = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .where(Transaction.installment_group == installment_group)
            .order_by(Transaction.installment_number)  # type: ignore
        )
        return list(self.session.exec(statement).all())

    def card_expenses_between(
        self, card_id: int, after: date, until: date
    ) -> list[Transaction]:
        """EXPENSE rows charged to ``card_id`` dated in the window (after, until]."""
        statement = (
            select(Transaction)
            .where(Transaction.from_product_id == card_id)
            .where(Transaction.type == TransactionType.EXPENSE)
            .where(Transaction.occurred_on > after)
            .where(Transaction.occurred_on <= until)
            .order_by(Transaction.occurred_on, Transaction.id)  # type: ignore
        )
        return list(self.session.exec(statement).all())

    def references_product(self, product_id: int) -> bool:
        statement = select(Transaction.id).where(
            or_(Transaction.from_product_id == product_id, Transaction.to_product_id == product_id)
        )
        return self.session.exec(statement).first() is not None

    def add(self, txn: Transaction) -> Transaction:
        self.session.add(txn)
        self.session.flush()
        return txn

    def delete(self, txn: Transaction) -> None:
        self.session.delete(txn)
        self.session.flush()
