"""SQLModel implementation of credit-card statement storage."""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlmodel import Session, select

from ...errors import NotFoundError
from ...models.enums import SummaryStatus
from ...models.statement import CreditCardSummary, SummaryAdjustment, SummaryItem


class SQLModelStatementRepository:
    """Statements, their items and their adjustments."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, statement_id: int, *, user_id: int) -> Optional[CreditCardSummary]:
        return self.session.exec(
            select(CreditCardSummary).where(
                CreditCardSummary.id == statement_id, CreditCardSummary.user_id == user_id
            )
        ).first()

    def require(self, statement_id: int, *, user_id: int) -> CreditCardSummary:
        statement = self.get_by_id(statement_id, user_id=user_id)
        if statement is None:
            raise NotFoundError("Statement not found.", statement_id=statement_id)
        return statement

    def for_period(self, product_id: int, year: int, month: int) -> Optional[CreditCardSummary]:
        return self.session.exec(
            select(CreditCardSummary).where(
                CreditCardSummary.product_id == product_id,
                CreditCardSummary.year == year,
                CreditCardSummary.month == month,
            )
        ).first()

    def list_for_card(
        self, product_id: int, *, user_id: int, status: Optional[SummaryStatus] = None
    ) -> list[CreditCardSummary]:
        """Statements of one card, most recent period first."""
        query = select(CreditCardSummary).where(
            CreditCardSummary.product_id == product_id, CreditCardSummary.user_id == user_id
        )
        if status is not None:
            query = query.where(CreditCardSummary.status == status)
        query = query.order_by(
            CreditCardSummary.year.desc(), CreditCardSummary.month.desc()  # type: ignore
        )
        return list(self.session.exec(query).all())

    def latest_open(self, product_id: int) -> Optional[CreditCardSummary]:
        """The card's OPEN statement with the most recent period, if any."""
        return self.session.exec(
            select(CreditCardSummary)
            .where(
                CreditCardSummary.product_id == product_id,
                CreditCardSummary.status == SummaryStatus.OPEN,
            )
            .order_by(CreditCardSummary.year.desc(), CreditCardSummary.month.desc())  # type: ignore
        ).first()

    def open_closing_before(
        self, as_of: date, *, user_id: int, product_id: Optional[int] = None
    ) -> list[CreditCardSummary]:
        """OPEN statements whose closing date has passed, oldest first."""
        query = select(CreditCardSummary).where(
            CreditCardSummary.user_id == user_id,
            CreditCardSummary.status == SummaryStatus.OPEN,
            CreditCardSummary.closing_date < as_of,
        )
        if product_id is not None:
            query = query.where(CreditCardSummary.product_id == product_id)
        query = query.order_by(CreditCardSummary.closing_date)  # type: ignore
        return list(self.session.exec(query).all())

    def add(self, statement: CreditCardSummary) -> CreditCardSummary:
        self.session.add(statement)
        self.session.flush()
        return statement

    def delete(self, statement: CreditCardSummary) -> None:
        for adjustment in self.adjustments(statement.id):
            self.session.delete(adjustment)
        for item in self.items(statement.id):
            self.session.delete(item)
        self.session.flush()
        self.session.delete(statement)
        self.session.flush()

    # Items

    def items(self, statement_id: int) -> list[SummaryItem]:
        return list(
            self.session.exec(
                select(SummaryItem)
                .where(SummaryItem.summary_id == statement_id)
                .order_by(SummaryItem.id)  # type: ignore
            ).all()
        )

    def get_item(self, item_id: int, *, user_id: int) -> Optional[SummaryItem]:
        return self.session.exec(
            select(SummaryItem)
            .join(CreditCardSummary, SummaryItem.summary_id == CreditCardSummary.id)
            .where(SummaryItem.id == item_id, CreditCardSummary.user_id == user_id)
        ).first()

    def items_for_transaction(self, transaction_id: int) -> list[SummaryItem]:
        return list(
            self.session.exec(
                select(SummaryItem).where(SummaryItem.transaction_id == transaction_id)
            ).all()
        )

    # Adjustments

    def adjustments(self, statement_id: int) -> list[SummaryAdjustment]:
        return list(
            self.session.exec(
                select(SummaryAdjustment)
                .where(SummaryAdjustment.summary_id == statement_id)
                .order_by(SummaryAdjustment.id)  # type: ignore
            ).all()
        )

    def get_adjustment(self, adjustment_id: int, *, user_id: int) -> Optional[SummaryAdjustment]:
        return self.session.exec(
            select(SummaryAdjustment)
            .join(CreditCardSummary, SummaryAdjustment.summary_id == CreditCardSummary.id)
            .where(SummaryAdjustment.id == adjustment_id, CreditCardSummary.user_id == user_id)
        ).first()

    def paid_by_transaction(self, transaction_id: int) -> list[CreditCardSummary]:
        return list(
            self.session.exec(
                select(CreditCardSummary).where(
                    CreditCardSummary.payment_transaction_id == transaction_id
                )
            ).all()
        )
