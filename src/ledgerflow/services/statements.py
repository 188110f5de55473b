"""Credit-card statement cycle: open, sync, close, adjust and pay."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from sqlmodel import Session

from ..errors import (
    CurrencyMismatchUnresolvable,
    MissingDescription,
    PolicyViolation,
    ProductTypeNotEligible,
    RateUnavailable,
    StatementClosed,
    ValidationError,
    returns_result,
)
from ..infra.database import SessionFactory
from ..infra.repositories.product import SQLModelProductRepository
from ..infra.repositories.statement import SQLModelStatementRepository
from ..infra.repositories.transaction import SQLModelTransactionRepository
from ..logging_config import get_logger
from ..models.enums import AdjustmentType, ProductType, SummaryStatus, TransactionType
from ..models.product import FinancialProduct
from ..models.statement import CreditCardSummary, SummaryAdjustment, SummaryItem
from ..models.transaction import Transaction
from ..models.types import utcnow
from ..money import ZERO, positive_amount, quantize
from . import validations
from .ledger import ProductLedger
from .periods import StatementPeriod, add_months, period_for_month, statement_period_for
from .rates import ExchangeRateResolver

logger = get_logger(__name__)


@dataclass(slots=True)
class StatementDetail:
    """A statement with its items and adjustments."""

    statement: CreditCardSummary
    items: list[SummaryItem] = field(default_factory=list)
    adjustments: list[SummaryAdjustment] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ProjectedStatement:
    """Expected charges of a future period from recorded installments."""

    year: int
    month: int
    closing_date: date
    due_date: date
    amount: Decimal
    transaction_count: int


class StatementCycleEngine:
    """Derives statements from a card's EXPENSE rows.

    Items are never entered by hand: :meth:`sync` rebuilds them from the
    transactions dated inside the statement window, keeping reconciliation
    flags of rows that stay.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        ledger: ProductLedger,
        rates: ExchangeRateResolver,
        *,
        clock: Callable[[], date] = date.today,
        default_closing_day: int = 15,
        default_due_day: int = 5,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.rates = rates
        self.clock = clock
        self.default_closing_day = default_closing_day
        self.default_due_day = default_due_day

    # Period math

    def card_days(self, card: FinancialProduct) -> tuple[int, int]:
        return (
            card.closing_day or self.default_closing_day,
            card.due_day or self.default_due_day,
        )

    def period_for(self, card: FinancialProduct, day: date) -> StatementPeriod:
        return statement_period_for(day, *self.card_days(card))

    # In-unit operations

    def _require_card(self, session: Session, user_id: int, card_id: int) -> FinancialProduct:
        card = SQLModelProductRepository(session).require(card_id, user_id=user_id)
        if card.type != ProductType.CREDIT_CARD:
            raise ProductTypeNotEligible("Statements exist only for credit cards.", product_id=card_id)
        return card

    def _window_start(self, session: Session, statement: CreditCardSummary, card: FinancialProduct) -> date:
        """Exclusive lower bound: the previous statement's closing date when it exists."""
        prev_year, prev_month = add_months(statement.year, statement.month, -1)
        previous = SQLModelStatementRepository(session).for_period(card.id, prev_year, prev_month)
        if previous is not None:
            return previous.closing_date
        return period_for_month(statement.year, statement.month, *self.card_days(card)).opens_after

    def recompute_totals(self, session: Session, statement: CreditCardSummary) -> None:
        adjustments = SQLModelStatementRepository(session).adjustments(statement.id)
        statement.adjustments_amount = sum((a.amount for a in adjustments), ZERO)
        statement.total_amount = statement.calculated_amount + statement.adjustments_amount
        statement.updated_at = utcnow()
        session.add(statement)
        session.flush()

    def sync(self, session: Session, statement: CreditCardSummary, card: FinancialProduct) -> None:
        """Rebuild items from the card's EXPENSE rows in the statement window."""
        repo = SQLModelStatementRepository(session)
        txns = SQLModelTransactionRepository(session).card_expenses_between(
            card.id, self._window_start(session, statement, card), statement.closing_date
        )
        existing = {item.transaction_id: item for item in repo.items(statement.id)}
        wanted = {txn.id for txn in txns}
        for transaction_id, item in existing.items():
            if transaction_id not in wanted:
                session.delete(item)
        for txn in txns:
            item = existing.get(txn.id)
            if item is None:
                session.add(SummaryItem(summary_id=statement.id, transaction_id=txn.id, amount=txn.amount))
            elif item.amount != txn.amount:
                item.amount = txn.amount
                session.add(item)
        session.flush()
        statement.calculated_amount = sum((txn.amount for txn in txns), ZERO)
        self.recompute_totals(session, statement)

    def get_or_open(self, session: Session, card: FinancialProduct, period: StatementPeriod) -> CreditCardSummary:
        repo = SQLModelStatementRepository(session)
        statement = repo.for_period(card.id, period.year, period.month)
        if statement is not None:
            return statement
        statement = repo.add(
            CreditCardSummary(
                user_id=card.user_id,
                product_id=card.id,
                year=period.year,
                month=period.month,
                closing_date=period.closing_date,
                due_date=period.due_date,
                status=SummaryStatus.OPEN,
            )
        )
        logger.info(
            "Statement opened",
            extra={"product_id": card.id, "statement_id": statement.id, "period": f"{period.year}-{period.month:02d}"},
        )
        return statement

    def roll_forward(self, session: Session, card: FinancialProduct, as_of: date) -> list[CreditCardSummary]:
        """Close every OPEN statement of ``card`` whose closing date is before ``as_of``."""
        closed = []
        for statement in SQLModelStatementRepository(session).open_closing_before(
            as_of, user_id=card.user_id, product_id=card.id
        ):
            self.sync(session, statement, card)
            statement.status = SummaryStatus.CLOSED
            session.add(statement)
            session.flush()
            closed.append(statement)
            logger.info(
                "Statement closed",
                extra={"product_id": card.id, "statement_id": statement.id, "total": statement.total_amount},
            )
        return closed

    def current_in(self, session: Session, card: FinancialProduct, as_of: date) -> CreditCardSummary:
        self.roll_forward(session, card, as_of)
        period = self.period_for(card, as_of)
        repo = SQLModelStatementRepository(session)
        statement = repo.for_period(card.id, period.year, period.month)
        if statement is None:
            live = repo.latest_open(card.id)
            # a card has at most one OPEN statement; older periods are not reopened
            if live is not None and (live.year, live.month) > period.key:
                statement = live
            else:
                statement = self.get_or_open(session, card, period)
        if statement.status == SummaryStatus.OPEN:
            self.sync(session, statement, card)
        return statement

    def guard_posting(self, session: Session, card: FinancialProduct, occurred_on: date) -> None:
        """Reject changes to a card charge dated in a closed or paid period."""
        self.roll_forward(session, card, self.clock())
        period = self.period_for(card, occurred_on)
        statement = SQLModelStatementRepository(session).for_period(card.id, period.year, period.month)
        if statement is not None and statement.status != SummaryStatus.OPEN:
            raise StatementClosed(
                f"The {period.year}-{period.month:02d} statement is {statement.status.value.lower()}.",
                product_id=card.id,
                statement_id=statement.id,
            )

    def on_card_posting(self, session: Session, card: FinancialProduct, occurred_on: date) -> None:
        """Keep the affected statement in step after a card charge changed.

        Current period: sync (opening the statement lazily). Future period:
        nothing to do yet. Closed period: rejected.
        """
        self.guard_posting(session, card, occurred_on)
        period = self.period_for(card, occurred_on)
        repo = SQLModelStatementRepository(session)
        statement = repo.for_period(card.id, period.year, period.month)
        if statement is not None:
            self.sync(session, statement, card)
        elif period.key == self.period_for(card, self.clock()).key:
            self.sync(session, self.get_or_open(session, card, period), card)

    def detach_transaction(self, session: Session, txn: Transaction) -> None:
        """Drop statement items pointing at ``txn`` and undo a statement payment it made."""
        repo = SQLModelStatementRepository(session)
        for item in repo.items_for_transaction(txn.id):
            session.delete(item)
        for statement in repo.paid_by_transaction(txn.id):
            statement.status = SummaryStatus.CLOSED
            statement.paid_date = None
            statement.paid_from_product_id = None
            statement.payment_transaction_id = None
            session.add(statement)
            logger.info("Statement payment reverted", extra={"statement_id": statement.id})
        session.flush()

    # Public API

    @returns_result
    def current_statement(self, user_id: int, card_id: int, as_of: Optional[date] = None) -> CreditCardSummary:
        with self.session_factory() as session:
            card = self._require_card(session, user_id, card_id)
            return self.current_in(session, card, as_of or self.clock())

    @returns_result
    def close_due_statements(
        self, user_id: int, as_of: Optional[date] = None, card_id: Optional[int] = None
    ) -> list[CreditCardSummary]:
        """Close every statement past its closing date and open the next period."""
        as_of = as_of or self.clock()
        closed: list[CreditCardSummary] = []
        with self.session_factory() as session:
            if card_id is not None:
                cards = [self._require_card(session, user_id, card_id)]
            else:
                cards = SQLModelProductRepository(session).list_all(
                    user_id=user_id, product_type=ProductType.CREDIT_CARD
                )
            for card in cards:
                closed.extend(self.roll_forward(session, card, as_of))
                self.current_in(session, card, as_of)
        return closed

    @returns_result
    def list_statements(
        self, user_id: int, card_id: int, status: Optional[SummaryStatus] = None
    ) -> list[CreditCardSummary]:
        with self.session_factory() as session:
            self._require_card(session, user_id, card_id)
            return SQLModelStatementRepository(session).list_for_card(
                card_id, user_id=user_id, status=SummaryStatus(status) if status else None
            )

    @returns_result
    def get_statement(self, user_id: int, statement_id: int) -> StatementDetail:
        with self.session_factory() as session:
            repo = SQLModelStatementRepository(session)
            statement = repo.require(statement_id, user_id=user_id)
            return StatementDetail(
                statement=statement,
                items=repo.items(statement.id),
                adjustments=repo.adjustments(statement.id),
            )

    @returns_result
    def add_adjustment(
        self,
        user_id: int,
        statement_id: int,
        adjustment_type: AdjustmentType,
        description: str,
        amount: Decimal,
    ) -> SummaryAdjustment:
        """Add a fee, tax, interest or credit line to an unpaid statement.

        The card balance moves with it: charges deepen the debt, credits reduce it.
        """
        adjustment_type = AdjustmentType(adjustment_type)
        description = (description or "").strip()
        if not description:
            raise MissingDescription("The adjustment needs a description.")
        with self.session_factory() as session:
            statement = SQLModelStatementRepository(session).require(statement_id, user_id=user_id)
            if statement.status == SummaryStatus.PAID:
                raise StatementClosed("Paid statements cannot be adjusted.", statement_id=statement_id)
            card = self._require_card(session, user_id, statement.product_id)
            value = positive_amount(amount, card.currency)
            signed = -value if adjustment_type == AdjustmentType.CREDIT else value
            adjustment = SummaryAdjustment(
                summary_id=statement.id, type=adjustment_type, description=description, amount=signed
            )
            session.add(adjustment)
            session.flush()
            self.ledger.apply_balance_delta(session, card, -signed, enforce_bounds=False)
            self.recompute_totals(session, statement)
        logger.info(
            "Statement adjustment added",
            extra={"statement_id": statement_id, "adjustment_type": adjustment_type.value, "amount": signed},
        )
        return adjustment

    @returns_result
    def delete_adjustment(self, user_id: int, adjustment_id: int) -> None:
        with self.session_factory() as session:
            repo = SQLModelStatementRepository(session)
            adjustment = repo.get_adjustment(adjustment_id, user_id=user_id)
            if adjustment is None:
                raise ValidationError("Adjustment not found.", adjustment_id=adjustment_id)
            statement = repo.require(adjustment.summary_id, user_id=user_id)
            if statement.status == SummaryStatus.PAID:
                raise StatementClosed("Paid statements cannot be adjusted.", statement_id=statement.id)
            card = self._require_card(session, user_id, statement.product_id)
            self.ledger.apply_balance_delta(session, card, adjustment.amount, enforce_bounds=False)
            session.delete(adjustment)
            session.flush()
            self.recompute_totals(session, statement)
        logger.info("Statement adjustment deleted", extra={"adjustment_id": adjustment_id})

    @returns_result
    def pay_statement(
        self,
        user_id: int,
        statement_id: int,
        from_product_id: int,
        paid_on: Optional[date] = None,
    ) -> CreditCardSummary:
        """Settle a CLOSED statement with a transfer from a liquid product."""
        paid_on = paid_on or self.clock()
        with self.session_factory() as session:
            statement = SQLModelStatementRepository(session).require(statement_id, user_id=user_id)
            if statement.status == SummaryStatus.PAID:
                raise StatementClosed("The statement is already paid.", statement_id=statement_id)
            if statement.status != SummaryStatus.CLOSED:
                raise PolicyViolation("Only closed statements can be paid.", statement_id=statement_id)
            card = self._require_card(session, user_id, statement.product_id)
            origin = SQLModelProductRepository(session).require(from_product_id, user_id=user_id)
            validations.require_type(origin, validations.TRANSFER_ORIGIN_TYPES, "payment origin")

            if statement.total_amount > 0:
                txn = Transaction(
                    user_id=user_id,
                    type=TransactionType.TRANSFER,
                    occurred_on=paid_on,
                    description=f"{card.name} statement {statement.year}-{statement.month:02d}",
                    from_product_id=origin.id,
                    to_product_id=card.id,
                    amount=statement.total_amount,
                )
                if origin.currency != card.currency:
                    try:
                        rate = self.rates.latest_rate_in(session, origin.currency, card.currency)
                    except RateUnavailable as exc:
                        raise CurrencyMismatchUnresolvable(exc.message, **exc.details) from exc
                    txn.amount = quantize(statement.total_amount / rate, origin.currency)
                    txn.converted_amount = statement.total_amount
                    txn.exchange_rate = rate
                SQLModelTransactionRepository(session).add(txn)
                self.ledger.post(session, txn)
                statement.payment_transaction_id = txn.id

            statement.status = SummaryStatus.PAID
            statement.paid_date = paid_on
            statement.paid_from_product_id = origin.id
            statement.updated_at = utcnow()
            session.add(statement)
            session.flush()
        logger.info(
            "Statement paid",
            extra={
                "user_id": user_id,
                "statement_id": statement_id,
                "from_product_id": from_product_id,
                "total": statement.total_amount,
            },
        )
        return statement

    @returns_result
    def update_item(
        self,
        user_id: int,
        item_id: int,
        *,
        is_reconciled: Optional[bool] = None,
        has_discrepancy: Optional[bool] = None,
        note: Optional[str] = None,
    ) -> SummaryItem:
        with self.session_factory() as session:
            repo = SQLModelStatementRepository(session)
            item = repo.get_item(item_id, user_id=user_id)
            if item is None:
                raise ValidationError("Statement item not found.", item_id=item_id)
            statement = repo.require(item.summary_id, user_id=user_id)
            if statement.status == SummaryStatus.PAID:
                raise StatementClosed("Paid statements cannot be changed.", statement_id=statement.id)
            if is_reconciled is not None:
                item.is_reconciled = is_reconciled
            if has_discrepancy is not None:
                item.has_discrepancy = has_discrepancy
            if note is not None:
                item.note = note.strip() or None
            session.add(item)
            session.flush()
        return item

    @returns_result
    def update_statement_dates(
        self,
        user_id: int,
        statement_id: int,
        *,
        closing_date: Optional[date] = None,
        due_date: Optional[date] = None,
    ) -> CreditCardSummary:
        """Move a statement's closing or due date, e.g. after a bank holiday."""
        with self.session_factory() as session:
            statement = SQLModelStatementRepository(session).require(statement_id, user_id=user_id)
            if statement.status == SummaryStatus.PAID:
                raise StatementClosed("Paid statements cannot be changed.", statement_id=statement_id)
            if closing_date is not None:
                statement.closing_date = closing_date
            if due_date is not None:
                statement.due_date = due_date
            if statement.closing_date >= statement.due_date:
                raise ValidationError("The closing date must be before the due date.")
            session.add(statement)
            session.flush()
            if statement.status == SummaryStatus.OPEN:
                self.sync(session, statement, self._require_card(session, user_id, statement.product_id))
        return statement

    @returns_result
    def projected_statements(
        self, user_id: int, card_id: int, as_of: Optional[date] = None, months_ahead: int = 12
    ) -> list[ProjectedStatement]:
        """Per-period totals of charges already recorded for future periods."""
        if months_ahead < 1:
            raise ValidationError("months_ahead must be at least 1.", months_ahead=months_ahead)
        as_of = as_of or self.clock()
        projections = []
        with self.session_factory() as session:
            card = self._require_card(session, user_id, card_id)
            closing_day, due_day = self.card_days(card)
            current = self.period_for(card, as_of)
            txns = SQLModelTransactionRepository(session)
            for offset in range(1, months_ahead + 1):
                year, month = add_months(current.year, current.month, offset)
                period = period_for_month(year, month, closing_day, due_day)
                rows = txns.card_expenses_between(card.id, period.opens_after, period.closing_date)
                if not rows:
                    continue
                projections.append(
                    ProjectedStatement(
                        year=year,
                        month=month,
                        closing_date=period.closing_date,
                        due_date=period.due_date,
                        amount=sum((row.amount for row in rows), ZERO),
                        transaction_count=len(rows),
                    )
                )
        return projections
