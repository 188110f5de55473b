"""Transaction engine: income, expenses, installments and transfers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional

from sqlmodel import Session

from ..errors import (
    CreditLimitExceeded,
    CurrencyMismatchUnresolvable,
    InvalidAmount,
    LedgerError,
    MissingDescription,
    ProductTypeNotEligible,
    RateUnavailable,
    TransactionNotFound,
    ValidationError,
    returns_result,
)
from ..infra.database import SessionFactory
from ..infra.repositories.category import SQLModelCategoryRepository
from ..infra.repositories.product import SQLModelProductRepository
from ..infra.repositories.service import SQLModelServiceRepository
from ..infra.repositories.transaction import SQLModelTransactionRepository, TransactionFilters
from ..logging_config import get_logger
from ..models.enums import BillStatus, ProductType, TransactionType
from ..models.product import FinancialProduct
from ..models.transaction import Transaction
from ..models.types import utcnow
from ..money import positive_amount, quantize, quantum, split_evenly
from . import validations
from .ledger import ProductLedger
from .periods import shift_date
from .rates import ExchangeRateResolver
from .statements import StatementCycleEngine

logger = get_logger(__name__)

EXPENSE_PRODUCT_TYPES = validations.INCOME_PRODUCT_TYPES | {ProductType.CREDIT_CARD}

MAX_INSTALLMENTS = 72


@dataclass(slots=True)
class TransactionEdit:
    """Partial edit; ``None`` keeps the current value.

    ``product_id`` replaces the single product of an income or expense, or
    the origin of a transfer; ``to_product_id`` replaces a transfer's destination.
    """

    amount: Optional[Decimal] = None
    description: Optional[str] = None
    occurred_on: Optional[date] = None
    category_id: Optional[int] = None
    product_id: Optional[int] = None
    to_product_id: Optional[int] = None


@dataclass(slots=True)
class CashAdvance:
    """Rows written by one cash advance ("income by credit")."""

    income: Transaction
    charge: Transaction
    commission: Optional[Transaction] = None


@dataclass(slots=True)
class ExpenseRow:
    """One purchase in a bulk load; ``occurred_on`` defaults to today."""

    product_id: int
    amount: Decimal
    description: str
    occurred_on: Optional[date] = None
    category_id: Optional[int] = None
    installments: int = 1
    installment_amount: Optional[Decimal] = None


@dataclass(slots=True)
class RowError:
    index: int
    description: str
    error: LedgerError


@dataclass(slots=True)
class BulkExpenseResult:
    """Purchases recorded by a bulk load and the rows that were rejected."""

    created_count: int = 0
    transactions: list[Transaction] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


def _description(value: Optional[str]) -> str:
    text = (value or "").strip()
    if not text:
        raise MissingDescription("A description is required.")
    return text


class TransactionEngine:
    """Records movements of money and keeps balances and statements consistent."""

    def __init__(
        self,
        session_factory: SessionFactory,
        ledger: ProductLedger,
        rates: ExchangeRateResolver,
        statements: StatementCycleEngine,
        *,
        clock: Callable[[], date] = date.today,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.rates = rates
        self.statements = statements
        self.clock = clock

    # In-unit helpers

    def _card_charged(self, session: Session, txn: Transaction) -> Optional[FinancialProduct]:
        """The credit card an EXPENSE row is charged to, if any."""
        if txn.type != TransactionType.EXPENSE or txn.from_product_id is None:
            return None
        product = SQLModelProductRepository(session).require(txn.from_product_id, user_id=txn.user_id)
        return product if product.type == ProductType.CREDIT_CARD else None

    def _check_category(self, session: Session, user_id: int, category_id: Optional[int]) -> None:
        if category_id is not None:
            SQLModelCategoryRepository(session).require(category_id, user_id=user_id)

    def _apply_conversion(self, session: Session, txn: Transaction, origin: FinancialProduct, destination: FinancialProduct) -> None:
        """Fill converted_amount and exchange_rate on a cross-currency transfer."""
        if origin.currency == destination.currency:
            txn.converted_amount = None
            txn.exchange_rate = None
            return
        try:
            converted, rate = self.rates.convert_in(session, txn.amount, origin.currency, destination.currency)
        except RateUnavailable as exc:
            raise CurrencyMismatchUnresolvable(
                f"No exchange rate from {origin.currency.value} to {destination.currency.value}.",
                **exc.details,
            ) from exc
        txn.converted_amount = converted
        txn.exchange_rate = rate

    def income_in(
        self,
        session: Session,
        user_id: int,
        product_id: int,
        amount: Decimal,
        description: str,
        occurred_on: date,
        category_id: Optional[int] = None,
    ) -> Transaction:
        description = _description(description)
        product = SQLModelProductRepository(session).require(product_id, user_id=user_id)
        validations.require_type(product, validations.INCOME_PRODUCT_TYPES, "an income destination")
        self._check_category(session, user_id, category_id)
        txn = Transaction(
            user_id=user_id,
            type=TransactionType.INCOME,
            amount=positive_amount(amount, product.currency),
            occurred_on=occurred_on,
            description=description,
            category_id=category_id,
            to_product_id=product.id,
        )
        SQLModelTransactionRepository(session).add(txn)
        self.ledger.post(session, txn)
        return txn

    def expense_in(
        self,
        session: Session,
        user_id: int,
        product_id: int,
        amount: Decimal,
        description: str,
        occurred_on: date,
        category_id: Optional[int] = None,
        installments: int = 1,
        installment_amount: Optional[Decimal] = None,
    ) -> list[Transaction]:
        """Write one EXPENSE row, or N installment rows on a credit card.

        Installments are dated a calendar month apart and their amounts sum
        to the purchase total exactly (or to N x ``installment_amount`` when
        the purchase is financed with interest). The whole debt is posted to
        the card right away, each row carrying its own share.
        """
        description = _description(description)
        product = SQLModelProductRepository(session).require(product_id, user_id=user_id)
        validations.require_type(product, EXPENSE_PRODUCT_TYPES, "an expense origin")
        self._check_category(session, user_id, category_id)
        total = positive_amount(amount, product.currency)
        if not 1 <= installments <= MAX_INSTALLMENTS:
            raise ValidationError(
                f"Installments must be between 1 and {MAX_INSTALLMENTS}.", installments=installments
            )
        repo = SQLModelTransactionRepository(session)

        if installments == 1:
            if installment_amount is not None:
                raise ValidationError("An installment amount needs more than one installment.")
            txn = repo.add(
                Transaction(
                    user_id=user_id,
                    type=TransactionType.EXPENSE,
                    amount=total,
                    occurred_on=occurred_on,
                    description=description,
                    category_id=category_id,
                    from_product_id=product.id,
                )
            )
            self.ledger.post(session, txn)
            if product.type == ProductType.CREDIT_CARD:
                self.statements.on_card_posting(session, product, occurred_on)
            return [txn]

        if product.type != ProductType.CREDIT_CARD:
            raise ProductTypeNotEligible(
                "Only credit cards accept purchases in installments.", product_id=product.id
            )
        if installment_amount is None:
            if total / installments < quantum(product.currency):
                raise InvalidAmount(
                    "Each installment must be at least the smallest unit of the currency.",
                    amount=total,
                    installments=installments,
                )
            shares = split_evenly(total, installments, product.currency)
        else:
            share = positive_amount(installment_amount, product.currency)
            shares = [share] * installments
        debt = sum(shares)
        available = self.ledger.available_credit_in(session, product, installments=True)
        if available is not None and debt > available:
            raise CreditLimitExceeded(
                "The purchase exceeds the card's installment limit.",
                product_id=product.id,
                available=available,
                amount=debt,
            )

        group = str(uuid.uuid4())
        rows = []
        for number, share in enumerate(shares, start=1):
            txn = repo.add(
                Transaction(
                    user_id=user_id,
                    type=TransactionType.EXPENSE,
                    amount=share,
                    occurred_on=shift_date(occurred_on, number - 1, anchor_day=occurred_on.day),
                    description=description,
                    category_id=category_id,
                    from_product_id=product.id,
                    installment_number=number,
                    installment_total=installments,
                    installment_amount=share,
                    installment_group=group,
                )
            )
            self.ledger.post(session, txn, enforce_bounds=False)
            rows.append(txn)
        for txn in rows:
            self.statements.on_card_posting(session, product, txn.occurred_on)
        return rows

    def transfer_in(
        self,
        session: Session,
        user_id: int,
        from_product_id: int,
        to_product_id: int,
        amount: Decimal,
        description: str,
        occurred_on: date,
        category_id: Optional[int] = None,
    ) -> Transaction:
        description = _description(description)
        if from_product_id == to_product_id:
            raise ValidationError("Origin and destination must be different products.")
        products = SQLModelProductRepository(session)
        origin = products.require(from_product_id, user_id=user_id)
        destination = products.require(to_product_id, user_id=user_id)
        validations.require_type(origin, validations.TRANSFER_ORIGIN_TYPES, "a transfer origin")
        validations.require_type(destination, validations.TRANSFER_DESTINATION_TYPES, "a transfer destination")
        self._check_category(session, user_id, category_id)
        txn = Transaction(
            user_id=user_id,
            type=TransactionType.TRANSFER,
            amount=positive_amount(amount, origin.currency),
            occurred_on=occurred_on,
            description=description,
            category_id=category_id,
            from_product_id=origin.id,
            to_product_id=destination.id,
        )
        self._apply_conversion(session, txn, origin, destination)
        SQLModelTransactionRepository(session).add(txn)
        self.ledger.post(session, txn)
        return txn

    def delete_in(self, session: Session, txn: Transaction) -> None:
        """Reverse and remove ``txn`` with every link pointing at it."""
        card = self._card_charged(session, txn)
        if card is not None:
            self.statements.guard_posting(session, card, txn.occurred_on)
        self.statements.detach_transaction(session, txn)
        for bill in SQLModelServiceRepository(session).bills_for_transaction(txn.id):
            bill.transaction_id = None
            bill.status = BillStatus.PENDING
            session.add(bill)
        session.flush()
        self.ledger.reverse(session, txn)
        occurred_on = txn.occurred_on
        SQLModelTransactionRepository(session).delete(txn)
        if card is not None:
            self.statements.on_card_posting(session, card, occurred_on)

    # Public API

    @returns_result
    def record_income(
        self,
        user_id: int,
        product_id: int,
        amount: Decimal,
        description: str,
        occurred_on: Optional[date] = None,
        *,
        category_id: Optional[int] = None,
    ) -> Transaction:
        with self.session_factory() as session:
            txn = self.income_in(
                session, user_id, product_id, amount, description, occurred_on or self.clock(), category_id
            )
        logger.info(
            "Income recorded",
            extra={"user_id": user_id, "transaction_id": txn.id, "product_id": product_id, "amount": txn.amount},
        )
        return txn

    @returns_result
    def record_expense(
        self,
        user_id: int,
        product_id: int,
        amount: Decimal,
        description: str,
        occurred_on: Optional[date] = None,
        *,
        category_id: Optional[int] = None,
        installments: int = 1,
        installment_amount: Optional[Decimal] = None,
    ) -> list[Transaction]:
        with self.session_factory() as session:
            rows = self.expense_in(
                session,
                user_id,
                product_id,
                amount,
                description,
                occurred_on or self.clock(),
                category_id,
                installments,
                installment_amount,
            )
        logger.info(
            "Expense recorded",
            extra={
                "user_id": user_id,
                "product_id": product_id,
                "transaction_ids": [row.id for row in rows],
                "installments": installments,
            },
        )
        return rows

    @returns_result
    def record_expenses_bulk(self, user_id: int, rows: Iterable[ExpenseRow]) -> BulkExpenseResult:
        """Record many purchases, each in its own unit.

        A rejected row is reported in ``errors`` with its position and does
        not stop the rows after it.
        """
        result = BulkExpenseResult()
        for index, row in enumerate(rows):
            try:
                with self.session_factory() as session:
                    created = self.expense_in(
                        session,
                        user_id,
                        row.product_id,
                        row.amount,
                        row.description,
                        row.occurred_on or self.clock(),
                        row.category_id,
                        row.installments,
                        row.installment_amount,
                    )
            except LedgerError as exc:
                result.errors.append(RowError(index=index, description=row.description, error=exc))
                continue
            result.created_count += 1
            result.transactions.extend(created)
        logger.info(
            "Bulk expenses recorded",
            extra={
                "user_id": user_id,
                "created_count": result.created_count,
                "rejected_count": len(result.errors),
            },
        )
        return result

    @returns_result
    def record_transfer(
        self,
        user_id: int,
        from_product_id: int,
        to_product_id: int,
        amount: Decimal,
        description: str,
        occurred_on: Optional[date] = None,
        *,
        category_id: Optional[int] = None,
    ) -> Transaction:
        with self.session_factory() as session:
            txn = self.transfer_in(
                session,
                user_id,
                from_product_id,
                to_product_id,
                amount,
                description,
                occurred_on or self.clock(),
                category_id,
            )
        logger.info(
            "Transfer recorded",
            extra={
                "user_id": user_id,
                "transaction_id": txn.id,
                "from_product_id": from_product_id,
                "to_product_id": to_product_id,
                "amount": txn.amount,
                "converted_amount": txn.converted_amount,
                "exchange_rate": txn.exchange_rate,
            },
        )
        return txn

    @returns_result
    def record_cash_advance(
        self,
        user_id: int,
        card_id: int,
        to_product_id: int,
        amount: Decimal,
        description: str,
        occurred_on: Optional[date] = None,
        *,
        commission: Optional[Decimal] = None,
        category_id: Optional[int] = None,
        commission_category_id: Optional[int] = None,
    ) -> CashAdvance:
        """Borrow cash from a credit card into a liquid product.

        Writes the INCOME on the destination, the matching charge on the card,
        and an optional commission charge, all in one unit.
        """
        description = _description(description)
        occurred_on = occurred_on or self.clock()
        with self.session_factory() as session:
            products = SQLModelProductRepository(session)
            card = products.require(card_id, user_id=user_id)
            destination = products.require(to_product_id, user_id=user_id)
            if card.type != ProductType.CREDIT_CARD:
                raise ProductTypeNotEligible("Cash advances come from a credit card.", product_id=card_id)
            if card.currency != destination.currency:
                raise CurrencyMismatchUnresolvable(
                    "The card and the destination must use the same currency.",
                    card_currency=card.currency.value,
                    destination_currency=destination.currency.value,
                )
            fee = None
            if commission is not None:
                fee = quantize(commission, card.currency)
                if fee < 0:
                    raise ValidationError("The commission cannot be negative.", commission=commission)
            income = self.income_in(
                session, user_id, destination.id, amount, description, occurred_on, category_id
            )
            (charge,) = self.expense_in(
                session, user_id, card.id, income.amount, f"Advance - {description}", occurred_on, category_id
            )
            commission_row = None
            if fee:
                (commission_row,) = self.expense_in(
                    session,
                    user_id,
                    card.id,
                    fee,
                    f"Advance fee - {description}",
                    occurred_on,
                    commission_category_id,
                )
        logger.info(
            "Cash advance recorded",
            extra={"user_id": user_id, "card_id": card_id, "to_product_id": to_product_id, "amount": income.amount},
        )
        return CashAdvance(income=income, charge=charge, commission=commission_row)

    @returns_result
    def edit_transaction(self, user_id: int, transaction_id: int, changes: TransactionEdit) -> Transaction:
        """Reverse the old effect and post the edited one in the same unit."""
        with self.session_factory() as session:
            repo = SQLModelTransactionRepository(session)
            products = SQLModelProductRepository(session)
            txn = repo.require(transaction_id, user_id=user_id)
            old_card = self._card_charged(session, txn)
            old_date = txn.occurred_on
            if old_card is not None:
                self.statements.guard_posting(session, old_card, old_date)
            self.ledger.reverse(session, txn)

            if changes.description is not None:
                txn.description = _description(changes.description)
            if changes.occurred_on is not None:
                txn.occurred_on = changes.occurred_on
            if changes.category_id is not None:
                self._check_category(session, user_id, changes.category_id)
                txn.category_id = changes.category_id

            if txn.type == TransactionType.INCOME:
                if changes.to_product_id is not None:
                    raise ValidationError("Use product_id to move an income.")
                if changes.product_id is not None:
                    txn.to_product_id = changes.product_id
                product = products.require(txn.to_product_id, user_id=user_id)
                validations.require_type(product, validations.INCOME_PRODUCT_TYPES, "an income destination")
            elif txn.type == TransactionType.EXPENSE:
                if changes.to_product_id is not None:
                    raise ValidationError("Use product_id to move an expense.")
                if changes.product_id is not None:
                    txn.from_product_id = changes.product_id
                product = products.require(txn.from_product_id, user_id=user_id)
                validations.require_type(product, EXPENSE_PRODUCT_TYPES, "an expense origin")
                if txn.installment_group and product.type != ProductType.CREDIT_CARD:
                    raise ProductTypeNotEligible("Installments can only be charged to a credit card.")
            else:
                if changes.product_id is not None:
                    txn.from_product_id = changes.product_id
                if changes.to_product_id is not None:
                    txn.to_product_id = changes.to_product_id
                if txn.from_product_id == txn.to_product_id:
                    raise ValidationError("Origin and destination must be different products.")
                product = products.require(txn.from_product_id, user_id=user_id)
                destination = products.require(txn.to_product_id, user_id=user_id)
                validations.require_type(product, validations.TRANSFER_ORIGIN_TYPES, "a transfer origin")
                validations.require_type(
                    destination, validations.TRANSFER_DESTINATION_TYPES, "a transfer destination"
                )

            if changes.amount is not None:
                txn.amount = positive_amount(changes.amount, product.currency)
                if txn.installment_group:
                    txn.installment_amount = txn.amount
            if txn.type == TransactionType.TRANSFER:
                self._apply_conversion(session, txn, product, destination)

            txn.updated_at = utcnow()
            session.add(txn)
            session.flush()
            self.ledger.post(session, txn)

            for bill in SQLModelServiceRepository(session).bills_for_transaction(txn.id):
                bill.amount = txn.amount
                session.add(bill)
            if old_card is not None:
                self.statements.on_card_posting(session, old_card, old_date)
            new_card = self._card_charged(session, txn)
            if new_card is not None:
                self.statements.on_card_posting(session, new_card, txn.occurred_on)
        logger.info("Transaction edited", extra={"user_id": user_id, "transaction_id": transaction_id})
        return txn

    @returns_result
    def delete_transaction(self, user_id: int, transaction_id: int) -> None:
        with self.session_factory() as session:
            txn = SQLModelTransactionRepository(session).require(transaction_id, user_id=user_id)
            self.delete_in(session, txn)
        logger.info("Transaction deleted", extra={"user_id": user_id, "transaction_id": transaction_id})

    @returns_result
    def delete_installment_plan(self, user_id: int, installment_group: str) -> int:
        """Delete every row of one financed purchase; returns how many were removed."""
        with self.session_factory() as session:
            rows = SQLModelTransactionRepository(session).list_group(installment_group, user_id=user_id)
            if not rows:
                raise TransactionNotFound("Installment plan not found.", installment_group=installment_group)
            for txn in rows:
                self.delete_in(session, txn)
        logger.info(
            "Installment plan deleted",
            extra={"user_id": user_id, "installment_group": installment_group, "rows": len(rows)},
        )
        return len(rows)

    @returns_result
    def get_transaction(self, user_id: int, transaction_id: int) -> Transaction:
        with self.session_factory() as session:
            return SQLModelTransactionRepository(session).require(transaction_id, user_id=user_id)

    @returns_result
    def list_transactions(self, user_id: int, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        if filters.type is not None:
            filters.type = TransactionType(filters.type)
        with self.session_factory() as session:
            return SQLModelTransactionRepository(session).search(filters, user_id=user_id)
