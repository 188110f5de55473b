"""Recurring services and their monthly bills."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from sqlmodel import Session

from ..errors import (
    DuplicateRecord,
    InvalidAmount,
    NotFoundError,
    PolicyViolation,
    ProductTypeNotEligible,
    ValidationError,
    returns_result,
)
from ..infra.database import SessionFactory
from ..infra.repositories.category import SQLModelCategoryRepository
from ..infra.repositories.product import SQLModelProductRepository
from ..infra.repositories.service import SQLModelServiceRepository
from ..logging_config import get_logger
from ..models.enums import BenefitType, BillStatus
from ..models.service import Service, ServiceBill, ServicePaymentRule
from ..models.transaction import Transaction
from ..money import ZERO, percentage_of, positive_amount, quantize_cents, to_decimal
from . import validations
from .periods import clamp_day
from .transactions import TransactionEngine

logger = get_logger(__name__)


def is_overdue(bill: ServiceBill, year: int, month: int) -> bool:
    """A bill is overdue while PENDING and its period is before the viewed one."""

    return bill.status == BillStatus.PENDING and (bill.year, bill.month) < (year, month)


def _validate_day(value: Optional[int], name: str) -> None:
    if value is not None and not 1 <= value <= 31:
        raise ValidationError(f"{name} must be between 1 and 31.", **{name: value})


def _non_negative_amount(value: Decimal, message: str) -> Decimal:
    amount = quantize_cents(value)
    if amount < 0:
        raise InvalidAmount(message, amount=value)
    return amount


def _validate_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12.", month=month)
    if year < 1:
        raise ValidationError("year must be positive.", year=year)


@dataclass(slots=True)
class BillListing:
    """Bills of the viewed period plus every earlier bill still unpaid."""

    bills: list[ServiceBill] = field(default_factory=list)
    overdue: list[ServiceBill] = field(default_factory=list)


@dataclass(slots=True)
class BillPayment:
    bill: ServiceBill
    expense: Transaction
    cashback: Optional[Transaction] = None


class RecurringBillEngine:
    """Generates one bill per service and period, and pays them."""

    def __init__(
        self,
        session_factory: SessionFactory,
        transactions: TransactionEngine,
        *,
        clock: Callable[[], date] = date.today,
    ):
        self.session_factory = session_factory
        self.transactions = transactions
        self.clock = clock

    # In-unit helpers

    def due_day_for(self, session: Session, service: Service) -> Optional[int]:
        """Day the service falls due: the default rule's day, else the service's own."""
        rule = SQLModelServiceRepository(session).default_rule(service.id)
        if rule is not None and rule.due_day is not None:
            return rule.due_day
        return service.default_due_day

    def generate_in(self, session: Session, user_id: int, year: int, month: int) -> list[ServiceBill]:
        repo = SQLModelServiceRepository(session)
        created = []
        for service in repo.list_all(user_id=user_id, active_only=True):
            due_day = self.due_day_for(session, service)
            if due_day is None:
                continue
            if repo.bill_for_period(service.id, year, month) is not None:
                continue
            created.append(
                repo.add(
                    ServiceBill(
                        user_id=user_id,
                        service_id=service.id,
                        year=year,
                        month=month,
                        due_date=clamp_day(year, month, due_day),
                        amount=service.default_amount,
                        status=BillStatus.PENDING,
                    )
                )
            )
        return created

    # Services

    @returns_result
    def create_service(
        self,
        user_id: int,
        name: str,
        default_amount: Decimal = ZERO,
        *,
        default_due_day: Optional[int] = None,
        category_id: Optional[int] = None,
        renewal_date: Optional[date] = None,
        renewal_note: Optional[str] = None,
    ) -> Service:
        name = (name or "").strip()
        if not name:
            raise ValidationError("The service needs a name.")
        amount = _non_negative_amount(default_amount, "The default amount cannot be negative.")
        _validate_day(default_due_day, "default_due_day")
        with self.session_factory() as session:
            if category_id is not None:
                SQLModelCategoryRepository(session).require(category_id, user_id=user_id)
            service = SQLModelServiceRepository(session).add(
                Service(
                    user_id=user_id,
                    name=name,
                    default_amount=amount,
                    default_due_day=default_due_day,
                    category_id=category_id,
                    renewal_date=renewal_date,
                    renewal_note=renewal_note,
                )
            )
        logger.info("Service created", extra={"user_id": user_id, "service_id": service.id})
        return service

    @returns_result
    def update_service(
        self,
        user_id: int,
        service_id: int,
        *,
        name: Optional[str] = None,
        default_amount: Optional[Decimal] = None,
        default_due_day: Optional[int] = None,
        category_id: Optional[int] = None,
        active: Optional[bool] = None,
        renewal_date: Optional[date] = None,
        renewal_note: Optional[str] = None,
    ) -> Service:
        with self.session_factory() as session:
            service = SQLModelServiceRepository(session).require(service_id, user_id=user_id)
            if name is not None:
                if not name.strip():
                    raise ValidationError("The service needs a name.")
                service.name = name.strip()
            if default_amount is not None:
                service.default_amount = _non_negative_amount(
                    default_amount, "The default amount cannot be negative."
                )
            if default_due_day is not None:
                _validate_day(default_due_day, "default_due_day")
                service.default_due_day = default_due_day
            if category_id is not None:
                SQLModelCategoryRepository(session).require(category_id, user_id=user_id)
                service.category_id = category_id
            if active is not None:
                service.active = active
            if renewal_date is not None:
                service.renewal_date = renewal_date
            if renewal_note is not None:
                service.renewal_note = renewal_note
            session.add(service)
            session.flush()
        return service

    @returns_result
    def list_services(self, user_id: int, *, active_only: bool = False) -> list[Service]:
        with self.session_factory() as session:
            return SQLModelServiceRepository(session).list_all(user_id=user_id, active_only=active_only)

    @returns_result
    def delete_service(self, user_id: int, service_id: int) -> None:
        """Remove a service with its bills and rules; paying transactions are kept."""
        with self.session_factory() as session:
            repo = SQLModelServiceRepository(session)
            service = repo.require(service_id, user_id=user_id)
            bills = repo.bills_for_service(service.id)
            for bill in bills:
                bill.transaction_id = None
                session.add(bill)
            session.flush()
            for bill in bills:
                repo.delete(bill)
            for rule in repo.rules(service.id):
                repo.delete(rule)
            repo.delete(service)
        logger.info(
            "Service deleted",
            extra={"user_id": user_id, "service_id": service_id, "bills_removed": len(bills)},
        )

    # Payment rules

    @returns_result
    def add_payment_rule(
        self,
        user_id: int,
        service_id: int,
        product_id: int,
        *,
        due_day: Optional[int] = None,
        benefit_type: BenefitType = BenefitType.NONE,
        benefit_value: Decimal = ZERO,
        is_default: bool = False,
    ) -> ServicePaymentRule:
        benefit_type = BenefitType(benefit_type)
        value = to_decimal(benefit_value)
        _validate_day(due_day, "due_day")
        if benefit_type == BenefitType.NONE:
            value = ZERO
        elif not ZERO < value <= Decimal(100):
            raise InvalidAmount("The benefit must be a percentage between 0 and 100.", benefit_value=benefit_value)
        elif benefit_type == BenefitType.DISCOUNT and value == Decimal(100):
            # a full discount would leave nothing to charge when the bill is paid
            raise InvalidAmount("A discount must be below 100%.", benefit_value=benefit_value)
        with self.session_factory() as session:
            repo = SQLModelServiceRepository(session)
            service = repo.require(service_id, user_id=user_id)
            product = SQLModelProductRepository(session).require(product_id, user_id=user_id)
            if benefit_type == BenefitType.CASHBACK and product.type not in validations.INCOME_PRODUCT_TYPES:
                raise ProductTypeNotEligible(
                    "Cashback can only be credited to a product that accepts income.",
                    product_id=product_id,
                )
            if repo.rule_for(service.id, product.id) is not None:
                raise DuplicateRecord("The service already has a rule for this product.")
            if is_default:
                for rule in repo.rules(service.id):
                    if rule.is_default:
                        rule.is_default = False
                        session.add(rule)
            rule = repo.add(
                ServicePaymentRule(
                    service_id=service.id,
                    product_id=product.id,
                    due_day=due_day,
                    benefit_type=benefit_type,
                    benefit_value=value,
                    is_default=is_default,
                )
            )
        return rule

    @returns_result
    def delete_payment_rule(self, user_id: int, rule_id: int) -> None:
        with self.session_factory() as session:
            repo = SQLModelServiceRepository(session)
            rule = repo.get_rule(rule_id, user_id=user_id)
            if rule is None:
                raise NotFoundError("Payment rule not found.", rule_id=rule_id)
            repo.delete(rule)

    # Bills

    @returns_result
    def generate_bills(self, user_id: int, year: int, month: int) -> list[ServiceBill]:
        """Create the period's bill for each active service that has none. Idempotent."""
        _validate_period(year, month)
        with self.session_factory() as session:
            created = self.generate_in(session, user_id, year, month)
        logger.info(
            "Bills generated",
            extra={"user_id": user_id, "period": f"{year}-{month:02d}", "bills_created": len(created)},
        )
        return created

    @returns_result
    def list_bills(self, user_id: int, year: int, month: int) -> BillListing:
        _validate_period(year, month)
        with self.session_factory() as session:
            self.generate_in(session, user_id, year, month)
            repo = SQLModelServiceRepository(session)
            return BillListing(
                bills=repo.bills_for_period(year, month, user_id=user_id),
                overdue=repo.pending_before(year, month, user_id=user_id),
            )

    @returns_result
    def list_overdue(self, user_id: int, year: int, month: int) -> list[ServiceBill]:
        _validate_period(year, month)
        with self.session_factory() as session:
            return SQLModelServiceRepository(session).pending_before(year, month, user_id=user_id)

    @returns_result
    def create_bill(self, user_id: int, service_id: int, amount: Decimal, due_date: date) -> ServiceBill:
        """Create a bill by hand; its period is the month of ``due_date``."""
        value = _non_negative_amount(amount, "The bill amount cannot be negative.")
        with self.session_factory() as session:
            repo = SQLModelServiceRepository(session)
            service = repo.require(service_id, user_id=user_id)
            if repo.bill_for_period(service.id, due_date.year, due_date.month) is not None:
                raise DuplicateRecord(
                    f"{service.name} already has a bill for {due_date.year}-{due_date.month:02d}.",
                    service_id=service_id,
                )
            bill = repo.add(
                ServiceBill(
                    user_id=user_id,
                    service_id=service.id,
                    year=due_date.year,
                    month=due_date.month,
                    due_date=due_date,
                    amount=value,
                    status=BillStatus.PENDING,
                )
            )
        logger.info("Bill created", extra={"user_id": user_id, "bill_id": bill.id, "service_id": service_id})
        return bill

    @returns_result
    def update_bill(
        self,
        user_id: int,
        bill_id: int,
        *,
        amount: Optional[Decimal] = None,
        due_date: Optional[date] = None,
    ) -> ServiceBill:
        """Change amount or due date of a PENDING bill; its period does not move."""
        with self.session_factory() as session:
            bill = SQLModelServiceRepository(session).require_bill(bill_id, user_id=user_id)
            if bill.status != BillStatus.PENDING:
                raise PolicyViolation("Only pending bills can be edited.", bill_id=bill_id)
            if amount is not None:
                bill.amount = _non_negative_amount(amount, "The bill amount cannot be negative.")
            if due_date is not None:
                bill.due_date = due_date
            session.add(bill)
            session.flush()
        return bill

    @returns_result
    def delete_bill(self, user_id: int, bill_id: int) -> BillStatus | None:
        """Skip a generated bill or remove a manual one.

        Generated bills are kept as SKIPPED so the next generation pass does
        not recreate them. Returns the new status, or None when deleted.
        """
        with self.session_factory() as session:
            repo = SQLModelServiceRepository(session)
            bill = repo.require_bill(bill_id, user_id=user_id)
            if bill.status == BillStatus.PAID:
                raise PolicyViolation("Delete the payment before removing a paid bill.", bill_id=bill_id)
            service = repo.require(bill.service_id, user_id=user_id)
            if service.active and self.due_day_for(session, service) is not None:
                bill.status = BillStatus.SKIPPED
                session.add(bill)
                session.flush()
                result: BillStatus | None = BillStatus.SKIPPED
            else:
                repo.delete(bill)
                result = None
        logger.info("Bill removed", extra={"user_id": user_id, "bill_id": bill_id, "skipped": result is not None})
        return result

    @returns_result
    def pay_bill(
        self,
        user_id: int,
        bill_id: int,
        product_id: Optional[int] = None,
        amount: Optional[Decimal] = None,
        paid_on: Optional[date] = None,
    ) -> BillPayment:
        """Pay a PENDING bill with an EXPENSE, applying the product's benefit rule.

        Without ``product_id`` the service's default rule decides the product.
        A DISCOUNT rule lowers the charge; a CASHBACK rule credits the
        percentage back to the paying product as INCOME.
        """
        paid_on = paid_on or self.clock()
        with self.session_factory() as session:
            repo = SQLModelServiceRepository(session)
            bill = repo.require_bill(bill_id, user_id=user_id)
            if bill.status != BillStatus.PENDING:
                raise PolicyViolation("Only pending bills can be paid.", bill_id=bill_id)
            service = repo.require(bill.service_id, user_id=user_id)
            if product_id is None:
                default = repo.default_rule(service.id)
                if default is None:
                    raise ValidationError("Choose a product: the service has no default payment rule.")
                product_id = default.product_id
            product = SQLModelProductRepository(session).require(product_id, user_id=user_id)
            gross = positive_amount(amount if amount is not None else bill.amount, product.currency)

            rule = repo.rule_for(service.id, product.id)
            charge = gross
            cashback_amount = ZERO
            if rule is not None and rule.benefit_type == BenefitType.DISCOUNT:
                charge = gross - percentage_of(gross, rule.benefit_value, product.currency)
            elif rule is not None and rule.benefit_type == BenefitType.CASHBACK:
                cashback_amount = percentage_of(gross, rule.benefit_value, product.currency)

            (expense,) = self.transactions.expense_in(
                session, user_id, product.id, charge, service.name, paid_on, service.category_id
            )
            cashback = None
            if cashback_amount > 0:
                cashback = self.transactions.income_in(
                    session, user_id, product.id, cashback_amount, f"Cashback - {service.name}", paid_on
                )
            bill.transaction_id = expense.id
            bill.status = BillStatus.PAID
            bill.amount = expense.amount
            session.add(bill)
            session.flush()
        logger.info(
            "Bill paid",
            extra={
                "user_id": user_id,
                "bill_id": bill_id,
                "product_id": product_id,
                "amount": expense.amount,
                "cashback": cashback_amount,
            },
        )
        return BillPayment(bill=bill, expense=expense, cashback=cashback)
