"""Plain-dict views of ledger records for transport.

Keys are snake_case, money is an exact decimal string, dates are ISO-8601
and enums are their value. ``None`` stays ``None``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from ..models.exchange_rate import ExchangeRate
from ..models.institution import FinancialInstitution
from ..models.product import FinancialProduct
from ..models.service import Service, ServiceBill, ServicePaymentRule
from ..models.statement import CreditCardSummary, SummaryAdjustment, SummaryItem
from ..models.transaction import Transaction
from .bills import is_overdue


def to_plain(value: Any) -> Any:
    """Convert one field value to its transport form."""

    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _record(obj: Any, names: Iterable[str]) -> dict[str, Any]:
    return {name: to_plain(getattr(obj, name)) for name in names}


_PRODUCT_FIELDS = (
    "id", "user_id", "name", "type", "currency", "balance", "institution_id",
    "closing_day", "due_day", "limit", "limit_single_payment", "limit_installments",
    "shared_limit", "unified_limit", "linked_product_id", "last_four_digits",
    "provider", "expiration_date", "version", "created_at", "updated_at",
)

_TRANSACTION_FIELDS = (
    "id", "user_id", "type", "amount", "occurred_on", "description", "category_id",
    "from_product_id", "to_product_id", "converted_amount", "exchange_rate",
    "installment_number", "installment_total", "installment_amount",
    "installment_group", "created_at", "updated_at",
)

_STATEMENT_FIELDS = (
    "id", "user_id", "product_id", "year", "month", "closing_date", "due_date",
    "paid_date", "calculated_amount", "adjustments_amount", "total_amount",
    "status", "paid_from_product_id", "payment_transaction_id",
)


def serialize_product(product: FinancialProduct, *, available_credit: Optional[Decimal] = None) -> dict[str, Any]:
    data = _record(product, _PRODUCT_FIELDS)
    if available_credit is not None:
        data["available_credit"] = to_plain(available_credit)
    return data


def serialize_transaction(txn: Transaction) -> dict[str, Any]:
    return _record(txn, _TRANSACTION_FIELDS)


def serialize_summary_item(item: SummaryItem) -> dict[str, Any]:
    return _record(item, ("id", "summary_id", "transaction_id", "amount", "is_reconciled", "has_discrepancy", "note"))


def serialize_adjustment(adjustment: SummaryAdjustment) -> dict[str, Any]:
    return _record(adjustment, ("id", "summary_id", "type", "description", "amount", "created_at"))


def serialize_statement(
    statement: CreditCardSummary,
    items: Optional[Iterable[SummaryItem]] = None,
    adjustments: Optional[Iterable[SummaryAdjustment]] = None,
) -> dict[str, Any]:
    """Statement fields, plus nested items and adjustments when given."""
    data = _record(statement, _STATEMENT_FIELDS)
    if items is not None:
        data["items"] = [serialize_summary_item(item) for item in items]
    if adjustments is not None:
        data["adjustments"] = [serialize_adjustment(adj) for adj in adjustments]
    return data


def serialize_payment_rule(rule: ServicePaymentRule) -> dict[str, Any]:
    return _record(rule, ("id", "service_id", "product_id", "due_day", "benefit_type", "benefit_value", "is_default"))


def serialize_service(service: Service, rules: Optional[Iterable[ServicePaymentRule]] = None) -> dict[str, Any]:
    data = _record(
        service,
        ("id", "user_id", "name", "category_id", "default_amount", "default_due_day",
         "active", "renewal_date", "renewal_note", "created_at"),
    )
    if rules is not None:
        data["payment_rules"] = [serialize_payment_rule(rule) for rule in rules]
    return data


def serialize_bill(bill: ServiceBill, *, year: Optional[int] = None, month: Optional[int] = None) -> dict[str, Any]:
    """Bill fields; ``is_overdue`` is added when a viewing period is supplied."""
    data = _record(
        bill,
        ("id", "user_id", "service_id", "year", "month", "due_date", "amount", "status", "transaction_id"),
    )
    if year is not None and month is not None:
        data["is_overdue"] = is_overdue(bill, year, month)
    return data


def serialize_rate(rate: ExchangeRate) -> dict[str, Any]:
    return _record(rate, ("id", "from_currency", "to_currency", "rate", "effective_at", "source"))


def serialize_institution(institution: FinancialInstitution) -> dict[str, Any]:
    return _record(institution, ("id", "user_id", "name", "type", "share_summary", "created_at"))
