"""Business rules for products and institutions.

These checks run before any state is touched; they raise ledger errors and
never talk to storage.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Optional

from ..errors import (
    CurrencyMismatchUnresolvable,
    InsufficientFunds,
    InvalidAmount,
    ProductTypeNotEligible,
    ValidationError,
)
from ..models.enums import Currency, InstitutionType, ProductType
from ..models.product import FinancialProduct

_NON_NEGATIVE = {ProductType.CASH, ProductType.SAVINGS_ACCOUNT, ProductType.DEBIT_CARD}
_NON_POSITIVE = {ProductType.CREDIT_CARD, ProductType.LOAN}

_INSTITUTION_PRODUCT_TYPES = {
    InstitutionType.BANK: frozenset(t for t in ProductType if t != ProductType.CASH),
    InstitutionType.WALLET: frozenset(
        {ProductType.SAVINGS_ACCOUNT, ProductType.DEBIT_CARD, ProductType.CREDIT_CARD}
    ),
}

_INSTITUTION_CURRENCIES = {
    InstitutionType.BANK: frozenset({Currency.ARS, Currency.USD}),
    InstitutionType.WALLET: frozenset(Currency),
}

_CASH_CURRENCIES = frozenset({Currency.ARS, Currency.USD})

_LAST_FOUR = re.compile(r"^\d{4}$")


def balance_floor_error(
    balance: Decimal,
    product_type: ProductType,
    institution_type: Optional[InstitutionType] = None,
) -> Optional[str]:
    """Explain why ``balance`` is out of range for the product, or None."""

    if product_type in _NON_NEGATIVE and balance < 0:
        return "The balance cannot be negative for this product."
    if product_type == ProductType.CHECKING_ACCOUNT and balance < 0 and institution_type != InstitutionType.BANK:
        return "Only bank checking accounts can be overdrawn."
    if product_type in _NON_POSITIVE and balance > 0:
        return "Credit cards and loans carry debt as a zero or negative balance."
    return None


def validate_balance(
    balance: Decimal,
    product_type: ProductType,
    institution_type: Optional[InstitutionType] = None,
) -> None:
    """Raise if ``balance`` breaks the sign rule of ``product_type``."""

    message = balance_floor_error(balance, product_type, institution_type)
    if message is None:
        return
    if product_type in _NON_POSITIVE:
        raise InvalidAmount(message, balance=balance, product_type=product_type.value)
    raise InsufficientFunds(message, balance=balance, product_type=product_type.value)


def validate_credit_card_fields(
    closing_day: Optional[int],
    due_day: Optional[int],
    limit_single_payment: Optional[Decimal] = None,
    limit_installments: Optional[Decimal] = None,
) -> None:
    if closing_day is None or due_day is None:
        raise ValidationError("Credit cards need both a closing day and a due day.")
    for name, value in (("closing_day", closing_day), ("due_day", due_day)):
        if not 1 <= value <= 31:
            raise ValidationError(f"{name} must be between 1 and 31.", **{name: value})
    for name, value in (("limit_single_payment", limit_single_payment), ("limit_installments", limit_installments)):
        if value is not None and value < 0:
            raise InvalidAmount(f"{name} cannot be negative.", **{name: value})


def validate_loan_fields(limit: Optional[Decimal]) -> None:
    if limit is not None and limit < 0:
        raise InvalidAmount("The loan amount cannot be negative.", limit=limit)


def is_product_type_allowed_for_institution(
    product_type: ProductType, institution_type: InstitutionType
) -> bool:
    return ProductType(product_type) in _INSTITUTION_PRODUCT_TYPES[InstitutionType(institution_type)]


def is_currency_allowed_for_institution(currency: Currency, institution_type: InstitutionType) -> bool:
    return Currency(currency) in _INSTITUTION_CURRENCIES[InstitutionType(institution_type)]


def is_currency_allowed_for_cash(currency: Currency) -> bool:
    return Currency(currency) in _CASH_CURRENCIES


def requires_institution(product_type: ProductType) -> bool:
    return ProductType(product_type) != ProductType.CASH


def validate_last_four_digits(value: Optional[str]) -> None:
    if value is not None and not _LAST_FOUR.match(value):
        raise ValidationError("Card digits must be exactly four numbers.", last_four_digits=value)


def validate_placement(
    product_type: ProductType,
    currency: Currency,
    institution_type: Optional[InstitutionType],
) -> None:
    """Check where a product may live: institution presence, type and currency."""

    if not requires_institution(product_type):
        if institution_type is not None:
            raise ProductTypeNotEligible("Cash cannot belong to an institution.")
        if not is_currency_allowed_for_cash(currency):
            raise CurrencyMismatchUnresolvable(
                "Cash can only be held in ARS or USD.", currency=Currency(currency).value
            )
        return
    if institution_type is None:
        raise ValidationError("This product type must belong to an institution.", product_type=product_type.value)
    if not is_product_type_allowed_for_institution(product_type, institution_type):
        raise ProductTypeNotEligible(
            f"A {institution_type.value.lower()} cannot issue {product_type.value}.",
            product_type=product_type.value,
            institution_type=institution_type.value,
        )
    if not is_currency_allowed_for_institution(currency, institution_type):
        raise CurrencyMismatchUnresolvable(
            f"A {institution_type.value.lower()} does not hold {Currency(currency).value}.",
            currency=Currency(currency).value,
            institution_type=institution_type.value,
        )


def validate_link(
    product_type: ProductType,
    institution_id: Optional[int],
    currency: Currency,
    linked: Optional[FinancialProduct],
    *,
    shared_limit: bool = False,
) -> None:
    """Debit cards draw from a savings account; shared-limit cards borrow another card's limit."""

    if product_type == ProductType.DEBIT_CARD:
        if linked is None:
            raise ValidationError("A debit card must be linked to a savings account.")
        if linked.type != ProductType.SAVINGS_ACCOUNT:
            raise ProductTypeNotEligible("A debit card can only be linked to a savings account.")
        if linked.institution_id != institution_id:
            raise ValidationError("The linked savings account must belong to the same institution.")
        if linked.currency != currency:
            raise CurrencyMismatchUnresolvable("The linked savings account must use the same currency.")
        return
    if product_type == ProductType.CREDIT_CARD and shared_limit:
        if linked is None:
            raise ValidationError("A shared-limit card must be linked to the card that holds the limit.")
        if linked.type != ProductType.CREDIT_CARD:
            raise ProductTypeNotEligible("A shared limit can only come from another credit card.")
        return
    if linked is not None:
        raise ValidationError("Only debit cards and shared-limit credit cards can be linked.")


# Which products may take part in each side of a movement.
INCOME_PRODUCT_TYPES = frozenset(
    {ProductType.CASH, ProductType.SAVINGS_ACCOUNT, ProductType.CHECKING_ACCOUNT, ProductType.DEBIT_CARD}
)
TRANSFER_ORIGIN_TYPES = frozenset(
    {ProductType.CASH, ProductType.SAVINGS_ACCOUNT, ProductType.CHECKING_ACCOUNT}
)
TRANSFER_DESTINATION_TYPES = TRANSFER_ORIGIN_TYPES | {ProductType.CREDIT_CARD, ProductType.LOAN}


def require_type(product: FinancialProduct, allowed: frozenset, role: str) -> None:
    if product.type not in allowed:
        raise ProductTypeNotEligible(
            f"{product.type.value} cannot be used as {role}.",
            product_id=product.id,
            product_type=product.type.value,
        )
