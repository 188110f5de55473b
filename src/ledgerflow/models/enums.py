"""Enumerations shared by the ledger tables."""

from __future__ import annotations

from enum import Enum


class Currency(str, Enum):
    ARS = "ARS"
    USD = "USD"
    USDT = "USDT"
    USDC = "USDC"
    BTC = "BTC"


class ProductType(str, Enum):
    CASH = "CASH"
    SAVINGS_ACCOUNT = "SAVINGS_ACCOUNT"
    CHECKING_ACCOUNT = "CHECKING_ACCOUNT"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"
    LOAN = "LOAN"


class InstitutionType(str, Enum):
    BANK = "BANK"
    WALLET = "WALLET"


class CardProvider(str, Enum):
    VISA = "VISA"
    MASTERCARD = "MASTERCARD"
    AMEX = "AMEX"
    OTHER = "OTHER"


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class SummaryStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    PAID = "PAID"


class AdjustmentType(str, Enum):
    COMMISSION = "COMMISSION"
    TAX = "TAX"
    INTEREST = "INTEREST"
    CREDIT = "CREDIT"
    OTHER = "OTHER"


class BillStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SKIPPED = "SKIPPED"


class BenefitType(str, Enum):
    NONE = "NONE"
    DISCOUNT = "DISCOUNT"
    CASHBACK = "CASHBACK"


# Products that can receive money directly (income, transfer target).
LIQUID_PRODUCT_TYPES = frozenset(
    {
        ProductType.CASH,
        ProductType.SAVINGS_ACCOUNT,
        ProductType.CHECKING_ACCOUNT,
        ProductType.DEBIT_CARD,
    }
)

# Products whose balance is a debt and is expected to stay at or below zero.
DEBT_PRODUCT_TYPES = frozenset({ProductType.CREDIT_CARD, ProductType.LOAN})
