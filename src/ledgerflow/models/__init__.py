"""SQLModel table exports."""

from .category import Category
from .enums import (
    AdjustmentType,
    BenefitType,
    BillStatus,
    CardProvider,
    Currency,
    InstitutionType,
    ProductType,
    SummaryStatus,
    TransactionType,
)
from .exchange_rate import ExchangeRate
from .institution import FinancialInstitution
from .product import FinancialProduct
from .service import Service, ServiceBill, ServicePaymentRule
from .statement import CreditCardSummary, SummaryAdjustment, SummaryItem
from .transaction import Transaction
from .user import User

__all__ = [
    "AdjustmentType",
    "BenefitType",
    "BillStatus",
    "CardProvider",
    "Category",
    "CreditCardSummary",
    "Currency",
    "ExchangeRate",
    "FinancialInstitution",
    "FinancialProduct",
    "InstitutionType",
    "ProductType",
    "Service",
    "ServiceBill",
    "ServicePaymentRule",
    "SummaryAdjustment",
    "SummaryItem",
    "SummaryStatus",
    "Transaction",
    "TransactionType",
    "User",
]
