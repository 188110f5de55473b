"""Concrete repository implementations using SQLModel.

Repositories are bound to the session of the caller's unit of work, so every
read and write of one ledger operation shares a single transaction.
"""

from .category import SQLModelCategoryRepository
from .exchange_rate import SQLModelExchangeRateRepository
from .institution import SQLModelInstitutionRepository
from .product import SQLModelProductRepository
from .service import SQLModelServiceRepository
from .statement import SQLModelStatementRepository
from .transaction import SQLModelTransactionRepository, TransactionFilters

__all__ = [
    "SQLModelCategoryRepository",
    "SQLModelExchangeRateRepository",
    "SQLModelInstitutionRepository",
    "SQLModelProductRepository",
    "SQLModelServiceRepository",
    "SQLModelStatementRepository",
    "SQLModelTransactionRepository",
    "TransactionFilters",
]
