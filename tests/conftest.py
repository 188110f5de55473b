"""Pytest configuration and shared fixtures for LedgerFlow tests.

Every test gets its own SQLite file built with the production engine factory
(pragmas, BEGIN IMMEDIATE) and a fully wired application context with a
controllable clock.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from ledgerflow.config import TestConfig
from ledgerflow.context import create_app_context, ensure_local_user
from ledgerflow.models import (
    Category,
    Currency,
    FinancialInstitution,
    FinancialProduct,
    InstitutionType,
    ProductType,
    User,
)
from ledgerflow.services.ledger import ProductInput

# =============================================================================
# Clock and database fixtures
# =============================================================================


class FixedClock:
    """Callable returning a settable "today" for the engines."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def set(self, today: date) -> None:
        self.today = today


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to 2025-03-05 unless a test moves it."""
    return FixedClock(date(2025, 3, 5))


@pytest.fixture
def config(tmp_path, monkeypatch) -> TestConfig:
    """Test configuration rooted in a temporary data directory."""
    monkeypatch.setenv("LEDGERFLOW_DATA_DIR", str(tmp_path))
    return TestConfig(database_url=f"sqlite:///{tmp_path / 'ledger-test.db'}")


@pytest.fixture
def app(config, clock):
    """Application context over an isolated database.

    Yields:
        AppContext: engines wired with the test clock
    """
    context = create_app_context(config, clock=clock)
    yield context
    context.dispose()


@pytest.fixture
def session_factory(app):
    return app.session_factory


@pytest.fixture
def user(app) -> User:
    """Default user for scoping data."""
    return ensure_local_user(app.session_factory, "tester")


@pytest.fixture
def other_user(app) -> User:
    return ensure_local_user(app.session_factory, "intruder")


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def institution_factory(app, user):
    """Factory for creating institutions through the ledger."""

    def _create(
        name: str = "Banco Test",
        institution_type: InstitutionType = InstitutionType.BANK,
        owner: Optional[User] = None,
    ) -> FinancialInstitution:
        owner = owner or user
        return app.ledger.create_institution(owner.id, name, institution_type).unwrap()

    return _create


@pytest.fixture
def bank(institution_factory) -> FinancialInstitution:
    return institution_factory("Banco Test", InstitutionType.BANK)


@pytest.fixture
def wallet(institution_factory) -> FinancialInstitution:
    return institution_factory("Wallet Test", InstitutionType.WALLET)


@pytest.fixture
def product_factory(app, user):
    """Factory for creating products with sensible defaults.

    Returns:
        Callable: creates a product through ``ProductLedger.create_product``
    """

    def _create(
        name: str = "Cash",
        product_type: ProductType = ProductType.CASH,
        currency: Currency = Currency.ARS,
        balance: Decimal | str = "0",
        owner: Optional[User] = None,
        **fields,
    ) -> FinancialProduct:
        """Create a product.

        Args:
            name: Display name
            product_type: Product type
            currency: Product currency
            balance: Opening balance, posted as a transaction when non-zero
            fields: Any other ``ProductInput`` field (institution_id, closing_day, ...)
        """
        owner = owner or user
        data = ProductInput(
            name=name,
            type=product_type,
            currency=currency,
            balance=Decimal(str(balance)),
            **fields,
        )
        return app.ledger.create_product(owner.id, data).unwrap()

    return _create


@pytest.fixture
def cash(product_factory) -> FinancialProduct:
    """Empty ARS cash product."""
    return product_factory("Cash ARS", ProductType.CASH, Currency.ARS)


@pytest.fixture
def credit_card(product_factory, bank) -> FinancialProduct:
    """ARS credit card closing on the 10th and due on the 20th, no limits."""
    return product_factory(
        "Visa",
        ProductType.CREDIT_CARD,
        Currency.ARS,
        institution_id=bank.id,
        closing_day=10,
        due_day=20,
    )


@pytest.fixture
def category_factory(session_factory, user):
    """Factory for categories (owned by the categories collaborator)."""

    def _create(name: str = "Groceries", category_type: str = "expense", owner: Optional[User] = None) -> Category:
        owner = owner or user
        with session_factory() as session:
            category = Category(
                user_id=owner.id,
                name=name,
                slug=name.lower().replace(" ", "-"),
                category_type=category_type,
            )
            session.add(category)
            session.flush()
        return category

    return _create


@pytest.fixture
def rate_factory(app):
    """Factory storing a directional exchange rate."""

    def _create(from_currency: Currency, to_currency: Currency, rate: Decimal | str, **kwargs):
        return app.rates.add_rate(from_currency, to_currency, Decimal(str(rate)), **kwargs).unwrap()

    return _create


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def balance_of(app, user):
    """Read a product's stored balance fresh from the database."""

    def _balance(product_id: int, owner: Optional[User] = None) -> Decimal:
        owner = owner or user
        return app.ledger.get_product(owner.id, product_id).unwrap().balance

    return _balance


@pytest.fixture(autouse=True)
def _reset_ledgerflow_logging():
    """Detach handlers ``setup_logging`` may have installed during a test."""
    yield
    import logging

    root = logging.getLogger("ledgerflow")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)
