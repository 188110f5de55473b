"""SQLModel implementation of FinancialProduct repository."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import Session, select

from ...errors import ConflictError, ProductNotFound
from ...models.enums import ProductType
from ...models.product import FinancialProduct
from ...models.types import utcnow


class SQLModelProductRepository:
    """SQLModel-based product repository implementation."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, product_id: int, *, user_id: int) -> Optional[FinancialProduct]:
        """Retrieve a product by ID."""
        return self.session.exec(
            select(FinancialProduct).where(
                FinancialProduct.id == product_id, FinancialProduct.user_id == user_id
            )
        ).first()

    def require(self, product_id: int, *, user_id: int) -> FinancialProduct:
        product = self.get_by_id(product_id, user_id=user_id)
        if product is None:
            raise ProductNotFound("Product not found.", product_id=product_id)
        return product

    def list_all(
        self,
        *,
        user_id: int,
        product_type: Optional[ProductType] = None,
        institution_id: Optional[int] = None,
    ) -> list[FinancialProduct]:
        """List products, optionally narrowed by type or institution."""
        statement = select(FinancialProduct).where(FinancialProduct.user_id == user_id)
        if product_type is not None:
            statement = statement.where(FinancialProduct.type == product_type)
        if institution_id is not None:
            statement = statement.where(FinancialProduct.institution_id == institution_id)
        statement = statement.order_by(FinancialProduct.name, FinancialProduct.id)  # type: ignore
        return list(self.session.exec(statement).all())

    def find_duplicate(
        self,
        name: str,
        currency: str,
        institution_id: Optional[int],
        *,
        user_id: int,
        exclude_id: Optional[int] = None,
    ) -> Optional[FinancialProduct]:
        """Product with the same name and currency under the same institution."""
        statement = select(FinancialProduct).where(
            FinancialProduct.user_id == user_id,
            FinancialProduct.name == name,
            FinancialProduct.currency == currency,
            FinancialProduct.institution_id == institution_id,
        )
        if exclude_id is not None:
            statement = statement.where(FinancialProduct.id != exclude_id)
        return self.session.exec(statement).first()

    def linked_to(self, product_id: int) -> list[FinancialProduct]:
        """Products whose ``linked_product_id`` points at ``product_id``."""
        return list(
            self.session.exec(
                select(FinancialProduct).where(FinancialProduct.linked_product_id == product_id)
            ).all()
        )

    def add(self, product: FinancialProduct) -> FinancialProduct:
        self.session.add(product)
        self.session.flush()
        return product

    def delete(self, product: FinancialProduct) -> None:
        self.session.delete(product)
        self.session.flush()

    def update_balance(self, product: FinancialProduct, new_balance: Decimal) -> None:
        """Write ``new_balance`` only if nobody changed the row since it was read.

        Raises ``ConflictError`` when the stored version moved on.
        """
        table = FinancialProduct.__table__  # type: ignore[attr-defined]
        now = utcnow()
        result = self.session.connection().execute(
            update(table)
            .where(table.c.id == product.id)
            .where(table.c.version == product.version)
            .values(balance=new_balance, version=product.version + 1, updated_at=now)
        )
        if result.rowcount != 1:
            if product in self.session:
                self.session.expire(product)
            raise ConflictError(
                "The product was modified concurrently; retry the operation.",
                product_id=product.id,
            )
        set_committed_value(product, "balance", new_balance)
        set_committed_value(product, "version", product.version + 1)
        set_committed_value(product, "updated_at", now)
