"""SQLModel implementation of FinancialInstitution repository."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Session, select

from ...errors import NotFoundError
from ...models.institution import FinancialInstitution
from ...models.product import FinancialProduct


class SQLModelInstitutionRepository:
    """SQLModel-based institution repository implementation."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, institution_id: int, *, user_id: int) -> Optional[FinancialInstitution]:
        return self.session.exec(
            select(FinancialInstitution).where(
                FinancialInstitution.id == institution_id,
                FinancialInstitution.user_id == user_id,
            )
        ).first()

    def require(self, institution_id: int, *, user_id: int) -> FinancialInstitution:
        institution = self.get_by_id(institution_id, user_id=user_id)
        if institution is None:
            raise NotFoundError("Institution not found.", institution_id=institution_id)
        return institution

    def get_by_name(self, name: str, *, user_id: int) -> Optional[FinancialInstitution]:
        return self.session.exec(
            select(FinancialInstitution).where(
                FinancialInstitution.name == name, FinancialInstitution.user_id == user_id
            )
        ).first()

    def list_all(self, *, user_id: int) -> list[FinancialInstitution]:
        statement = (
            select(FinancialInstitution)
            .where(FinancialInstitution.user_id == user_id)
            .order_by(FinancialInstitution.name)  # type: ignore
        )
        return list(self.session.exec(statement).all())

    def has_products(self, institution_id: int) -> bool:
        return (
            self.session.exec(
                select(FinancialProduct.id).where(FinancialProduct.institution_id == institution_id)
            ).first()
            is not None
        )

    def add(self, institution: FinancialInstitution) -> FinancialInstitution:
        self.session.add(institution)
        self.session.flush()
        return institution

    def delete(self, institution: FinancialInstitution) -> None:
        self.session.delete(institution)
        self.session.flush()
