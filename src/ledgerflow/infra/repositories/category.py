"""SQLModel implementation of Category lookups."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Session, select

from ...errors import NotFoundError
from ...models.category import Category


class SQLModelCategoryRepository:
    """Read-only view of the categories collaborator."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, category_id: int, *, user_id: int) -> Optional[Category]:
        return self.session.exec(
            select(Category).where(Category.id == category_id, Category.user_id == user_id)
        ).first()

    def require(self, category_id: int, *, user_id: int) -> Category:
        category = self.get_by_id(category_id, user_id=user_id)
        if category is None:
            raise NotFoundError("Category not found.", category_id=category_id)
        return category
