"""Banks and wallets that issue financial products."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .enums import InstitutionType
from .types import utcnow


class FinancialInstitution(SQLModel, table=True):
    """Issuer of products; its type restricts product types and currencies."""

    __tablename__: ClassVar[str] = "financial_institution"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_institution_user_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80)
    type: InstitutionType = Field(nullable=False)
    # Wallets such as Naranja X print one statement for every card they issue.
    share_summary: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
