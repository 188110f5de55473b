"""User model; identities come from the auth collaborator."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from .types import utcnow


class User(SQLModel, table=True):
    """Owner of every ledger row (tenant boundary)."""

    __tablename__: ClassVar[str] = "user"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(nullable=False, unique=True, index=True, max_length=64)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
