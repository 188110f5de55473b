"""Column types for exact money storage."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Column, String
from sqlalchemy.types import TypeDecorator


class DecimalString(TypeDecorator):
    """Persist ``Decimal`` as its plain string form.

    SQLite has no exact numeric type; NUMERIC columns round-trip through
    binary floats. Strings keep every digit, including 8-place BTC amounts
    and long reciprocal exchange rates.
    """

    impl = String
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return format(value, "f")

    def process_result_value(self, value: Any, dialect: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(value)


def money_column(*, nullable: bool = False) -> Column:
    """Return a fresh Column for a money field (columns cannot be shared)."""

    return Column(DecimalString(64), nullable=nullable)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
