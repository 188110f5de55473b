"""Calendar helpers for billing periods.

Everything here is pure: the statement period of a date depends only on the
date and the card's configured closing and due days, never on the wall clock.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date


def add_months(year: int, month: int, delta: int) -> tuple[int, int]:
    """Shift a (year, month) pair by ``delta`` months."""

    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def clamp_day(year: int, month: int, day: int) -> date:
    """Date for ``day`` in the given month, clamped to its last day."""

    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def shift_date(value: date, months: int, *, anchor_day: int | None = None) -> date:
    """Move ``value`` by whole months keeping its day where the month allows.

    ``anchor_day`` keeps a schedule on the 31st from drifting to the 28th
    after passing through February.
    """

    year, month = add_months(value.year, value.month, months)
    return clamp_day(year, month, anchor_day or value.day)


@dataclass(frozen=True, slots=True)
class StatementPeriod:
    """One billing cycle: the window (opens_after, closing_date] and its due date."""

    year: int
    month: int
    closing_date: date
    due_date: date
    opens_after: date

    @property
    def key(self) -> tuple[int, int]:
        return (self.year, self.month)

    def contains(self, day: date) -> bool:
        return self.opens_after < day <= self.closing_date


def _validate_day(name: str, value: int) -> None:
    if not 1 <= value <= 31:
        raise ValueError(f"{name} must be between 1 and 31, got {value}")


def period_for_month(year: int, month: int, closing_day: int, due_day: int) -> StatementPeriod:
    """Statement period labelled (year, month)."""

    _validate_day("closing_day", closing_day)
    _validate_day("due_day", due_day)
    closing_date = clamp_day(year, month, closing_day)
    if due_day > closing_day:
        due_date = clamp_day(year, month, due_day)
    else:
        due_year, due_month = add_months(year, month, 1)
        due_date = clamp_day(due_year, due_month, due_day)
    prev_year, prev_month = add_months(year, month, -1)
    return StatementPeriod(
        year=year,
        month=month,
        closing_date=closing_date,
        due_date=due_date,
        opens_after=clamp_day(prev_year, prev_month, closing_day),
    )


def statement_period_for(day: date, closing_day: int, due_day: int) -> StatementPeriod:
    """Statement period that ``day`` falls in.

    A purchase on or before the closing day belongs to that month's statement;
    anything later rolls into the next month's.

    >>> p = statement_period_for(date(2025, 3, 10), 10, 20)
    >>> (p.year, p.month, p.closing_date.day, p.due_date.day)
    (2025, 3, 10, 20)
    >>> statement_period_for(date(2025, 3, 11), 10, 20).month
    4
    """

    if day <= clamp_day(day.year, day.month, closing_day):
        year, month = day.year, day.month
    else:
        year, month = add_months(day.year, day.month, 1)
    return period_for_month(year, month, closing_day, due_day)
