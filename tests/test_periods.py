"""Tests for statement period math."""

from __future__ import annotations

from datetime import date

import pytest

from ledgerflow.services.periods import (
    add_months,
    clamp_day,
    period_for_month,
    shift_date,
    statement_period_for,
)


def test_date_before_closing_belongs_to_same_month():
    period = statement_period_for(date(2025, 3, 5), closing_day=10, due_day=20)
    assert (period.year, period.month) == (2025, 3)
    assert period.closing_date == date(2025, 3, 10)
    assert period.due_date == date(2025, 3, 20)
    assert period.opens_after == date(2025, 2, 10)


def test_closing_day_itself_belongs_to_closing_period():
    period = statement_period_for(date(2025, 3, 10), 10, 20)
    assert period.key == (2025, 3)
    assert period.contains(date(2025, 3, 10))
    assert not period.contains(date(2025, 2, 10))


def test_day_after_closing_rolls_to_next_month():
    period = statement_period_for(date(2025, 3, 11), 10, 20)
    assert period.key == (2025, 4)
    assert period.closing_date == date(2025, 4, 10)
    assert period.due_date == date(2025, 4, 20)


def test_due_day_before_closing_day_falls_next_month():
    period = statement_period_for(date(2025, 3, 20), closing_day=25, due_day=5)
    assert period.closing_date == date(2025, 3, 25)
    assert period.due_date == date(2025, 4, 5)


def test_closing_day_clamped_to_short_month():
    period = statement_period_for(date(2025, 2, 15), closing_day=31, due_day=10)
    assert period.closing_date == date(2025, 2, 28)
    assert period.opens_after == date(2025, 1, 31)
    assert statement_period_for(date(2025, 2, 28), 31, 10).key == (2025, 2)


def test_year_rollover():
    period = statement_period_for(date(2025, 12, 15), closing_day=10, due_day=5)
    assert period.key == (2026, 1)
    assert period.closing_date == date(2026, 1, 10)
    assert period.due_date == date(2026, 2, 5)


def test_period_for_month_rejects_bad_days():
    with pytest.raises(ValueError):
        period_for_month(2025, 3, 0, 10)
    with pytest.raises(ValueError):
        period_for_month(2025, 3, 10, 32)


def test_add_months_crosses_years():
    assert add_months(2025, 12, 1) == (2026, 1)
    assert add_months(2025, 1, -1) == (2024, 12)
    assert add_months(2025, 3, 24) == (2027, 3)


def test_clamp_day_leap_year():
    assert clamp_day(2024, 2, 31) == date(2024, 2, 29)


def test_shift_date_keeps_anchor_day():
    start = date(2025, 1, 31)
    assert shift_date(start, 1, anchor_day=31) == date(2025, 2, 28)
    assert shift_date(start, 2, anchor_day=31) == date(2025, 3, 31)
