"""Tests for the credit-card statement cycle."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ledgerflow.errors import (
    CurrencyMismatchUnresolvable,
    InvalidAmount,
    PolicyViolation,
    ProductTypeNotEligible,
    StatementClosed,
    ValidationError,
)
from ledgerflow.models import AdjustmentType, Currency, SummaryStatus


def _close_march(app, user, clock):
    clock.set(date(2025, 3, 11))
    return app.statements.close_due_statements(user.id).unwrap()


def test_current_statement_opens_lazily(app, user, credit_card):
    assert app.statements.list_statements(user.id, credit_card.id).unwrap() == []

    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()

    assert (statement.year, statement.month) == (2025, 3)
    assert statement.closing_date == date(2025, 3, 10)
    assert statement.due_date == date(2025, 3, 20)
    assert statement.status == SummaryStatus.OPEN
    again = app.statements.current_statement(user.id, credit_card.id).unwrap()
    assert again.id == statement.id


def test_statements_only_for_credit_cards(app, user, cash):
    assert isinstance(app.statements.current_statement(user.id, cash.id).error, ProductTypeNotEligible)


def test_purchase_on_closing_day_belongs_to_that_statement(app, user, credit_card):
    app.transactions.record_expense(user.id, credit_card.id, Decimal("40"), "Books", date(2025, 3, 10)).unwrap()
    app.transactions.record_expense(user.id, credit_card.id, Decimal("60"), "Games", date(2025, 3, 11)).unwrap()

    march = app.statements.current_statement(user.id, credit_card.id).unwrap()
    assert march.calculated_amount == Decimal("40.00")
    projections = app.statements.projected_statements(user.id, credit_card.id).unwrap()
    assert [(p.month, p.amount) for p in projections] == [(4, Decimal("60.00"))]


def test_close_due_statements_rolls_to_next_period(app, user, credit_card, clock):
    app.transactions.record_expense(user.id, credit_card.id, Decimal("250"), "Dinner").unwrap()

    closed = _close_march(app, user, clock)

    assert [(s.year, s.month) for s in closed] == [(2025, 3)]
    assert closed[0].status == SummaryStatus.CLOSED
    assert closed[0].total_amount == Decimal("250.00")
    statuses = {
        (s.month, s.status) for s in app.statements.list_statements(user.id, credit_card.id).unwrap()
    }
    assert statuses == {(3, SummaryStatus.CLOSED), (4, SummaryStatus.OPEN)}
    assert _close_march(app, user, clock) == []


def test_earlier_as_of_does_not_open_second_statement(app, user, credit_card):
    app.transactions.record_expense(user.id, credit_card.id, Decimal("30"), "Lunch").unwrap()
    march = app.statements.current_statement(user.id, credit_card.id).unwrap()

    earlier = app.statements.current_statement(user.id, credit_card.id, as_of=date(2025, 1, 5)).unwrap()
    app.statements.close_due_statements(user.id, as_of=date(2025, 1, 5)).unwrap()

    assert earlier.id == march.id
    open_statements = app.statements.list_statements(user.id, credit_card.id, status=SummaryStatus.OPEN).unwrap()
    assert [(s.year, s.month) for s in open_statements] == [(2025, 3)]


def test_closed_period_rejects_new_and_changed_charges(app, user, credit_card, clock, balance_of):
    (dinner,) = app.transactions.record_expense(user.id, credit_card.id, Decimal("250"), "Dinner").unwrap()
    _close_march(app, user, clock)

    late = app.transactions.record_expense(user.id, credit_card.id, Decimal("10"), "Late", date(2025, 3, 8))
    assert isinstance(late.error, StatementClosed)
    assert isinstance(app.transactions.delete_transaction(user.id, dinner.id).error, StatementClosed)
    assert balance_of(credit_card.id) == Decimal("-250.00")

    # the open April period still takes charges
    assert app.transactions.record_expense(user.id, credit_card.id, Decimal("10"), "Coffee").ok


def test_posting_closes_overdue_statements_first(app, user, credit_card, clock):
    app.statements.current_statement(user.id, credit_card.id).unwrap()
    clock.set(date(2025, 3, 12))

    result = app.transactions.record_expense(user.id, credit_card.id, Decimal("10"), "Backdated", date(2025, 3, 9))

    assert isinstance(result.error, StatementClosed)


def test_backfill_into_period_without_statement(app, user, credit_card, balance_of):
    result = app.transactions.record_expense(
        user.id, credit_card.id, Decimal("75"), "Old purchase", date(2025, 1, 5)
    )
    assert result.ok
    assert balance_of(credit_card.id) == Decimal("-75.00")
    assert app.statements.list_statements(user.id, credit_card.id).unwrap() == []


def test_adjustments_move_total_and_balance(app, user, credit_card, balance_of):
    app.transactions.record_expense(user.id, credit_card.id, Decimal("100"), "Shoes").unwrap()
    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()

    interest = app.statements.add_adjustment(
        user.id, statement.id, AdjustmentType.INTEREST, "Financing", Decimal("30")
    ).unwrap()
    credit = app.statements.add_adjustment(
        user.id, statement.id, AdjustmentType.CREDIT, "Promo", Decimal("10")
    ).unwrap()

    assert interest.amount == Decimal("30.00")
    assert credit.amount == Decimal("-10.00")
    detail = app.statements.get_statement(user.id, statement.id).unwrap()
    assert detail.statement.adjustments_amount == Decimal("20.00")
    assert detail.statement.total_amount == Decimal("120.00")
    assert len(detail.adjustments) == 2
    assert balance_of(credit_card.id) == Decimal("-120.00")

    app.statements.delete_adjustment(user.id, interest.id).unwrap()
    detail = app.statements.get_statement(user.id, statement.id).unwrap()
    assert detail.statement.total_amount == Decimal("90.00")
    assert balance_of(credit_card.id) == Decimal("-90.00")


def test_adjustment_validation(app, user, credit_card):
    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()
    bad = app.statements.add_adjustment(user.id, statement.id, AdjustmentType.TAX, "Stamp tax", Decimal("-1"))
    assert isinstance(bad.error, InvalidAmount)
    blank = app.statements.add_adjustment(user.id, statement.id, AdjustmentType.TAX, " ", Decimal("1"))
    assert blank.error.kind == "ValidationError"


def test_adjustments_survive_resync(app, user, credit_card):
    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()
    app.statements.add_adjustment(user.id, statement.id, AdjustmentType.COMMISSION, "Fee", Decimal("15")).unwrap()

    app.transactions.record_expense(user.id, credit_card.id, Decimal("100"), "Shoes").unwrap()

    refreshed = app.statements.current_statement(user.id, credit_card.id).unwrap()
    assert refreshed.calculated_amount == Decimal("100.00")
    assert refreshed.total_amount == Decimal("115.00")


def test_pay_statement(app, user, product_factory, credit_card, clock, balance_of):
    cash = product_factory("Cash", balance="5000")
    app.transactions.record_expense(user.id, credit_card.id, Decimal("2700"), "Tires").unwrap()
    (march,) = _close_march(app, user, clock)

    paid = app.statements.pay_statement(user.id, march.id, cash.id).unwrap()

    assert paid.status == SummaryStatus.PAID
    assert paid.paid_date == date(2025, 3, 11)
    assert paid.paid_from_product_id == cash.id
    assert balance_of(cash.id) == Decimal("2300.00")
    assert balance_of(credit_card.id) == Decimal("0.00")
    payment = app.transactions.get_transaction(user.id, paid.payment_transaction_id).unwrap()
    assert payment.amount == Decimal("2700.00")
    assert payment.to_product_id == credit_card.id

    again = app.statements.pay_statement(user.id, march.id, cash.id)
    assert isinstance(again.error, StatementClosed)


def test_only_closed_statements_can_be_paid(app, user, cash, credit_card):
    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()
    result = app.statements.pay_statement(user.id, statement.id, cash.id)
    assert isinstance(result.error, PolicyViolation)
    assert not isinstance(result.error, StatementClosed)


def test_zero_total_statement_is_paid_without_transaction(app, user, cash, credit_card, clock):
    app.statements.current_statement(user.id, credit_card.id).unwrap()
    (march,) = _close_march(app, user, clock)

    paid = app.statements.pay_statement(user.id, march.id, cash.id).unwrap()

    assert paid.status == SummaryStatus.PAID
    assert paid.payment_transaction_id is None
    assert app.transactions.list_transactions(user.id).unwrap() == []


def test_cross_currency_statement_payment(app, user, product_factory, credit_card, rate_factory, clock, balance_of):
    dollars = product_factory("Dollars", currency=Currency.USD, balance="10")
    rate_factory(Currency.USD, Currency.ARS, "1350")
    app.transactions.record_expense(user.id, credit_card.id, Decimal("2700"), "Tires").unwrap()
    (march,) = _close_march(app, user, clock)

    paid = app.statements.pay_statement(user.id, march.id, dollars.id).unwrap()

    payment = app.transactions.get_transaction(user.id, paid.payment_transaction_id).unwrap()
    assert payment.amount == Decimal("2.00")
    assert payment.converted_amount == Decimal("2700.00")
    assert payment.exchange_rate == Decimal("1350")
    assert balance_of(dollars.id) == Decimal("8.00")
    assert balance_of(credit_card.id) == Decimal("0.00")


def test_cross_currency_payment_needs_rate(app, user, product_factory, credit_card, clock):
    dollars = product_factory("Dollars", currency=Currency.USD, balance="10")
    app.transactions.record_expense(user.id, credit_card.id, Decimal("2700"), "Tires").unwrap()
    (march,) = _close_march(app, user, clock)

    result = app.statements.pay_statement(user.id, march.id, dollars.id)

    assert isinstance(result.error, CurrencyMismatchUnresolvable)
    assert app.statements.get_statement(user.id, march.id).unwrap().statement.status == SummaryStatus.CLOSED


def test_deleting_payment_reopens_for_payment(app, user, product_factory, credit_card, clock, balance_of):
    cash = product_factory("Cash", balance="5000")
    app.transactions.record_expense(user.id, credit_card.id, Decimal("2700"), "Tires").unwrap()
    (march,) = _close_march(app, user, clock)
    paid = app.statements.pay_statement(user.id, march.id, cash.id).unwrap()

    assert app.transactions.delete_transaction(user.id, paid.payment_transaction_id).ok

    statement = app.statements.get_statement(user.id, march.id).unwrap().statement
    assert statement.status == SummaryStatus.CLOSED
    assert statement.payment_transaction_id is None
    assert statement.paid_date is None
    assert balance_of(cash.id) == Decimal("5000.00")
    assert balance_of(credit_card.id) == Decimal("-2700.00")


def test_paid_statement_is_frozen(app, user, cash, credit_card, clock):
    app.statements.current_statement(user.id, credit_card.id).unwrap()
    (march,) = _close_march(app, user, clock)
    app.statements.pay_statement(user.id, march.id, cash.id).unwrap()

    adjustment = app.statements.add_adjustment(user.id, march.id, AdjustmentType.TAX, "Tax", Decimal("1"))
    assert isinstance(adjustment.error, StatementClosed)
    dates = app.statements.update_statement_dates(user.id, march.id, due_date=date(2025, 3, 25))
    assert isinstance(dates.error, StatementClosed)


def test_update_item_flags(app, user, credit_card):
    app.transactions.record_expense(user.id, credit_card.id, Decimal("100"), "Shoes").unwrap()
    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()
    (item,) = app.statements.get_statement(user.id, statement.id).unwrap().items

    updated = app.statements.update_item(
        user.id, item.id, is_reconciled=True, has_discrepancy=True, note="  charged twice  "
    ).unwrap()
    assert updated.is_reconciled and updated.has_discrepancy
    assert updated.note == "charged twice"

    # a later sync keeps reconciliation flags of surviving items
    app.transactions.record_expense(user.id, credit_card.id, Decimal("5"), "Gum").unwrap()
    items = app.statements.get_statement(user.id, statement.id).unwrap().items
    assert {i.transaction_id: i.is_reconciled for i in items}[item.transaction_id] is True


def test_update_statement_dates(app, user, credit_card):
    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()

    moved = app.statements.update_statement_dates(
        user.id, statement.id, closing_date=date(2025, 3, 12), due_date=date(2025, 3, 22)
    ).unwrap()
    assert moved.closing_date == date(2025, 3, 12)
    assert moved.due_date == date(2025, 3, 22)

    bad = app.statements.update_statement_dates(user.id, statement.id, closing_date=date(2025, 3, 25))
    assert isinstance(bad.error, ValidationError)


def test_statements_are_scoped_by_user(app, user, other_user, credit_card):
    statement = app.statements.current_statement(user.id, credit_card.id).unwrap()
    assert app.statements.get_statement(other_user.id, statement.id).error.kind == "NotFoundError"
    assert app.statements.current_statement(other_user.id, credit_card.id).error.kind == "NotFoundError"
