"""Tests for recurring services, payment rules and bills."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledgerflow.errors import (
    DuplicateRecord,
    InvalidAmount,
    PolicyViolation,
    ProductTypeNotEligible,
    ValidationError,
)
from ledgerflow.models import BenefitType, BillStatus
from ledgerflow.services.serializers import serialize_bill
from ledgerflow.services.transactions import TransactionEdit


@pytest.fixture
def internet(app, user):
    """Active service due on the 10th for 100."""
    return app.bills.create_service(user.id, "Internet", Decimal("100"), default_due_day=10).unwrap()


@pytest.fixture
def funded_cash(product_factory):
    return product_factory("Cash", balance="1000")


def _bill(app, user, year=2025, month=3):
    (bill,) = app.bills.list_bills(user.id, year, month).unwrap().bills
    return bill


def test_generate_bills_is_idempotent(app, user, internet):
    created = app.bills.generate_bills(user.id, 2025, 3).unwrap()

    assert len(created) == 1
    bill = created[0]
    assert bill.service_id == internet.id
    assert bill.due_date == date(2025, 3, 10)
    assert bill.amount == Decimal("100")
    assert bill.status == BillStatus.PENDING
    assert app.bills.generate_bills(user.id, 2025, 3).unwrap() == []


def test_manual_and_inactive_services_are_not_generated(app, user):
    app.bills.create_service(user.id, "Plumber", Decimal("50"))
    gym = app.bills.create_service(user.id, "Gym", Decimal("80"), default_due_day=1).unwrap()
    app.bills.update_service(user.id, gym.id, active=False).unwrap()

    assert app.bills.generate_bills(user.id, 2025, 3).unwrap() == []


def test_default_rule_due_day_wins(app, user, internet, cash):
    app.bills.add_payment_rule(user.id, internet.id, cash.id, due_day=25, is_default=True).unwrap()
    (bill,) = app.bills.generate_bills(user.id, 2025, 3).unwrap()
    assert bill.due_date == date(2025, 3, 25)


def test_due_day_clamped_to_month_end(app, user):
    app.bills.create_service(user.id, "Rent", Decimal("500"), default_due_day=31).unwrap()
    (bill,) = app.bills.generate_bills(user.id, 2025, 2).unwrap()
    assert bill.due_date == date(2025, 2, 28)


def test_invalid_periods_and_days(app, user):
    assert isinstance(app.bills.generate_bills(user.id, 2025, 13).error, ValidationError)
    assert isinstance(app.bills.create_service(user.id, "X", Decimal("1"), default_due_day=32).error, ValidationError)
    assert isinstance(app.bills.create_service(user.id, "X", Decimal("-1")).error, InvalidAmount)


def test_overdue_bills_are_listed_with_the_viewed_period(app, user, internet):
    (february,) = app.bills.generate_bills(user.id, 2025, 2).unwrap()

    listing = app.bills.list_bills(user.id, 2025, 3).unwrap()

    assert [b.month for b in listing.bills] == [3]
    assert [b.id for b in listing.overdue] == [february.id]
    assert serialize_bill(february, year=2025, month=3)["is_overdue"] is True
    assert serialize_bill(listing.bills[0], year=2025, month=3)["is_overdue"] is False
    assert [b.id for b in app.bills.list_overdue(user.id, 2025, 3).unwrap()] == [february.id]


def test_manual_bill_and_duplicate_period(app, user):
    plumber = app.bills.create_service(user.id, "Plumber").unwrap()
    bill = app.bills.create_bill(user.id, plumber.id, Decimal("70"), date(2025, 3, 15)).unwrap()
    assert (bill.year, bill.month) == (2025, 3)

    again = app.bills.create_bill(user.id, plumber.id, Decimal("80"), date(2025, 3, 28))
    assert isinstance(again.error, DuplicateRecord)


def test_update_bill_keeps_period(app, user, internet):
    (bill,) = app.bills.generate_bills(user.id, 2025, 3).unwrap()

    updated = app.bills.update_bill(user.id, bill.id, amount=Decimal("120"), due_date=date(2025, 4, 2)).unwrap()

    assert updated.amount == Decimal("120")
    assert updated.due_date == date(2025, 4, 2)
    assert (updated.year, updated.month) == (2025, 3)


def test_pay_bill(app, user, internet, funded_cash, balance_of):
    bill = _bill(app, user)

    payment = app.bills.pay_bill(user.id, bill.id, funded_cash.id).unwrap()

    assert payment.bill.status == BillStatus.PAID
    assert payment.bill.transaction_id == payment.expense.id
    assert payment.expense.description == "Internet"
    assert payment.cashback is None
    assert balance_of(funded_cash.id) == Decimal("900.00")
    assert isinstance(app.bills.pay_bill(user.id, bill.id, funded_cash.id).error, PolicyViolation)
    assert isinstance(app.bills.update_bill(user.id, bill.id, amount=Decimal("1")).error, PolicyViolation)


def test_pay_bill_with_default_rule(app, user, internet, funded_cash, balance_of):
    assert isinstance(app.bills.pay_bill(user.id, _bill(app, user).id).error, ValidationError)

    app.bills.add_payment_rule(user.id, internet.id, funded_cash.id, is_default=True).unwrap()
    payment = app.bills.pay_bill(user.id, _bill(app, user).id, amount=Decimal("110")).unwrap()

    assert payment.expense.from_product_id == funded_cash.id
    assert payment.bill.amount == Decimal("110.00")
    assert balance_of(funded_cash.id) == Decimal("890.00")


def test_discount_rule_lowers_charge(app, user, internet, credit_card, balance_of):
    app.bills.add_payment_rule(
        user.id, internet.id, credit_card.id, benefit_type=BenefitType.DISCOUNT, benefit_value=Decimal("10")
    ).unwrap()

    payment = app.bills.pay_bill(user.id, _bill(app, user).id, credit_card.id).unwrap()

    assert payment.expense.amount == Decimal("90.00")
    assert payment.bill.amount == Decimal("90.00")
    assert balance_of(credit_card.id) == Decimal("-90.00")


def test_cashback_rule_credits_income(app, user, internet, funded_cash, balance_of):
    app.bills.add_payment_rule(
        user.id, internet.id, funded_cash.id, benefit_type=BenefitType.CASHBACK, benefit_value=Decimal("5")
    ).unwrap()

    payment = app.bills.pay_bill(user.id, _bill(app, user).id, funded_cash.id).unwrap()

    assert payment.cashback.amount == Decimal("5.00")
    assert payment.cashback.description == "Cashback - Internet"
    assert balance_of(funded_cash.id) == Decimal("905.00")


def test_payment_rule_validation(app, user, internet, cash, credit_card):
    cashback_on_card = app.bills.add_payment_rule(
        user.id, internet.id, credit_card.id, benefit_type=BenefitType.CASHBACK, benefit_value=Decimal("5")
    )
    assert isinstance(cashback_on_card.error, ProductTypeNotEligible)
    too_much = app.bills.add_payment_rule(
        user.id, internet.id, cash.id, benefit_type=BenefitType.DISCOUNT, benefit_value=Decimal("150")
    )
    assert isinstance(too_much.error, InvalidAmount)

    app.bills.add_payment_rule(user.id, internet.id, cash.id).unwrap()
    assert isinstance(app.bills.add_payment_rule(user.id, internet.id, cash.id).error, DuplicateRecord)


def test_full_discount_is_rejected(app, user, internet, funded_cash):
    full = app.bills.add_payment_rule(
        user.id, internet.id, funded_cash.id, benefit_type=BenefitType.DISCOUNT, benefit_value=Decimal("100")
    )
    assert isinstance(full.error, InvalidAmount)

    app.bills.add_payment_rule(
        user.id, internet.id, funded_cash.id, benefit_type=BenefitType.DISCOUNT, benefit_value=Decimal("99.5")
    ).unwrap()
    payment = app.bills.pay_bill(user.id, _bill(app, user).id, funded_cash.id).unwrap()
    assert payment.expense.amount == Decimal("0.50")


def test_service_and_bill_amounts_are_rounded_to_cents(app, user):
    water = app.bills.create_service(user.id, "Water", Decimal("10.005"), default_due_day=3).unwrap()
    assert water.default_amount == Decimal("10.01")

    water = app.bills.update_service(user.id, water.id, default_amount=Decimal("20.004")).unwrap()
    assert water.default_amount == Decimal("20.00")

    bill = app.bills.create_bill(user.id, water.id, Decimal("7.125"), date(2025, 4, 3)).unwrap()
    assert bill.amount == Decimal("7.13")
    bill = app.bills.update_bill(user.id, bill.id, amount=Decimal("8.994")).unwrap()
    assert bill.amount == Decimal("8.99")
    assert isinstance(app.bills.create_service(user.id, "Refund", Decimal("-0.01")).error, InvalidAmount)


def test_only_one_default_rule(app, user, internet, cash, credit_card):
    app.bills.add_payment_rule(user.id, internet.id, cash.id, due_day=5, is_default=True).unwrap()
    app.bills.add_payment_rule(user.id, internet.id, credit_card.id, due_day=20, is_default=True).unwrap()

    (bill,) = app.bills.generate_bills(user.id, 2025, 3).unwrap()
    assert bill.due_date == date(2025, 3, 20)


def test_deleting_payment_reverts_bill(app, user, internet, funded_cash, balance_of):
    payment = app.bills.pay_bill(user.id, _bill(app, user).id, funded_cash.id).unwrap()

    assert app.transactions.delete_transaction(user.id, payment.expense.id).ok

    bill = _bill(app, user)
    assert bill.status == BillStatus.PENDING
    assert bill.transaction_id is None
    assert balance_of(funded_cash.id) == Decimal("1000.00")


def test_editing_payment_updates_bill_amount(app, user, internet, funded_cash):
    payment = app.bills.pay_bill(user.id, _bill(app, user).id, funded_cash.id).unwrap()

    app.transactions.edit_transaction(user.id, payment.expense.id, TransactionEdit(amount=Decimal("95"))).unwrap()

    assert _bill(app, user).amount == Decimal("95.00")


def test_delete_generated_bill_is_skipped(app, user, internet):
    bill = _bill(app, user)

    assert app.bills.delete_bill(user.id, bill.id).unwrap() == BillStatus.SKIPPED
    assert app.bills.generate_bills(user.id, 2025, 3).unwrap() == []
    assert _bill(app, user).status == BillStatus.SKIPPED


def test_delete_manual_bill_removes_it(app, user):
    plumber = app.bills.create_service(user.id, "Plumber").unwrap()
    bill = app.bills.create_bill(user.id, plumber.id, Decimal("70"), date(2025, 3, 15)).unwrap()

    assert app.bills.delete_bill(user.id, bill.id).unwrap() is None
    assert app.bills.list_bills(user.id, 2025, 3).unwrap().bills == []


def test_paid_bill_cannot_be_deleted(app, user, internet, funded_cash):
    bill = _bill(app, user)
    app.bills.pay_bill(user.id, bill.id, funded_cash.id).unwrap()
    assert isinstance(app.bills.delete_bill(user.id, bill.id).error, PolicyViolation)


def test_delete_service_keeps_transactions(app, user, internet, funded_cash, balance_of):
    app.bills.add_payment_rule(user.id, internet.id, funded_cash.id, is_default=True).unwrap()
    payment = app.bills.pay_bill(user.id, _bill(app, user).id).unwrap()

    assert app.bills.delete_service(user.id, internet.id).ok

    assert app.bills.list_services(user.id).unwrap() == []
    assert app.bills.list_bills(user.id, 2025, 3).unwrap().bills == []
    assert app.transactions.get_transaction(user.id, payment.expense.id).ok
    assert balance_of(funded_cash.id) == Decimal("900.00")


def test_services_are_scoped_by_user(app, user, other_user, internet):
    assert app.bills.list_services(other_user.id).unwrap() == []
    assert app.bills.update_service(other_user.id, internet.id, name="Mine").error.kind == "NotFoundError"
    assert app.bills.list_bills(other_user.id, 2025, 3).unwrap().bills == []
