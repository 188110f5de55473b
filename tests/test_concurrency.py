"""Tests for write serialization and optimistic balance versioning."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlmodel import select

from ledgerflow.errors import ConflictError, call_with_retry
from ledgerflow.infra.repositories import SQLModelProductRepository
from ledgerflow.models import User


def test_writer_blocked_by_open_unit_gets_conflict(app, user, cash, session_factory, balance_of):
    with session_factory() as held:
        # first statement emits BEGIN IMMEDIATE and takes the write lock
        held.exec(select(User)).first()

        result = app.transactions.record_income(user.id, cash.id, Decimal("10"), "Blocked")

        assert isinstance(result.error, ConflictError)
        assert result.error.retryable

    assert balance_of(cash.id) == Decimal("0")
    retried = call_with_retry(
        lambda: app.transactions.record_income(user.id, cash.id, Decimal("10"), "Retried"), backoff=0
    )
    assert retried.ok
    assert balance_of(cash.id) == Decimal("10.00")


def test_stale_version_is_rejected(app, user, cash, session_factory, balance_of):
    stale = app.ledger.get_product(user.id, cash.id).unwrap()
    app.transactions.record_income(user.id, cash.id, Decimal("25"), "Salary").unwrap()

    with pytest.raises(ConflictError):
        with session_factory() as session:
            SQLModelProductRepository(session).update_balance(stale, Decimal("999"))

    assert balance_of(cash.id) == Decimal("25.00")


def test_version_increments_on_every_posting(app, user, cash):
    before = app.ledger.get_product(user.id, cash.id).unwrap().version
    app.transactions.record_income(user.id, cash.id, Decimal("1"), "One").unwrap()
    app.transactions.record_income(user.id, cash.id, Decimal("1"), "Two").unwrap()
    assert app.ledger.get_product(user.id, cash.id).unwrap().version == before + 2
