"""Tests for the CSV export of transactions."""

from __future__ import annotations

import csv
from decimal import Decimal

from ledgerflow.models import Currency, Transaction, TransactionType
from ledgerflow.services import export_csv


def test_export_transactions_csv_creates_file(tmp_path, user):
    """Exporting ledger data writes a CSV with header and rows."""

    txs = [
        Transaction(
            id=1, user_id=user.id, type=TransactionType.EXPENSE, amount=Decimal("50.25"),
            description="Groceries", from_product_id=3,
        ),
        Transaction(
            id=2, user_id=user.id, type=TransactionType.INCOME, amount=Decimal("125.00"),
            description="Salary", to_product_id=3,
        ),
    ]

    output_path = tmp_path / "nested" / "ledger-test.csv"
    returned = export_csv.export_transactions_csv(transactions=txs, output_path=output_path)

    assert returned == output_path
    with output_path.open(newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        assert reader.fieldnames == export_csv.HEADERS
        rows = list(reader)
    assert {row["description"] for row in rows} == {"Groceries", "Salary"}
    assert rows[0]["amount"] == "50.25"
    assert rows[0]["type"] == "EXPENSE"
    assert rows[0]["to_product_id"] == ""


def test_export_keeps_conversion_columns(tmp_path, app, user, product_factory, rate_factory):
    dollars = product_factory("Dollars", currency=Currency.USD, balance="1")
    pesos = product_factory("Pesos")
    rate_factory(Currency.USD, Currency.ARS, "1350")
    app.transactions.record_transfer(user.id, dollars.id, pesos.id, Decimal("1"), "Exchange").unwrap()
    rows = app.transactions.list_transactions(user.id).unwrap()

    path = export_csv.export_transactions_csv(transactions=rows, output_path=tmp_path / "out.csv")

    with path.open(newline="", encoding="utf-8") as fh:
        exported = list(csv.DictReader(fh))
    transfer = next(row for row in exported if row["type"] == "TRANSFER")
    assert transfer["converted_amount"] == "1350.00"
    assert transfer["exchange_rate"] == "1350"


def test_export_empty_list_writes_header_only(tmp_path):
    path = export_csv.export_transactions_csv(transactions=[], output_path=tmp_path / "empty.csv")
    assert path.read_text(encoding="utf-8").strip() == ",".join(export_csv.HEADERS)
