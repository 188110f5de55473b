"""CSV export of ledger transactions."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from ..models.transaction import Transaction
from .serializers import to_plain

HEADERS = [
    "id",
    "occurred_on",
    "type",
    "amount",
    "description",
    "category_id",
    "from_product_id",
    "to_product_id",
    "converted_amount",
    "exchange_rate",
    "installment_number",
    "installment_total",
]


def export_transactions_csv(*, transactions: Iterable[Transaction], output_path: Path) -> Path:
    """Write transactions to CSV at ``output_path`` and return the path.

    Columns are fixed (see ``HEADERS``); missing values become empty cells.
    """

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    # newline='' keeps csv from doubling line endings on Windows
    with output_path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=HEADERS, quoting=csv.QUOTE_MINIMAL)
        writer.writeheader()
        for txn in transactions:
            row = {}
            for name in HEADERS:
                value = to_plain(getattr(txn, name, None))
                row[name] = "" if value is None else value
            writer.writerow(row)

    return output_path
