"""CSV rendering of a transaction view."""
import csv
import io
from typing import Iterable

from models.transaction import Transaction
from utils.formatting import format_amount

EXPORT_COLUMNS = ["id", "date", "amount", "type", "reason", "description"]


def transactions_to_csv(transactions: Iterable[Transaction]) -> str:
    """
    Writes the transactions, in the order given, as CSV text with a header row.
    Quoting of commas, quotes and newlines is left to the csv module.
    """
    buf = io.StringIO()
    w = csv.writer(buf)
    w.writerow(EXPORT_COLUMNS)
    for t in transactions:
        w.writerow([
            t.id,
            t.date.isoformat(),
            format_amount(t.amount),
            t.type,
            t.reason,
            t.description or "",
        ])
    return buf.getvalue()
