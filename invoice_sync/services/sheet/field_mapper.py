"""
Mapping between sheet columns and InvoiceRecord fields.

Each canonical column has a formatter (record -> cell) and, when editable, a
parser (cell -> typed value). ``from_row`` distinguishes three intents per
field:

- column absent from the header, or cell missing from a short row: untouched
- cell present but empty: ``CLEAR``
- cell present with a value: the parsed value, or untouched plus an
  InvalidFieldValue when the cell cannot be parsed
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence
from ..errors import InvalidFieldValue, UnknownColumn
from ..invoice_types import DEFAULT_CURRENCY, InvoiceRecord, InvoiceStatus
from . import line_items


class _Clear:
    """Sentinel: the user emptied this cell"""

    def __repr__(self):
        return "CLEAR"


CLEAR = _Clear()

ID_COLUMN = "ID"

_CURRENCY_SYMBOLS = re.compile(r"[$€£¥\s]")
_GROUPED_THOUSANDS = re.compile(r"^\d{1,3}(,\d{3})+(\.\d*)?$")
_CURRENCY_CODES = re.compile(r"\b(USD|AUD|EUR|GBP|CAD|JPY|CNY)\b", re.IGNORECASE)


# ---------- formatters ----------

def format_text(value: Optional[str]) -> str:
    return value or ""


def format_date(value: Optional[date | datetime]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def format_money(minor_units: Optional[int]) -> str:
    if minor_units is None:
        return ""
    return f"{Decimal(minor_units) / 100:.2f}"


def format_currency(value: Optional[str]) -> str:
    return value or DEFAULT_CURRENCY


def format_status(value: Optional[InvoiceStatus]) -> str:
    return value.value if value is not None else ""


def format_line_items(items) -> str:
    if items is None:
        return ""
    return line_items.encode(items)


# ---------- parsers ----------
# Each parser receives a non-empty cell and raises ValueError on bad input.

def parse_text(cell: str) -> str:
    return cell


def parse_date(cell: str) -> date:
    value = cell.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        # Accept full ISO timestamps, keeping only the date part
        return datetime.fromisoformat(value).date()


def parse_money(cell: str) -> int:
    """Parse a major-unit amount ("12.5", "$1,234.56", "AUD 385.00") into minor units."""
    cleaned = _CURRENCY_SYMBOLS.sub("", _CURRENCY_CODES.sub("", cell))
    if "," in cleaned:
        # Only thousands grouping; "12,5" could be a decimal comma
        if not _GROUPED_THOUSANDS.match(cleaned):
            raise ValueError("commas are only allowed as thousands separators")
        cleaned = cleaned.replace(",", "")
    try:
        amount = float(cleaned)
    except ValueError:
        raise ValueError("not a number") from None
    if not math.isfinite(amount):
        raise ValueError("not a finite number")
    if amount < 0:
        raise ValueError("amount cannot be negative")
    # Nearest cent, halves up
    return math.floor(amount * 100 + 0.5)


def parse_currency(cell: str) -> str:
    return cell.strip()


def parse_status(cell: str) -> InvoiceStatus:
    try:
        return InvoiceStatus(cell.strip())
    except ValueError:
        allowed = ", ".join(s.value for s in InvoiceStatus)
        raise ValueError(f"status must be one of: {allowed}") from None


def parse_line_items(cell: str):
    items = line_items.decode(cell)
    if items is None:
        raise ValueError("line items must be a JSON array")
    return items


@dataclass(frozen=True)
class Column:
    header: str
    attribute: str
    format: Callable[[Any], str]
    parse: Optional[Callable[[str], Any]] = None  # None = read-only
    clear_value: Any = CLEAR  # what an emptied cell means; None = cannot be cleared

    @property
    def editable(self) -> bool:
        return self.parse is not None


# Canonical columns, in sheet order
COLUMNS: dict[str, Column] = {
    column.header: column
    for column in [
        Column(ID_COLUMN, "id", format_text),
        Column("Invoice Number", "invoice_number", format_text, parse_text),
        Column("Vendor Name", "vendor_name", format_text, parse_text),
        Column("Customer Name", "customer_name", format_text, parse_text),
        Column("Invoice Date", "invoice_date", format_date, parse_date),
        Column("Due Date", "due_date", format_date, parse_date),
        Column("Amount", "amount", format_money, parse_money),
        Column("Currency", "currency", format_currency, parse_currency, clear_value=DEFAULT_CURRENCY),
        Column("Status", "status", format_status, parse_status, clear_value=None),
        Column("Line Items", "line_items", format_line_items, parse_line_items),
        Column("Created At", "created_at", format_date),
    ]
}

CANONICAL_HEADERS: list[str] = list(COLUMNS)


@dataclass
class RowUpdate:
    """Field-level intents parsed from one sheet row"""

    record_id: Optional[str]
    fields: dict[str, Any] = field(default_factory=dict)  # attribute -> value or CLEAR
    errors: list[InvalidFieldValue] = field(default_factory=list)


def column_index(headers: Sequence[str], name: str) -> Optional[int]:
    """Exact, case-sensitive lookup; None when the column is absent."""
    try:
        return list(headers).index(name)
    except ValueError:
        return None


def unknown_columns(headers: Sequence[str]) -> list[UnknownColumn]:
    return [UnknownColumn(h) for h in headers if h not in COLUMNS]


def to_row(record: InvoiceRecord, headers: Sequence[str]) -> list[str]:
    """Format a record as one cell per header; unknown headers get empty cells."""
    row = []
    for header in headers:
        column = COLUMNS.get(header)
        row.append(column.format(getattr(record, column.attribute)) if column else "")
    return row


def from_row(row: Sequence[str], headers: Sequence[str]) -> RowUpdate:
    """Parse one row into a RowUpdate keyed by record attribute."""
    index_by_header = {header: i for i, header in enumerate(headers) if header in COLUMNS}

    record_id = None
    id_index = index_by_header.get(ID_COLUMN)
    if id_index is not None and id_index < len(row):
        record_id = row[id_index].strip() or None

    update = RowUpdate(record_id=record_id)
    for header, index in index_by_header.items():
        column = COLUMNS[header]
        if not column.editable or index >= len(row):
            continue

        cell = row[index]
        if not cell.strip():
            if column.clear_value is None:
                update.errors.append(InvalidFieldValue(header, cell, "cannot be empty"))
            else:
                update.fields[column.attribute] = column.clear_value
            continue

        try:
            update.fields[column.attribute] = column.parse(cell)
        except ValueError as e:
            update.errors.append(InvalidFieldValue(header, cell, str(e)))

    return update
