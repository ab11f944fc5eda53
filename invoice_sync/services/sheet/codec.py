"""
CSV codec for invoice sheets.

Rendering quotes a cell only when it contains a comma, a double quote or a line
break, doubling interior quotes. Parsing is the inverse and skips blank lines.
"""

import csv
import io
from dataclasses import dataclass, field
from typing import Iterable, Sequence
from ..errors import MalformedTable
from ..invoice_types import InvoiceRecord
from .field_mapper import to_row

DELIMITER = ","
LINE_TERMINATOR = "\n"

# Line Items cells can outgrow the csv module's 128 KiB default field limit
MAX_CELL_CHARS = 64 * 1024 * 1024


@dataclass
class ParsedTable:
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)


def render_rows(rows: Iterable[Sequence[str]]) -> str:
    """Write already-formatted rows (header first) as CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(
        buffer,
        delimiter=DELIMITER,
        quotechar='"',
        doublequote=True,
        quoting=csv.QUOTE_MINIMAL,
        lineterminator=LINE_TERMINATOR,
    )
    writer.writerows(rows)
    # No trailing newline after the last row
    return buffer.getvalue().removesuffix(LINE_TERMINATOR)


def render(headers: Sequence[str], records: Iterable[InvoiceRecord]) -> str:
    """Render records as CSV with one column per header, in header order."""
    return render_rows([list(headers), *(to_row(record, headers) for record in records)])


def parse(text: str) -> ParsedTable:
    """
    Parse CSV text into a header row and data rows.

    Raises:
        MalformedTable: if the text contains no header row
    """
    if csv.field_size_limit() < MAX_CELL_CHARS:
        csv.field_size_limit(MAX_CELL_CHARS)

    reader = csv.reader(io.StringIO(text or ""), delimiter=DELIMITER, quotechar='"', doublequote=True)
    try:
        rows = [row for row in reader if any(cell.strip() for cell in row)]
    except csv.Error as e:
        raise MalformedTable(f"Unreadable CSV: {e}") from e

    if not rows:
        raise MalformedTable("No header row found")

    headers, *data = rows
    return ParsedTable(headers=headers, rows=data)
