"""
Tests for the CSV sheet codec: escaping, parsing and round-tripping.
"""

from datetime import date

import pytest
from invoice_sync.services.errors import MalformedTable
from invoice_sync.services.invoice_types import LineItem
from invoice_sync.services.sheet.codec import parse, render, render_rows
from invoice_sync.services.sheet.field_mapper import CANONICAL_HEADERS, to_row

HEADER_LINE = (
    "ID,Invoice Number,Vendor Name,Customer Name,Invoice Date,Due Date,"
    "Amount,Currency,Status,Line Items,Created At"
)


def test_render_no_records_is_header_only():
    assert render(CANONICAL_HEADERS, []) == HEADER_LINE


def test_render_plain_cells_are_not_quoted(make_record):
    record = make_record(id="abc", invoice_number="INV-1", vendor_name="ACME", amount=1250)

    lines = render(CANONICAL_HEADERS, [record]).split("\n")

    assert lines[0] == HEADER_LINE
    assert lines[1] == "abc,INV-1,ACME,,,,12.50,USD,processing,,2025-03-01"


def test_render_quotes_cells_with_commas_quotes_and_newlines(make_record):
    record = make_record(
        id="abc",
        vendor_name="Acme, Inc.",
        customer_name='The "Best" Co',
        invoice_number="line one\nline two",
    )

    text = render(["ID", "Vendor Name", "Customer Name", "Invoice Number"], [record])

    assert text == 'ID,Vendor Name,Customer Name,Invoice Number\nabc,"Acme, Inc.","The ""Best"" Co","line one\nline two"'


def test_render_follows_header_order(make_record):
    record = make_record(id="abc", invoice_number="INV-1", vendor_name="ACME")

    text = render(["Vendor Name", "ID"], [record])

    assert text == "Vendor Name,ID\nACME,abc"


def test_render_line_items_cell_is_quoted(make_record):
    record = make_record(
        id="abc",
        line_items=[LineItem(description="Widget", quantity=2, unit_price=500, total=1000)],
    )

    text = render(["ID", "Line Items"], [record])

    assert text == 'ID,Line Items\nabc,"[{""description"":""Widget"",""quantity"":2,""unitPrice"":500,""total"":1000}]"'


def test_parse_header_and_rows():
    table = parse("ID,Amount\na,12.50\nb,3.00")

    assert table.headers == ["ID", "Amount"]
    assert table.rows == [["a", "12.50"], ["b", "3.00"]]


def test_parse_skips_blank_lines():
    table = parse("\nID,Amount\n\na,12.50\n   \nb,3.00\n\n")

    assert table.headers == ["ID", "Amount"]
    assert table.rows == [["a", "12.50"], ["b", "3.00"]]


def test_parse_quoted_cells():
    table = parse('ID,Vendor Name\nabc,"Acme, Inc."\ndef,"The ""Best"" Co"\nghi,"two\nlines"')

    assert [row[1] for row in table.rows] == ["Acme, Inc.", 'The "Best" Co', "two\nlines"]


def test_parse_header_only_has_no_rows():
    table = parse(HEADER_LINE)

    assert table.headers == CANONICAL_HEADERS
    assert table.rows == []


@pytest.mark.parametrize("text", ["", "   ", "\n\n", None])
def test_parse_without_header_is_malformed(text):
    with pytest.raises(MalformedTable):
        parse(text)


def test_render_rows_has_no_trailing_newline():
    assert render_rows([["a", "b"], ["1", "2"]]) == "a,b\n1,2"


def test_round_trip_reproduces_formatted_cells(make_record):
    records = [
        make_record(
            invoice_number="INV-001",
            vendor_name="Acme, Inc.",
            customer_name='Says "hi"',
            invoice_date=date(2025, 1, 15),
            due_date=date(2025, 2, 14),
            amount=123456,
            currency="EUR",
            status="completed",
            line_items=[LineItem(description="A, B", quantity=1.5, unit_price=100, total=150)],
        ),
        make_record(amount=0),
        make_record(),
    ]

    table = parse(render(CANONICAL_HEADERS, records))

    assert table.headers == CANONICAL_HEADERS
    assert table.rows == [to_row(r, CANONICAL_HEADERS) for r in records]
    assert table.rows[0][6] == "1234.56"
    assert table.rows[1][6] == "0.00"
    assert table.rows[2][6] == ""


def test_parse_cell_larger_than_default_csv_limit():
    big = '"quoted", ' * 20000
    text = render_rows([["ID", "Line Items"], ["inv-1", big]])

    table = parse(text)

    assert len(big) > 131072
    assert table.rows == [["inv-1", big]]
