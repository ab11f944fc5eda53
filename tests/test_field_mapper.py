"""
Tests for column <-> field mapping: formatting, parsing and edit intents.
"""

from datetime import date

import pytest
from invoice_sync.services.invoice_types import InvoiceStatus, LineItem
from invoice_sync.services.sheet.field_mapper import (
    CANONICAL_HEADERS,
    CLEAR,
    column_index,
    from_row,
    parse_date,
    parse_money,
    to_row,
    unknown_columns,
)


class TestColumnLookup:
    def test_exact_match(self):
        assert column_index(CANONICAL_HEADERS, "Amount") == 6

    def test_lookup_is_case_sensitive(self):
        assert column_index(CANONICAL_HEADERS, "amount") is None
        assert column_index(CANONICAL_HEADERS, "id") is None

    def test_absent_column(self):
        assert column_index(["ID", "Amount"], "Vendor Name") is None

    def test_unknown_columns_reported_by_name(self):
        unknown = unknown_columns(["ID", "Notes", "amount"])
        assert [u.column for u in unknown] == ["Notes", "amount"]


class TestToRow:
    def test_formats_each_canonical_column(self, make_record):
        record = make_record(
            id="inv-1",
            invoice_number="INV-001",
            vendor_name="ACME Corp",
            customer_name="Fabrikam Inc",
            invoice_date=date(2025, 1, 15),
            due_date=date(2025, 2, 14),
            amount=1250,
            currency="AUD",
            status="completed",
            line_items=[LineItem(description="Widget", quantity=1, unit_price=1250, total=1250)],
        )

        assert to_row(record, CANONICAL_HEADERS) == [
            "inv-1",
            "INV-001",
            "ACME Corp",
            "Fabrikam Inc",
            "2025-01-15",
            "2025-02-14",
            "12.50",
            "AUD",
            "completed",
            '[{"description":"Widget","quantity":1,"unitPrice":1250,"total":1250}]',
            "2025-03-01",
        ]

    def test_absent_values_are_empty_cells(self, make_record):
        row = to_row(make_record(), ["Invoice Number", "Invoice Date", "Amount", "Line Items"])
        assert row == ["", "", "", ""]

    def test_zero_amount_is_not_empty(self, make_record):
        assert to_row(make_record(amount=0), ["Amount"]) == ["0.00"]

    def test_currency_defaults_to_usd(self, make_record):
        assert to_row(make_record(), ["Currency"]) == ["USD"]

    def test_unknown_header_gets_empty_cell(self, make_record):
        assert to_row(make_record(vendor_name="ACME"), ["Notes", "Vendor Name"]) == ["", "ACME"]


class TestParsers:
    @pytest.mark.parametrize("cell,expected", [
        ("12.5", 1250),
        ("12.50", 1250),
        ("0", 0),
        ("$1,234.56", 123456),
        ("AUD 385.00", 38500),
        ("1,234,567.89", 123456789),
        ("0.125", 13),
        ("1.005", 100),
        ("10.124", 1012),
    ])
    def test_parse_money(self, cell, expected):
        assert parse_money(cell) == expected

    @pytest.mark.parametrize("cell", ["abc", "-5", "NaN", "Infinity", "1.2.3", "12,5", "1,23.00", "1,2345"])
    def test_parse_money_rejects(self, cell):
        with pytest.raises(ValueError):
            parse_money(cell)

    def test_parse_date_iso(self):
        assert parse_date("2025-01-15") == date(2025, 1, 15)

    def test_parse_date_keeps_date_of_timestamp(self):
        assert parse_date("2025-01-15T10:30:00") == date(2025, 1, 15)

    @pytest.mark.parametrize("cell", ["not-a-date", "15/01/2025", "2025-13-01"])
    def test_parse_date_rejects(self, cell):
        with pytest.raises(ValueError):
            parse_date(cell)


class TestFromRow:
    def test_reads_record_id(self):
        update = from_row(["  inv-1 ", "INV-9"], ["ID", "Invoice Number"])
        assert update.record_id == "inv-1"
        assert update.fields == {"invoice_number": "INV-9"}

    def test_blank_id_is_none(self):
        assert from_row(["", "INV-9"], ["ID", "Invoice Number"]).record_id is None

    def test_empty_cell_clears(self):
        update = from_row(["inv-1", ""], ["ID", "Customer Name"])
        assert update.fields == {"customer_name": CLEAR}
        assert update.errors == []

    def test_absent_column_is_untouched(self):
        update = from_row(["inv-1", "12.50"], ["ID", "Amount"])
        assert set(update.fields) == {"amount"}

    def test_short_row_leaves_trailing_fields_untouched(self):
        update = from_row(["inv-1", "ACME"], ["ID", "Vendor Name", "Amount", "Currency"])
        assert update.fields == {"vendor_name": "ACME"}

    def test_unparseable_cell_is_error_and_untouched(self):
        update = from_row(["inv-1", "not-a-date", "ACME"], ["ID", "Invoice Date", "Vendor Name"])

        assert update.fields == {"vendor_name": "ACME"}
        assert len(update.errors) == 1
        assert update.errors[0].column == "Invoice Date"
        assert update.errors[0].value == "not-a-date"

    def test_read_only_columns_ignored(self):
        update = from_row(["inv-1", "2020-01-01"], ["ID", "Created At"])
        assert update.fields == {}
        assert update.errors == []

    def test_unknown_columns_ignored(self):
        update = from_row(["inv-1", "anything"], ["ID", "Notes"])
        assert update.fields == {}

    def test_cleared_currency_resets_to_default(self):
        update = from_row(["inv-1", ""], ["ID", "Currency"])
        assert update.fields == {"currency": "USD"}

    def test_status_cannot_be_cleared(self):
        update = from_row(["inv-1", ""], ["ID", "Status"])
        assert update.fields == {}
        assert update.errors[0].column == "Status"

    def test_status_must_be_known(self):
        update = from_row(["inv-1", "paid"], ["ID", "Status"])
        assert update.fields == {}
        assert "processing" in update.errors[0].reason

    def test_status_parsed(self):
        update = from_row(["inv-1", "error"], ["ID", "Status"])
        assert update.fields == {"status": InvoiceStatus.ERROR}

    def test_line_items_not_an_array_is_error(self):
        update = from_row(["inv-1", '{"description": "x"}'], ["ID", "Line Items"])
        assert update.fields == {}
        assert update.errors[0].column == "Line Items"

    def test_round_trip_reproduces_fields(self, make_record):
        record = make_record(
            invoice_number="INV-001",
            vendor_name="Acme, Inc.",
            invoice_date=date(2025, 1, 15),
            amount=123456,
            currency="EUR",
            status="completed",
            line_items=[LineItem(description="Widget", quantity=2, unit_price=500, total=1000)],
        )

        update = from_row(to_row(record, CANONICAL_HEADERS), CANONICAL_HEADERS)

        assert update.record_id == record.id
        assert update.errors == []
        assert update.fields["invoice_number"] == "INV-001"
        assert update.fields["vendor_name"] == "Acme, Inc."
        assert update.fields["invoice_date"] == date(2025, 1, 15)
        assert update.fields["amount"] == 123456
        assert update.fields["currency"] == "EUR"
        assert update.fields["status"] == InvoiceStatus.COMPLETED
        assert update.fields["line_items"] == record.line_items
        # Absent on the record, so rendered empty and read back as a clear
        assert update.fields["customer_name"] is CLEAR
        assert update.fields["due_date"] is CLEAR
