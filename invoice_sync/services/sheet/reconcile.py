"""
Two-way synchronization between a user's invoices and their CSV sheet.

build_sheet renders the current records. apply_sheet parses an edited sheet,
writes field-level changes one row at a time, then renders a fresh sheet from
what the store actually holds afterwards. Per-row and per-field problems are
collected in the SyncResult and never abort the pass; storage failures
propagate, leaving rows already written as they are.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
from loguru import logger
from ..errors import InvalidFieldValue, MalformedTable, RecordNotFound
from ..invoice_types import InvoiceRecord, blank_to_none
from ..storage.invoice_store_base import InvoiceStoreBase
from . import codec
from .field_mapper import CANONICAL_HEADERS, CLEAR, RowUpdate, from_row, unknown_columns


@dataclass
class RejectedRow:
    row: int  # 1-based position among data rows
    record_id: Optional[str]
    reason: str


@dataclass
class FieldError:
    row: int
    record_id: Optional[str]
    column: str
    value: str
    reason: str


@dataclass
class SyncResult:
    content: str
    applied: bool = True  # False when the submitted sheet had nothing to apply
    updated_ids: list[str] = field(default_factory=list)
    unchanged_ids: list[str] = field(default_factory=list)
    skipped_rows: list[int] = field(default_factory=list)
    rejected_rows: list[RejectedRow] = field(default_factory=list)
    field_errors: list[FieldError] = field(default_factory=list)
    unknown_columns: list[str] = field(default_factory=list)


def render_invoices(records: list[InvoiceRecord]) -> str:
    return codec.render(CANONICAL_HEADERS, records)


def build_sheet(store: InvoiceStoreBase, user_id: str) -> str:
    """Render all of a user's invoices (newest first) with the canonical columns."""
    records = store.get_invoices_by_user_id(user_id)
    logger.info("Building invoice sheet", user_id=user_id, invoices=len(records))
    return render_invoices(records)


def diff_changes(record: InvoiceRecord, update: RowUpdate) -> dict[str, Any]:
    """Keep only the fields whose new value differs from the record's."""
    changes = {}
    for attribute, value in update.fields.items():
        new_value = None if value is CLEAR else value
        if new_value != blank_to_none(getattr(record, attribute)):
            changes[attribute] = new_value
    return changes


def apply_sheet(store: InvoiceStoreBase, user_id: str, text: str) -> SyncResult:
    """
    Apply an edited sheet to the user's invoices.

    Rows are processed in order. A row without an ID is skipped (rows typed
    into the grid never create invoices). A row whose ID is not one of the
    user's invoices is rejected. Unparseable cells leave their field untouched.

    Returns:
        SyncResult whose content is the re-rendered sheet, or the submitted
        text unchanged when it had no header or no data rows
    """
    try:
        table = codec.parse(text)
    except MalformedTable as e:
        logger.warning("Ignoring malformed sheet", user_id=user_id, error=str(e))
        return SyncResult(content=text, applied=False)

    if not table.rows:
        logger.info("Sheet has no data rows, nothing to apply", user_id=user_id)
        return SyncResult(content=text, applied=False)

    result = SyncResult(content=text)
    for unknown in unknown_columns(table.headers):
        logger.warning("Unknown column in sheet", column=unknown.column, user_id=user_id)
        result.unknown_columns.append(unknown.column)

    current = {record.id: record for record in store.get_invoices_by_user_id(user_id)}

    for row_number, row in enumerate(table.rows, start=1):
        update = from_row(row, table.headers)
        for error in update.errors:
            result.field_errors.append(_field_error(row_number, update.record_id, error))
            logger.warning(
                "Leaving field untouched",
                row=row_number,
                invoice_id=update.record_id,
                column=error.column,
                reason=error.reason,
            )

        if not update.record_id:
            result.skipped_rows.append(row_number)
            continue

        record = current.get(update.record_id)
        if record is None:
            _reject(result, row_number, RecordNotFound(update.record_id, user_id))
            continue

        changes = diff_changes(record, update)
        if not changes:
            result.unchanged_ids.append(record.id)
            continue

        updated = store.update_invoice(record.id, user_id, changes)
        if updated is None:
            _reject(result, row_number, RecordNotFound(record.id, user_id))
            continue

        current[updated.id] = updated
        result.updated_ids.append(updated.id)
        logger.info("Invoice updated from sheet", invoice_id=updated.id, fields=sorted(changes))

    # Re-render from authoritative state, never from the submitted text
    result.content = build_sheet(store, user_id)

    logger.info(
        "Applied invoice sheet",
        user_id=user_id,
        updated=len(result.updated_ids),
        unchanged=len(result.unchanged_ids),
        skipped=len(result.skipped_rows),
        rejected=len(result.rejected_rows),
        field_errors=len(result.field_errors),
    )
    return result


def _field_error(row_number: int, record_id: Optional[str], error: InvalidFieldValue) -> FieldError:
    return FieldError(
        row=row_number,
        record_id=record_id,
        column=error.column,
        value=error.value,
        reason=error.reason,
    )


def _reject(result: SyncResult, row_number: int, error: RecordNotFound) -> None:
    logger.warning("Rejecting sheet row", row=row_number, invoice_id=error.record_id, reason=str(error))
    result.rejected_rows.append(RejectedRow(row=row_number, record_id=error.record_id, reason=str(error)))
