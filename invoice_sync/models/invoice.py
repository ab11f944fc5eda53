from datetime import date, datetime
from pydantic import BaseModel, Field
from ..services.invoice_types import FileKind, InvoiceFile, InvoiceStatus, LineItem


class InvoiceResponse(BaseModel):
    id: str
    file_id: str | None = None
    invoice_number: str | None = None
    vendor_name: str | None = None
    customer_name: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    amount: int | None = None  # minor units (cents)
    currency: str
    line_items: list[LineItem] | None = None
    status: InvoiceStatus
    confidence_score: int | None = None
    created_at: datetime
    updated_at: datetime


class InvoiceFileResponse(BaseModel):
    id: str
    title: str
    kind: FileKind
    size_bytes: int
    created_at: datetime

    @classmethod
    def from_file(cls, invoice_file: InvoiceFile) -> "InvoiceFileResponse":
        return cls(
            id=invoice_file.id,
            title=invoice_file.title,
            kind=invoice_file.kind,
            size_bytes=len(invoice_file.content),
            created_at=invoice_file.created_at,
        )


class UploadResponse(BaseModel):
    outcome: str  # created | duplicate_content | duplicate_signature
    message: str
    file_id: str
    invoice_id: str | None = None


class CreateSheetRequest(BaseModel):
    title: str = Field("Invoices", min_length=1)


class SheetUpdateRequest(BaseModel):
    content: str


class SheetResponse(BaseModel):
    sheet_id: str
    title: str
    content: str
    created_at: datetime


class SheetVersionResponse(BaseModel):
    version: int
    content: str
    created_at: datetime


class RejectedRowResponse(BaseModel):
    row: int
    record_id: str | None = None
    reason: str


class FieldErrorResponse(BaseModel):
    row: int
    record_id: str | None = None
    column: str
    value: str
    reason: str


class SheetUpdateResponse(BaseModel):
    sheet_id: str
    content: str
    applied: bool
    updated_ids: list[str] = []
    unchanged_ids: list[str] = []
    skipped_rows: list[int] = []
    rejected_rows: list[RejectedRowResponse] = []
    field_errors: list[FieldErrorResponse] = []
    unknown_columns: list[str] = []
