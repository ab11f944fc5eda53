from datetime import date, datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, field_validator

DEFAULT_CURRENCY = "USD"


def blank_to_none(value):
    """Whitespace-only text is stored as absent"""
    if isinstance(value, str) and not value.strip():
        return None
    return value


class InvoiceStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class FileKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"


class LineItem(BaseModel):
    """One row of an invoice's item table. Shape only, no arithmetic checks."""

    model_config = ConfigDict(strict=True, populate_by_name=True, frozen=True)

    description: str | None = None
    quantity: int | float | None = None
    unit_price: int | None = Field(default=None, alias="unitPrice")  # minor units
    total: int | None = None  # minor units


class InvoiceRecord(BaseModel):
    id: str
    user_id: str
    file_id: str | None = None
    invoice_number: str | None = None
    vendor_name: str | None = None
    customer_name: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    amount: NonNegativeInt | None = None  # minor units (cents)
    currency: str = DEFAULT_CURRENCY
    line_items: list[LineItem] | None = None
    status: InvoiceStatus = InvoiceStatus.PROCESSING
    raw_extracted_text: str | None = None
    confidence_score: int | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("invoice_number", "vendor_name", "customer_name", "raw_extracted_text", mode="before")
    @classmethod
    def _blank_text(cls, value):
        return blank_to_none(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _blank_currency(cls, value):
        return blank_to_none(value) or DEFAULT_CURRENCY


class InvoiceFile(BaseModel):
    id: str
    user_id: str
    title: str
    kind: FileKind
    content: bytes
    created_at: datetime


class SheetVersion(BaseModel):
    sheet_id: str
    user_id: str
    title: str
    content: str
    created_at: datetime


class ExtractedInvoice(BaseModel):
    """Validated output of an extraction backend"""

    model_config = ConfigDict(populate_by_name=True)

    invoice_number: str = Field(alias="invoiceNumber", min_length=1)
    vendor_name: str = Field(alias="vendorName", min_length=1)
    customer_name: str | None = Field(default=None, alias="customerName")
    invoice_date: date = Field(alias="invoiceDate")
    due_date: date | None = Field(default=None, alias="dueDate")
    amount: NonNegativeInt  # minor units (cents)
    currency: str = DEFAULT_CURRENCY
    line_items: list[LineItem] = Field(default_factory=list, alias="lineItems")
    confidence: float = 0.0
    content: str | None = None  # Full OCR text, when the backend produced one

    @field_validator("customer_name", "due_date", mode="before")
    @classmethod
    def _blank_optional(cls, value):
        return blank_to_none(value)
