"""
Upload pipeline: content dedup -> extraction -> file -> signature dedup -> invoice.

Store calls run in the threadpool so the event loop only ever waits on them
and on the extraction call. Nothing is locked across the extraction call.
"""

import mimetypes
from dataclasses import dataclass
from typing import Literal, Optional
from fastapi.concurrency import run_in_threadpool
from loguru import logger
from .dedup import find_by_content, find_by_signature
from .errors import UnsupportedUpload
from .extraction import ExtractionConfig, extract_invoice_fields
from .invoice_types import ExtractedInvoice, FileKind, InvoiceFile, InvoiceStatus
from .storage.invoice_store_base import InvoiceStoreBase

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": FileKind.IMAGE,
    "image/png": FileKind.IMAGE,
    "application/pdf": FileKind.PDF,
}

Outcome = Literal["created", "duplicate_content", "duplicate_signature"]


@dataclass
class IngestResult:
    outcome: Outcome
    file_id: str
    invoice_id: Optional[str]
    extracted: Optional[ExtractedInvoice] = None


def media_type(content_type: Optional[str]) -> str:
    # "image/png; name=x" -> "image/png"
    return (content_type or "").split(";")[0].strip().lower()


def check_upload(content: bytes, content_type: Optional[str], max_bytes: int) -> FileKind:
    """Validate an upload and return its file kind."""
    if not content:
        raise UnsupportedUpload("File is empty")
    if len(content) > max_bytes:
        raise UnsupportedUpload(f"File size should be less than {max_bytes // (1024 * 1024)}MB")
    kind = ALLOWED_CONTENT_TYPES.get(media_type(content_type))
    if kind is None:
        raise UnsupportedUpload("File type should be JPEG, PNG, or PDF")
    return kind


def content_type_for(invoice_file: InvoiceFile) -> str:
    if invoice_file.kind == FileKind.PDF:
        return "application/pdf"
    guessed, _ = mimetypes.guess_type(invoice_file.title)
    return guessed if guessed in ALLOWED_CONTENT_TYPES else "image/jpeg"


async def ingest_document(
    store: InvoiceStoreBase,
    user_id: str,
    title: str,
    content_type: Optional[str],
    content: bytes,
    config: ExtractionConfig,
    max_bytes: int,
) -> IngestResult:
    """
    Store an uploaded document and the invoice extracted from it.

    Raises:
        UnsupportedUpload: empty, oversized, or wrong type
        ExtractionFailure: extraction failed or the document is not an invoice;
            nothing is stored
    """
    kind = check_upload(content, content_type, max_bytes)

    duplicate = await run_in_threadpool(find_by_content, store, user_id, content)
    if duplicate is not None:
        # Same bytes already processed: no second file, no second extraction
        invoice = await run_in_threadpool(store.find_invoice_by_file_id, user_id, duplicate.file.id)
        return IngestResult(
            outcome="duplicate_content",
            file_id=duplicate.file.id,
            invoice_id=invoice.id if invoice else None,
        )

    extracted = await extract_invoice_fields(content, media_type(content_type), config)

    invoice_file = await run_in_threadpool(store.create_invoice_file, user_id, title, kind.value, content)
    logger.info("Stored invoice file", user_id=user_id, file_id=invoice_file.id, kind=kind.value)

    return await _record_invoice(store, user_id, invoice_file.id, extracted)


async def reextract_file(
    store: InvoiceStoreBase,
    user_id: str,
    invoice_file: InvoiceFile,
    config: ExtractionConfig,
) -> IngestResult:
    """Run extraction again on a stored file. Signature dedup keeps this idempotent."""
    extracted = await extract_invoice_fields(invoice_file.content, content_type_for(invoice_file), config)
    return await _record_invoice(store, user_id, invoice_file.id, extracted)


async def _record_invoice(
    store: InvoiceStoreBase,
    user_id: str,
    file_id: str,
    extracted: ExtractedInvoice,
) -> IngestResult:
    duplicate = await run_in_threadpool(
        find_by_signature,
        store,
        user_id,
        extracted.invoice_number,
        extracted.vendor_name,
        extracted.amount,
    )
    if duplicate is not None:
        return IngestResult(
            outcome="duplicate_signature",
            file_id=file_id,
            invoice_id=duplicate.invoice.id,
            extracted=extracted,
        )

    invoice = await run_in_threadpool(store.create_invoice, user_id, {
        "file_id": file_id,
        "invoice_number": extracted.invoice_number,
        "vendor_name": extracted.vendor_name,
        "customer_name": extracted.customer_name,
        "invoice_date": extracted.invoice_date,
        "due_date": extracted.due_date,
        "amount": extracted.amount,
        "currency": extracted.currency,
        "line_items": extracted.line_items,
        "status": InvoiceStatus.COMPLETED,
        "raw_extracted_text": extracted.content,
        "confidence_score": round(extracted.confidence * 100),
    })
    logger.info(
        "Invoice created",
        user_id=user_id,
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        vendor=invoice.vendor_name,
    )
    return IngestResult(outcome="created", file_id=file_id, invoice_id=invoice.id, extracted=extracted)
