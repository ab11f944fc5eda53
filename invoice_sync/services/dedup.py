"""
Duplicate detection for uploads and extracted invoices.

Two independent, user-scoped checks:

- content: an upload whose bytes match a stored file reuses that file and
  skips extraction entirely
- signature: an extracted invoice with the same (invoice number, vendor name,
  amount) as a stored one is not persisted again

Both are single lookups without transactional fencing. Two concurrent
requests can both miss and both write; the file table's unique index catches
that for files, nothing does for invoices.
"""

from dataclasses import dataclass
from typing import Optional
from loguru import logger
from .invoice_types import InvoiceFile, InvoiceRecord
from .storage.invoice_store_base import InvoiceStoreBase


@dataclass(frozen=True)
class DuplicateContent:
    """Upload matches a stored file byte for byte"""
    file: InvoiceFile


@dataclass(frozen=True)
class DuplicateSignature:
    """Extracted invoice matches a stored invoice's signature"""
    invoice: InvoiceRecord


def find_by_content(store: InvoiceStoreBase, user_id: str, content: bytes) -> Optional[DuplicateContent]:
    existing = store.find_invoice_file_by_content(user_id, content)
    if existing is None:
        return None

    logger.info("Duplicate upload detected", user_id=user_id, file_id=existing.id)
    return DuplicateContent(file=existing)


def find_by_signature(
    store: InvoiceStoreBase,
    user_id: str,
    invoice_number: Optional[str],
    vendor_name: Optional[str],
    amount: Optional[int],
) -> Optional[DuplicateSignature]:
    """Exact, case-sensitive match on all three fields; None if any is missing."""
    if invoice_number is None or vendor_name is None or amount is None:
        return None

    existing = store.find_invoice_by_signature(user_id, invoice_number, vendor_name, amount)
    if existing is None:
        return None

    logger.info(
        "Duplicate invoice detected",
        user_id=user_id,
        invoice_id=existing.id,
        invoice_number=invoice_number,
        vendor=vendor_name,
    )
    return DuplicateSignature(invoice=existing)
