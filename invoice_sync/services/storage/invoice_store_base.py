"""
Abstract base class for invoice persistence.

Defines the interface that all invoice stores must implement, enabling
dependency injection and easy swapping of storage backends. Every operation
is scoped by user: a store never returns or mutates another user's data.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from ..invoice_types import InvoiceFile, InvoiceRecord, SheetVersion


class InvoiceStoreBase(ABC):
    """
    Abstract base class for invoice, invoice file and sheet version storage.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    """

    # ---------- invoices ----------

    @abstractmethod
    def get_invoices_by_user_id(self, user_id: str) -> list[InvoiceRecord]:
        """
        List a user's invoices, newest first.

        Args:
            user_id: Owner of the invoices

        Returns:
            InvoiceRecords ordered by created_at descending
        """
        pass

    @abstractmethod
    def create_invoice(self, user_id: str, fields: dict[str, Any]) -> InvoiceRecord:
        """
        Create an invoice with a fresh id.

        Args:
            user_id: Owner of the invoice
            fields: InvoiceRecord attribute values (id and timestamps are generated)

        Returns:
            The stored InvoiceRecord
        """
        pass

    @abstractmethod
    def update_invoice(self, invoice_id: str, user_id: str, changes: dict[str, Any]) -> Optional[InvoiceRecord]:
        """
        Apply a partial update and bump updated_at.

        Args:
            invoice_id: Invoice to update
            user_id: Owner; an invoice belonging to another user is not found
            changes: Attribute -> new value (None clears an optional field)

        Returns:
            The updated InvoiceRecord, or None if no invoice matched (id, user_id)
        """
        pass

    @abstractmethod
    def find_invoice_by_signature(
        self, user_id: str, invoice_number: str, vendor_name: str, amount: int
    ) -> Optional[InvoiceRecord]:
        """Find a user's invoice with exactly this number, vendor and amount."""
        pass

    @abstractmethod
    def find_invoice_by_file_id(self, user_id: str, file_id: str) -> Optional[InvoiceRecord]:
        """Find the invoice that was extracted from a given file."""
        pass

    # ---------- invoice files ----------

    @abstractmethod
    def find_invoice_file_by_content(self, user_id: str, content: bytes) -> Optional[InvoiceFile]:
        """Find a user's file whose bytes are identical to ``content``."""
        pass

    @abstractmethod
    def create_invoice_file(self, user_id: str, title: str, kind: str, content: bytes) -> InvoiceFile:
        """
        Store an uploaded file.

        If the user already has a file with identical content, the existing
        file is returned instead of creating a second one.
        """
        pass

    @abstractmethod
    def get_invoice_file(self, file_id: str, user_id: str) -> Optional[InvoiceFile]:
        """Get one of a user's files, or None."""
        pass

    @abstractmethod
    def list_invoice_files(self, user_id: str) -> list[InvoiceFile]:
        """List a user's files, newest first."""
        pass

    # ---------- sheet versions ----------

    @abstractmethod
    def save_sheet_version(self, sheet_id: str, user_id: str, title: str, content: str) -> SheetVersion:
        """Append a new version of a sheet."""
        pass

    @abstractmethod
    def get_latest_sheet_version(self, sheet_id: str, user_id: str) -> Optional[SheetVersion]:
        """Most recent version of a user's sheet, or None."""
        pass

    @abstractmethod
    def list_sheet_versions(self, sheet_id: str, user_id: str) -> list[SheetVersion]:
        """All versions of a user's sheet, oldest first."""
        pass
