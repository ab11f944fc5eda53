"""
In-memory invoice storage (for tests and demo purposes).
In production, use the SQLite store.
"""
import threading
import uuid
from datetime import datetime, UTC
from typing import Any, Dict, Optional
from ..invoice_types import DEFAULT_CURRENCY, InvoiceFile, InvoiceRecord, SheetVersion
from .invoice_store_base import InvoiceStoreBase


class InMemoryInvoiceStore(InvoiceStoreBase):
    def __init__(self):
        self._invoices: Dict[str, InvoiceRecord] = {}
        self._files: Dict[str, InvoiceFile] = {}
        self._sheets: Dict[str, list[SheetVersion]] = {}
        self._lock = threading.Lock()

    def get_invoices_by_user_id(self, user_id: str) -> list[InvoiceRecord]:
        """List a user's invoices, newest first"""
        with self._lock:
            owned = [inv for inv in reversed(self._invoices.values()) if inv.user_id == user_id]
        return sorted(owned, key=lambda inv: inv.created_at, reverse=True)

    def create_invoice(self, user_id: str, fields: dict[str, Any]) -> InvoiceRecord:
        """Create an invoice and return it"""
        now = datetime.now(UTC)
        data = {"currency": DEFAULT_CURRENCY, **fields}
        if data.get("currency") is None:
            data["currency"] = DEFAULT_CURRENCY
        record = InvoiceRecord.model_validate({
            **data,
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "created_at": now,
            "updated_at": now,
        })
        with self._lock:
            self._invoices[record.id] = record
        return record

    def update_invoice(self, invoice_id: str, user_id: str, changes: dict[str, Any]) -> Optional[InvoiceRecord]:
        """Apply a partial update; None if (id, user_id) does not match"""
        with self._lock:
            current = self._invoices.get(invoice_id)
            if current is None or current.user_id != user_id:
                return None

            updated = InvoiceRecord.model_validate({
                **current.model_dump(),
                **changes,
                "id": current.id,
                "user_id": current.user_id,
                "updated_at": datetime.now(UTC),
            })
            self._invoices[invoice_id] = updated
            return updated

    def find_invoice_by_signature(
        self, user_id: str, invoice_number: str, vendor_name: str, amount: int
    ) -> Optional[InvoiceRecord]:
        for inv in self.get_invoices_by_user_id(user_id):
            if (inv.invoice_number, inv.vendor_name, inv.amount) == (invoice_number, vendor_name, amount):
                return inv
        return None

    def find_invoice_by_file_id(self, user_id: str, file_id: str) -> Optional[InvoiceRecord]:
        for inv in self.get_invoices_by_user_id(user_id):
            if inv.file_id == file_id:
                return inv
        return None

    def find_invoice_file_by_content(self, user_id: str, content: bytes) -> Optional[InvoiceFile]:
        with self._lock:
            for f in self._files.values():
                if f.user_id == user_id and f.content == content:
                    return f
        return None

    def create_invoice_file(self, user_id: str, title: str, kind: str, content: bytes) -> InvoiceFile:
        with self._lock:
            # Same backstop as the SQLite unique index on (user_id, content)
            for f in self._files.values():
                if f.user_id == user_id and f.content == content:
                    return f

            invoice_file = InvoiceFile(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=title,
                kind=kind,
                content=content,
                created_at=datetime.now(UTC),
            )
            self._files[invoice_file.id] = invoice_file
            return invoice_file

    def get_invoice_file(self, file_id: str, user_id: str) -> Optional[InvoiceFile]:
        invoice_file = self._files.get(file_id)
        if invoice_file is None or invoice_file.user_id != user_id:
            return None
        return invoice_file

    def list_invoice_files(self, user_id: str) -> list[InvoiceFile]:
        with self._lock:
            owned = [f for f in reversed(self._files.values()) if f.user_id == user_id]
        return sorted(owned, key=lambda f: f.created_at, reverse=True)

    def save_sheet_version(self, sheet_id: str, user_id: str, title: str, content: str) -> SheetVersion:
        version = SheetVersion(
            sheet_id=sheet_id,
            user_id=user_id,
            title=title,
            content=content,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            self._sheets.setdefault(sheet_id, []).append(version)
        return version

    def get_latest_sheet_version(self, sheet_id: str, user_id: str) -> Optional[SheetVersion]:
        versions = self.list_sheet_versions(sheet_id, user_id)
        return versions[-1] if versions else None

    def list_sheet_versions(self, sheet_id: str, user_id: str) -> list[SheetVersion]:
        with self._lock:
            return [v for v in self._sheets.get(sheet_id, []) if v.user_id == user_id]
