"""
SQLite-based invoice storage for production use.

Provides persistent storage of invoices, uploaded invoice files and sheet
versions, scoped by user.
"""

import hashlib
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, UTC
from typing import Any, Iterator, Optional
from loguru import logger
from ..errors import StorageUnavailable
from ..invoice_types import (
    DEFAULT_CURRENCY,
    FileKind,
    InvoiceFile,
    InvoiceRecord,
    InvoiceStatus,
    SheetVersion,
    blank_to_none,
)
from ..sheet import line_items
from .invoice_store_base import InvoiceStoreBase

# Columns an update may touch; id, user_id and created_at are immutable
_UPDATABLE_COLUMNS = (
    "file_id",
    "invoice_number",
    "vendor_name",
    "customer_name",
    "invoice_date",
    "due_date",
    "amount",
    "currency",
    "line_items",
    "status",
    "raw_extracted_text",
    "confidence_score",
)

_INVOICE_COLUMNS = ("id", "user_id", *_UPDATABLE_COLUMNS, "created_at", "updated_at")


def _to_db(column: str, value: Any) -> Any:
    """Convert a domain value into its SQLite column representation"""
    if value is None:
        return None
    if column == "line_items":
        return line_items.encode(value)
    if isinstance(value, (InvoiceStatus, FileKind)):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class SQLiteInvoiceStore(InvoiceStoreBase):
    """
    SQLite-backed invoice store with persistent storage.

    Features:
    - Persistent storage across application restarts
    - Unique index on (user_id, content hash) as the duplicate-upload backstop
    - Every query filtered by user_id
    - Thread-safe operations (one connection per call, SQLite's built-in locking)
    """

    def __init__(self, db_path: str = "invoices.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: invoices.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create tables if they don't exist"""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS invoices (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    file_id TEXT,
                    invoice_number TEXT,
                    vendor_name TEXT,
                    customer_name TEXT,
                    invoice_date TEXT,
                    due_date TEXT,
                    amount INTEGER,
                    currency TEXT NOT NULL DEFAULT 'USD',
                    line_items TEXT,
                    status TEXT NOT NULL DEFAULT 'processing',
                    raw_extracted_text TEXT,
                    confidence_score INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (status IN ('processing', 'completed', 'error')),
                    CHECK (amount IS NULL OR amount >= 0)
                )
            """)

            # Create indexes for common queries
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_invoices_user_created
                ON invoices(user_id, created_at)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_invoices_signature
                ON invoices(user_id, invoice_number, vendor_name, amount)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS invoice_files (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    content BLOB NOT NULL,
                    content_sha256 TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    CHECK (kind IN ('image', 'pdf'))
                )
            """)

            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS unique_content_user
                ON invoice_files(user_id, content_sha256)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS sheet_versions (
                    sheet_id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (sheet_id, version)
                )
            """)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection with row factory; commit on success, always close"""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.OperationalError as e:
            raise StorageUnavailable(f"Cannot open database: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.OperationalError as e:
            logger.error(f"SQLite operation failed: {e}")
            raise StorageUnavailable(str(e)) from e
        finally:
            conn.close()

    # ---------- row hydration ----------

    @staticmethod
    def _row_to_invoice(row: sqlite3.Row) -> InvoiceRecord:
        return InvoiceRecord(
            id=row["id"],
            user_id=row["user_id"],
            file_id=row["file_id"],
            invoice_number=row["invoice_number"],
            vendor_name=row["vendor_name"],
            customer_name=row["customer_name"],
            invoice_date=row["invoice_date"],
            due_date=row["due_date"],
            amount=row["amount"],
            currency=row["currency"] or DEFAULT_CURRENCY,
            line_items=line_items.decode(row["line_items"]),
            status=row["status"],
            raw_extracted_text=row["raw_extracted_text"],
            confidence_score=row["confidence_score"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_file(row: sqlite3.Row) -> InvoiceFile:
        return InvoiceFile(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            kind=row["kind"],
            content=row["content"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_sheet_version(row: sqlite3.Row) -> SheetVersion:
        return SheetVersion(
            sheet_id=row["sheet_id"],
            user_id=row["user_id"],
            title=row["title"],
            content=row["content"],
            created_at=row["created_at"],
        )

    # ---------- invoices ----------

    def get_invoices_by_user_id(self, user_id: str) -> list[InvoiceRecord]:
        """
        List a user's invoices (ordered by creation time, newest first).

        Args:
            user_id: Owner of the invoices

        Returns:
            List of InvoiceRecords
        """
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM invoices
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
            """, (user_id,)).fetchall()

        return [self._row_to_invoice(row) for row in rows]

    def create_invoice(self, user_id: str, fields: dict[str, Any]) -> InvoiceRecord:
        """
        Create an invoice and return the stored record.

        Args:
            user_id: Owner of the invoice
            fields: InvoiceRecord attribute values

        Returns:
            InvoiceRecord with generated id and timestamps
        """
        now = datetime.now(UTC)
        record = InvoiceRecord.model_validate({
            **fields,
            "currency": fields.get("currency") or DEFAULT_CURRENCY,
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "created_at": now,
            "updated_at": now,
        })

        values = [_to_db(column, getattr(record, column)) for column in _INVOICE_COLUMNS]
        placeholders = ", ".join("?" for _ in _INVOICE_COLUMNS)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO invoices ({', '.join(_INVOICE_COLUMNS)}) VALUES ({placeholders})",
                values,
            )

        return record

    def update_invoice(self, invoice_id: str, user_id: str, changes: dict[str, Any]) -> Optional[InvoiceRecord]:
        """
        Apply a partial update scoped to (invoice_id, user_id).

        Args:
            invoice_id: Invoice to update
            user_id: Owner of the invoice
            changes: Attribute -> new value (None clears the column)

        Returns:
            Updated InvoiceRecord, or None if no invoice matched
        """
        unknown = set(changes) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        changes = {column: blank_to_none(value) for column, value in changes.items()}
        if "currency" in changes and changes["currency"] is None:
            changes["currency"] = DEFAULT_CURRENCY

        assignments = [f"{column} = ?" for column in changes] + ["updated_at = ?"]
        params = [_to_db(column, value) for column, value in changes.items()]
        params += [datetime.now(UTC).isoformat(), invoice_id, user_id]

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE invoices SET {', '.join(assignments)} WHERE id = ? AND user_id = ?",
                params,
            )
            if cursor.rowcount == 0:
                return None

            row = conn.execute(
                "SELECT * FROM invoices WHERE id = ? AND user_id = ?",
                (invoice_id, user_id),
            ).fetchone()

        return self._row_to_invoice(row)

    def find_invoice_by_signature(
        self, user_id: str, invoice_number: str, vendor_name: str, amount: int
    ) -> Optional[InvoiceRecord]:
        """Find a user's invoice with the same number, vendor and amount (case-sensitive)"""
        with self._connect() as conn:
            row = conn.execute("""
                SELECT * FROM invoices
                WHERE user_id = ? AND invoice_number = ? AND vendor_name = ? AND amount = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
            """, (user_id, invoice_number, vendor_name, amount)).fetchone()

        return self._row_to_invoice(row) if row else None

    def find_invoice_by_file_id(self, user_id: str, file_id: str) -> Optional[InvoiceRecord]:
        with self._connect() as conn:
            row = conn.execute("""
                SELECT * FROM invoices
                WHERE user_id = ? AND file_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
            """, (user_id, file_id)).fetchone()

        return self._row_to_invoice(row) if row else None

    # ---------- invoice files ----------

    def find_invoice_file_by_content(self, user_id: str, content: bytes) -> Optional[InvoiceFile]:
        """Find a user's file with byte-identical content"""
        digest = hashlib.sha256(content).hexdigest()
        with self._connect() as conn:
            row = conn.execute("""
                SELECT * FROM invoice_files
                WHERE user_id = ? AND content_sha256 = ? AND content = ?
            """, (user_id, digest, content)).fetchone()

        return self._row_to_file(row) if row else None

    def create_invoice_file(self, user_id: str, title: str, kind: str, content: bytes) -> InvoiceFile:
        """
        Store an uploaded file.

        A concurrent upload of identical content that got here first wins:
        the unique index rejects the second insert and the stored file is
        returned instead.
        """
        invoice_file = InvoiceFile(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            kind=kind,
            content=content,
            created_at=datetime.now(UTC),
        )
        try:
            with self._connect() as conn:
                conn.execute("""
                    INSERT INTO invoice_files (id, user_id, title, kind, content, content_sha256, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    invoice_file.id,
                    user_id,
                    title,
                    invoice_file.kind.value,
                    content,
                    hashlib.sha256(content).hexdigest(),
                    invoice_file.created_at.isoformat(),
                ))
        except sqlite3.IntegrityError:
            existing = self.find_invoice_file_by_content(user_id, content)
            if existing is None:
                raise
            logger.info("Duplicate file insert resolved to existing file", file_id=existing.id)
            return existing

        return invoice_file

    def get_invoice_file(self, file_id: str, user_id: str) -> Optional[InvoiceFile]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM invoice_files WHERE id = ? AND user_id = ?",
                (file_id, user_id),
            ).fetchone()

        return self._row_to_file(row) if row else None

    def list_invoice_files(self, user_id: str) -> list[InvoiceFile]:
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM invoice_files
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
            """, (user_id,)).fetchall()

        return [self._row_to_file(row) for row in rows]

    # ---------- sheet versions ----------

    def save_sheet_version(self, sheet_id: str, user_id: str, title: str, content: str) -> SheetVersion:
        """Append a version; the version number is assigned inside the INSERT"""
        created_at = datetime.now(UTC)
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO sheet_versions (sheet_id, version, user_id, title, content, created_at)
                SELECT ?, COALESCE(MAX(version), 0) + 1, ?, ?, ?, ?
                FROM sheet_versions WHERE sheet_id = ?
            """, (sheet_id, user_id, title, content, created_at.isoformat(), sheet_id))

        return SheetVersion(
            sheet_id=sheet_id,
            user_id=user_id,
            title=title,
            content=content,
            created_at=created_at,
        )

    def get_latest_sheet_version(self, sheet_id: str, user_id: str) -> Optional[SheetVersion]:
        with self._connect() as conn:
            row = conn.execute("""
                SELECT * FROM sheet_versions
                WHERE sheet_id = ? AND user_id = ?
                ORDER BY version DESC
                LIMIT 1
            """, (sheet_id, user_id)).fetchone()

        return self._row_to_sheet_version(row) if row else None

    def list_sheet_versions(self, sheet_id: str, user_id: str) -> list[SheetVersion]:
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM sheet_versions
                WHERE sheet_id = ? AND user_id = ?
                ORDER BY version ASC
            """, (sheet_id, user_id)).fetchall()

        return [self._row_to_sheet_version(row) for row in rows]
