"""
Error taxonomy for invoice ingestion and sheet synchronization.

Soft errors (UnknownColumn, InvalidFieldValue, InvalidLineItem, RecordNotFound)
are collected into results and never abort a batch. Hard errors
(ExtractionFailure, UnsupportedUpload, StorageUnavailable, MalformedTable when
raised by the codec directly) propagate to the caller.
"""


class InvoiceSyncError(Exception):
    """Base class for all invoice-sync errors"""


class MalformedTable(InvoiceSyncError):
    """Tabular text has no header row"""


class UnknownColumn(InvoiceSyncError):
    """A header does not name any known column"""

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Unknown column '{column}'")


class InvalidFieldValue(InvoiceSyncError):
    """A cell could not be parsed into its field's type"""

    def __init__(self, column: str, value: str, reason: str):
        self.column = column
        self.value = value
        self.reason = reason
        super().__init__(f"{column}: {reason} (got {value!r})")


class InvalidLineItem(InvoiceSyncError):
    """A single line item does not have the expected shape"""

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Line item {index}: {reason}")


class RecordNotFound(InvoiceSyncError):
    """No invoice with this id belongs to this user"""

    def __init__(self, record_id: str, user_id: str):
        self.record_id = record_id
        self.user_id = user_id
        super().__init__(f"Invoice {record_id} not found for user")


class ExtractionFailure(InvoiceSyncError):
    """The extraction backend failed or returned unusable output"""


class ExtractionShapeError(ExtractionFailure):
    """Extraction output did not match the invoice field shapes"""

    def __init__(self, errors: list):
        self.errors = errors
        super().__init__(f"Extraction output failed validation: {errors}")


class NotAnInvoice(ExtractionFailure):
    """The document was read but is not an invoice"""


class UnsupportedUpload(InvoiceSyncError):
    """Uploaded file is empty, too large, or of an unsupported type"""


class StorageUnavailable(InvoiceSyncError):
    """The persistence backend could not complete an operation"""
