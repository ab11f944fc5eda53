from .invoice_store_base import InvoiceStoreBase
from .invoices_memory import InMemoryInvoiceStore
from .invoices_sqlite import SQLiteInvoiceStore

__all__ = ["InvoiceStoreBase", "InMemoryInvoiceStore", "SQLiteInvoiceStore"]
