from functools import lru_cache
from fastapi import Header, HTTPException
from ..core.config import settings
from ..services.extraction import ExtractionConfig
from ..services.storage import InvoiceStoreBase, SQLiteInvoiceStore


@lru_cache
def get_invoice_store() -> InvoiceStoreBase:
    """Process-wide store (override in tests with app.dependency_overrides)"""
    return SQLiteInvoiceStore(settings.database_path)


def get_extraction_config() -> ExtractionConfig:
    """Built per request so settings changes take effect without a restart"""
    return ExtractionConfig.from_settings(settings)


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    The authenticated user's id.

    Authentication happens in front of this service (gateway / session layer),
    which forwards the user id in the X-User-Id header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()
