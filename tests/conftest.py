"""
Pytest configuration and shared fixtures.

This file registers custom pytest markers and command-line options, and
provides in-memory / SQLite stores and an API client wired to them.
"""

import uuid
from datetime import datetime, timedelta, UTC

import pytest
from fastapi.testclient import TestClient
from invoice_sync.api.deps import get_extraction_config, get_invoice_store
from invoice_sync.api.main import app
from invoice_sync.services.extraction import ExtractionConfig
from invoice_sync.services.invoice_types import InvoiceRecord
from invoice_sync.services.storage import InMemoryInvoiceStore, SQLiteInvoiceStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real extraction backends"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a real extraction backend"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def store():
    """Fresh in-memory store for each test"""
    return InMemoryInvoiceStore()


@pytest.fixture
def sqlite_store(tmp_path):
    """Fresh SQLite store in a temporary directory"""
    return SQLiteInvoiceStore(str(tmp_path / "invoices.db"))


@pytest.fixture
def extraction_config():
    return ExtractionConfig(provider="mock")


@pytest.fixture
def client(store, extraction_config):
    """API client using the test store and mock extraction"""
    app.dependency_overrides[get_invoice_store] = lambda: store
    app.dependency_overrides[get_extraction_config] = lambda: extraction_config
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-Id": USER_ID}


@pytest.fixture
def make_record():
    """Build an InvoiceRecord without a store (for pure codec / mapper tests)"""
    def _make(**fields) -> InvoiceRecord:
        now = datetime(2025, 3, 1, 9, 30, tzinfo=UTC)
        data = {
            "id": str(uuid.uuid4()),
            "user_id": USER_ID,
            "created_at": now,
            "updated_at": now,
        }
        data.update(fields)
        return InvoiceRecord.model_validate(data)
    return _make


@pytest.fixture
def sample_fields():
    """A fully populated invoice, as create_invoice expects it"""
    return {
        "invoice_number": "INV-001",
        "vendor_name": "ACME Corp",
        "customer_name": "Fabrikam Inc",
        "invoice_date": datetime(2025, 1, 15).date(),
        "due_date": (datetime(2025, 1, 15) + timedelta(days=30)).date(),
        "amount": 45000,
        "currency": "USD",
        "line_items": [
            {"description": "Widgets", "quantity": 10, "unitPrice": 4000, "total": 40000},
            {"description": "Shipping", "quantity": 1, "unitPrice": 5000, "total": 5000},
        ],
        "status": "completed",
    }
