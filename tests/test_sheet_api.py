"""
API tests for the sheet endpoints: create, edit, version history.
"""

import io

import pytest
from invoice_sync.api.deps import get_invoice_store
from invoice_sync.api.main import app
from invoice_sync.services.errors import StorageUnavailable
from invoice_sync.services.sheet.codec import parse, render_rows
from invoice_sync.services.sheet.field_mapper import CANONICAL_HEADERS

from conftest import OTHER_USER_ID, USER_ID


@pytest.fixture
def uploaded(client, user_headers):
    files = {"file": ("sample.pdf", io.BytesIO(b"%PDF-1.4 minimal"), "application/pdf")}
    return client.post("/invoices/upload", files=files, headers=user_headers).json()


@pytest.fixture
def sheet(client, user_headers, uploaded):
    return client.post("/sheets", json={"title": "Q3 invoices"}, headers=user_headers).json()


def set_amount(content: str, value: str) -> str:
    table = parse(content)
    amount = table.headers.index("Amount")
    for row in table.rows:
        row[amount] = value
    return render_rows([table.headers, *table.rows])


def test_create_sheet_without_invoices(client, user_headers):
    r = client.post("/sheets", headers=user_headers)

    assert r.status_code == 200
    body = r.json()
    assert body["title"] == "Invoices"
    assert body["content"] == ",".join(CANONICAL_HEADERS)


def test_create_sheet_lists_invoices(sheet, uploaded):
    table = parse(sheet["content"])

    assert sheet["title"] == "Q3 invoices"
    assert [row[0] for row in table.rows] == [uploaded["invoice_id"]]
    assert table.rows[0][6] == "385.00"


def test_get_sheet(client, user_headers, sheet):
    r = client.get(f"/sheets/{sheet['sheet_id']}", headers=user_headers)

    assert r.status_code == 200
    assert r.json()["content"] == sheet["content"]


def test_get_unknown_sheet_is_404(client, user_headers):
    assert client.get("/sheets/missing", headers=user_headers).status_code == 404


def test_other_user_cannot_see_sheet(client, sheet):
    r = client.get(f"/sheets/{sheet['sheet_id']}", headers={"X-User-Id": OTHER_USER_ID})
    assert r.status_code == 404


def test_update_sheet_applies_edits(client, user_headers, sheet, uploaded, store):
    content = set_amount(sheet["content"], "12.5")

    r = client.put(f"/sheets/{sheet['sheet_id']}", json={"content": content}, headers=user_headers)

    assert r.status_code == 200
    body = r.json()
    assert body["applied"] is True
    assert body["updated_ids"] == [uploaded["invoice_id"]]
    assert parse(body["content"]).rows[0][6] == "12.50"
    assert store.get_invoices_by_user_id(USER_ID)[0].amount == 1250

    latest = client.get(f"/sheets/{sheet['sheet_id']}", headers=user_headers).json()
    assert latest["content"] == body["content"]


def test_update_sheet_reports_field_errors(client, user_headers, sheet):
    content = set_amount(sheet["content"], "a lot")

    body = client.put(f"/sheets/{sheet['sheet_id']}", json={"content": content}, headers=user_headers).json()

    assert body["updated_ids"] == []
    assert body["field_errors"][0]["column"] == "Amount"
    assert body["field_errors"][0]["value"] == "a lot"
    assert parse(body["content"]).rows[0][6] == "385.00"


def test_versions_recorded(client, user_headers, sheet):
    sheet_id = sheet["sheet_id"]
    client.put(f"/sheets/{sheet_id}", json={"content": set_amount(sheet["content"], "1.00")}, headers=user_headers)

    body = client.get(f"/sheets/{sheet_id}/versions", headers=user_headers).json()

    assert [v["version"] for v in body["versions"]] == [1, 2]
    assert body["versions"][0]["content"] == sheet["content"]


def test_unapplied_sheet_saves_no_version(client, user_headers, sheet):
    sheet_id = sheet["sheet_id"]

    body = client.put(f"/sheets/{sheet_id}", json={"content": ""}, headers=user_headers).json()

    assert body["applied"] is False
    assert body["content"] == ""
    versions = client.get(f"/sheets/{sheet_id}/versions", headers=user_headers).json()["versions"]
    assert len(versions) == 1


def test_update_unknown_sheet_is_404(client, user_headers):
    r = client.put("/sheets/missing", json={"content": "ID\n"}, headers=user_headers)
    assert r.status_code == 404


def test_storage_failure_returns_previous_content(client, user_headers, sheet, store):
    class BrokenStore(type(store)):
        def update_invoice(self, invoice_id, user_id, changes):
            raise StorageUnavailable("disk I/O error")

    broken = BrokenStore()
    broken.__dict__.update(store.__dict__)
    app.dependency_overrides[get_invoice_store] = lambda: broken

    content = set_amount(sheet["content"], "1.00")
    r = client.put(f"/sheets/{sheet['sheet_id']}", json={"content": content}, headers=user_headers)

    assert r.status_code == 503
    assert r.json()["content"] == sheet["content"]
