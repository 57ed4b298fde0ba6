"""Tests for the import API endpoints."""
import asyncio
import json
from io import BytesIO

from openpyxl import Workbook

from catalog_import.api import imports as imports_api
from catalog_import.config import get_settings
from catalog_import.services import audit
from catalog_import.services.catalog import CatalogRepository
from catalog_import.services.commit import CommitEngine
from catalog_import.services.parsers import DelimitedTextParser

CATALOG = (
    "Category,Product,SKU,Price\n"
    "Pipes,Pipe PPR DN20,P-20,120\n"
    "Pipes,Pipe PPR DN25,P-25,150\n"
    "Fittings,Coupling PPR 20,C-20,45\n"
)


def upload(client, content, source_format="delimited", filename="catalog.csv", **kwargs):
    return client.post(
        f"/api/imports/parse/{source_format}",
        files={"file": (filename, content, "application/octet-stream")},
        **kwargs,
    )


def test_parse_stages_a_job(client):
    response = upload(client, CATALOG.encode("utf-8"))

    assert response.status_code == 200
    data = response.json()
    assert data["total_rows"] == 3
    assert data["ready_rows_count"] == 3
    assert data["needs_review_count"] == 0
    assert data["source_type"] == "delimited"
    assert data["columns"] == ["Category", "Product", "SKU", "Price"]
    assert data["rows"][0]["variant"]["sku"] == "P-20"

    job = client.get(f"/api/imports/{data['job_id']}").json()
    assert job["status"] == "STAGED"
    assert job["checksum"] == data["checksum"]
    assert job["filename"] == "catalog.csv"
    assert [row["status"] for row in job["rows"]] == ["READY", "READY", "READY"]


def test_parse_with_explicit_mapping(client):
    mapping = {"category": "Group", "product": "Title", "price": "Cost", "sku": "Code"}
    content = "Group,Title,Cost,Code\nValves,Ball valve,80,V-1\n".encode("utf-8")

    response = upload(client, content, data={"mapping": json.dumps(mapping)})

    assert response.status_code == 200
    assert response.json()["rows"][0]["category"] == "Valves"


def test_parse_rejects_invalid_mapping(client):
    response = upload(client, CATALOG.encode("utf-8"), data={"mapping": "{not json"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_MAPPING"


def test_parse_spreadsheet(client):
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Sheet1"
    sheet.append(["Наименование", "Категории", "Артикул", "Цена продажи"])
    sheet.append(["Труба PPR DN20", "Трубы", "ART-100", 90])
    buffer = BytesIO()
    workbook.save(buffer)

    response = upload(client, buffer.getvalue(), "spreadsheet", "export.xlsx")

    assert response.status_code == 200
    data = response.json()
    assert data["rows"][0]["variant"]["sku"] == "ART-100"
    assert data["mapping"] == {"price_locations": [], "stock_locations": []}


def test_unsupported_format(client):
    response = upload(client, b"<xml/>", "xml", "catalog.xml")

    assert response.status_code == 415
    assert response.json()["error"]["code"] == "UNSUPPORTED_FORMAT"


def test_unreadable_file(client):
    response = upload(client, b"not a workbook", "spreadsheet", "broken.xlsx")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FILE"


def test_file_too_large(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "max_upload_bytes", 10)

    response = upload(client, CATALOG.encode("utf-8"))

    assert response.status_code == 413
    assert response.json()["error"]["code"] == "FILE_TOO_LARGE"


def test_get_unknown_job(client):
    response = client.get("/api/imports/not-a-uuid")

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "IMPORT_NOT_FOUND"
    assert "timestamp" in error


def test_commit_and_undo_flow(client):
    parsed = upload(client, CATALOG.encode("utf-8")).json()
    job_id = parsed["job_id"]

    response = client.post(
        f"/api/imports/{job_id}/commit",
        json={"checksum": parsed["checksum"], "price_mode": "retail"},
    )

    assert response.status_code == 200
    report = response.json()
    assert report["created"] == 3
    assert len(report["created_entities"]["products"]) == 2

    again = client.post(f"/api/imports/{job_id}/commit", json={"checksum": parsed["checksum"]})
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "IMPORT_ALREADY_COMMITTED"

    undone = client.post("/api/imports/undo")
    assert undone.status_code == 200
    assert undone.json() == {
        "job_id": job_id,
        "status": "UNDONE",
        "reverted": {"variants": 3, "products": 2, "categories": 2},
    }

    job = client.get(f"/api/imports/{job_id}").json()
    assert job["status"] == "UNDONE"

    repeat = client.post("/api/imports/undo", json={"job_id": job_id})
    assert repeat.status_code == 409
    assert repeat.json()["error"]["code"] == "IMPORT_NOT_COMMITTED"


def test_commit_checksum_mismatch(client):
    parsed = upload(client, CATALOG.encode("utf-8")).json()

    response = client.post(f"/api/imports/{parsed['job_id']}/commit", json={"checksum": "0" * 64})

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "IMPORT_CHECKSUM_MISMATCH"


def test_commit_requires_review_acknowledgement(client):
    parsed = upload(client, b"Category,Product,SKU,Price\nPipes,Pipe PPR DN20,,120\n").json()
    url = f"/api/imports/{parsed['job_id']}/commit"

    blocked = client.post(url, json={"checksum": parsed["checksum"]})
    assert blocked.status_code == 409
    assert blocked.json()["error"]["details"]["rows"] == ["csv-2"]

    allowed = client.post(url, json={"checksum": parsed["checksum"], "allow_needs_review": True})
    assert allowed.status_code == 200
    assert allowed.json()["created"] == 1


def test_product_suggestions(client):
    parsed = upload(client, CATALOG.encode("utf-8")).json()
    client.post(f"/api/imports/{parsed['job_id']}/commit", json={"checksum": parsed["checksum"]})

    response = client.post(
        "/api/imports/product-suggestions",
        json={"category": "Pipes", "base_name": "Pipe PPR", "label": "DN20"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["items"][0]["name"] == "Pipe PPR"
    assert data["items"][0]["score"] == 1.0
    assert data["items"][0]["variant_match"] is not None
    assert data["ambiguous"] is False

    empty = client.post(
        "/api/imports/product-suggestions", json={"category": "Unknown", "base_name": "Pipe"}
    )
    assert empty.json() == {"items": [], "ambiguous": False, "potential_duplicate": False}


def test_admin_token_gate(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "admin_token", "secret")

    denied = client.get("/api/imports/00000000-0000-0000-0000-000000000000")
    assert denied.status_code == 401
    assert denied.json()["error"]["code"] == "UNAUTHORIZED"

    wrong = client.get(
        "/api/imports/00000000-0000-0000-0000-000000000000",
        headers={"X-Admin-Token": "nope"},
    )
    assert wrong.status_code == 401

    allowed = client.get(
        "/api/imports/00000000-0000-0000-0000-000000000000",
        headers={"X-Admin-Token": "secret"},
    )
    assert allowed.status_code == 404


def test_audit_events_are_delivered(client, monkeypatch):
    sent = []

    async def fake_send(http_client, url, payload):
        sent.append((url, payload))

    monkeypatch.setattr(audit, "_send_webhook", fake_send)
    client.post(
        "/api/webhooks",
        json={"url": "https://hooks.test/parsed", "event_type": "import.parsed"},
    )

    parsed = upload(client, CATALOG.encode("utf-8")).json()

    assert len(sent) == 1
    url, payload = sent[0]
    assert url == "https://hooks.test/parsed"
    assert payload["event"] == "import.parsed"
    assert payload["data"]["id"] == parsed["job_id"]
    assert payload["data"]["totals"]["parsed"]["rows"] == 3


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_admin_token_is_compared_as_bytes(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "admin_token", "secret")

    response = client.get(
        "/api/imports/00000000-0000-0000-0000-000000000000",
        headers={"X-Admin-Token": "секрет".encode("utf-8")},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_admin_gate_fails_closed_outside_development(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "app_env", "production")

    response = client.get("/api/imports/00000000-0000-0000-0000-000000000000")

    assert response.status_code == 401


def test_blocking_work_runs_outside_the_event_loop(client, monkeypatch):
    calls = []

    def on_event_loop():
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def recording(name, func):
        def wrapper(*args, **kwargs):
            calls.append((name, on_event_loop()))
            return func(*args, **kwargs)

        return wrapper

    monkeypatch.setattr(DelimitedTextParser, "parse", recording("parse", DelimitedTextParser.parse))
    monkeypatch.setattr(CommitEngine, "commit", recording("commit", CommitEngine.commit))
    monkeypatch.setattr(imports_api, "undo_import", recording("undo", imports_api.undo_import))

    parsed = upload(client, CATALOG.encode("utf-8")).json()
    committed = client.post(f"/api/imports/{parsed['job_id']}/commit", json={"checksum": parsed["checksum"]})
    undone = client.post("/api/imports/undo")

    assert committed.status_code == 200
    assert undone.status_code == 200
    assert calls == [("parse", False), ("commit", False), ("undo", False)]


def test_failed_commit_does_not_expose_exception_text(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("INSERT INTO variants secret-parameter")

    monkeypatch.setattr(CatalogRepository, "create_variant", explode)
    parsed = upload(client, CATALOG.encode("utf-8")).json()

    failed = client.post(f"/api/imports/{parsed['job_id']}/commit", json={"checksum": parsed["checksum"]})
    job = client.get(f"/api/imports/{parsed['job_id']}")

    assert failed.status_code == 500
    assert "secret-parameter" not in failed.text
    assert job.json()["status"] == "FAILED"
    assert "secret-parameter" not in job.text
