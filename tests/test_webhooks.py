"""Tests for audit webhook subscriptions."""
from catalog_import.api import webhooks as webhooks_api


def create(client, url="https://hooks.test/committed", event_type="import.committed"):
    return client.post("/api/webhooks", json={"url": url, "event_type": event_type})


def test_create_and_list_webhooks(client):
    response = create(client)

    assert response.status_code == 201
    data = response.json()
    assert data["event_type"] == "import.committed"
    assert data["enabled"] is True

    listed = client.get("/api/webhooks").json()
    assert [item["id"] for item in listed] == [data["id"]]


def test_create_rejects_unknown_event(client):
    response = create(client, event_type="product.created")

    assert response.status_code == 422


def test_create_rejects_non_http_url(client):
    response = create(client, url="ftp://hooks.test/x")

    assert response.status_code == 422


def test_update_webhook(client):
    webhook_id = create(client).json()["id"]

    response = client.put(f"/api/webhooks/{webhook_id}", json={"enabled": False})

    assert response.status_code == 200
    assert response.json()["enabled"] is False
    assert response.json()["url"] == "https://hooks.test/committed"


def test_delete_webhook(client):
    webhook_id = create(client).json()["id"]

    assert client.delete(f"/api/webhooks/{webhook_id}").status_code == 204

    missing = client.get(f"/api/webhooks/{webhook_id}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "WEBHOOK_NOT_FOUND"


def test_webhook_test_endpoint(client, monkeypatch):
    calls = []

    async def fake_test(url, payload):
        calls.append((url, payload))
        return {"success": True, "status_code": 200, "response_time": 0.01}

    monkeypatch.setattr(webhooks_api, "test_webhook", fake_test)
    webhook_id = create(client).json()["id"]

    response = client.post(f"/api/webhooks/{webhook_id}/test")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert calls[0][0] == "https://hooks.test/committed"
    assert calls[0][1]["event"] == "import.committed"
