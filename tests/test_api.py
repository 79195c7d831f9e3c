"""
HTTP boundary tests
"""
import pytest
from fastapi.testclient import TestClient

import app.main as main
from conftest import PRODUCT_URL


@pytest.fixture
def client(monkeypatch, manager, reconciliation):
    monkeypatch.setattr(main, "link_manager", manager)
    monkeypatch.setattr(main, "reconciliation_job", reconciliation)
    return TestClient(main.app)


def create(client, **body):
    response = client.post("/api/links/create", json={"url": PRODUCT_URL, **body})
    assert response.status_code == 200
    return response.json()["link"]


class TestLinkRoutes:

    def test_health(self, client):
        assert client.get("/api/health").json()["status"] == "healthy"

    def test_taxonomy(self, client):
        categories = client.get("/api/taxonomy").json()["categories"]
        electronics = next(c for c in categories if c["key"] == "electronics")
        assert {"key": "audio", "label": "Audio"} in electronics["subcategories"]

    def test_create_and_list(self, client):
        link = create(client, note="desk setup")

        assert link["affiliate_url"] == PRODUCT_URL + "?tag=test-21"
        assert link["category"] == "electronics"
        links = client.get("/api/links/all").json()["links"]
        assert [l["id"] for l in links] == [link["id"]]

    def test_create_invalid_url(self, client):
        response = client.post("/api/links/create", json={"url": "not-a-url"})
        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "invalid_input_url"

    def test_create_multiple(self, client):
        response = client.post("/api/links/create-multiple", json={"urls": [PRODUCT_URL, "not-a-url"]})

        assert response.status_code == 200
        created = response.json()["created"]
        assert [item["ok"] for item in created] == [True, False]

    def test_create_multiple_too_large(self, client):
        urls = [f"https://www.amazon.in/dp/B0{i:08d}" for i in range(11)]
        response = client.post("/api/links/create-multiple", json={"urls": urls})
        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "batch_too_large"

    def test_redirect(self, client, store):
        link = create(client)

        response = client.get(f"/api/links/go/{link['id']}", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == PRODUCT_URL + "?tag=test-21"

    def test_redirect_unknown(self, client):
        response = client.get("/api/links/go/unknown", follow_redirects=False)
        assert response.status_code == 404

    def test_patch_only_sent_fields(self, client):
        link = create(client, note="keep")

        response = client.patch(f"/api/links/{link['id']}", json={"title": "Edited", "image_url": None})

        assert response.status_code == 200
        updated = response.json()["link"]
        assert updated["title"] == "Edited"
        assert updated["image_url"] is None
        assert updated["note"] == "keep"
        assert set(updated["curated_fields"]) == {"title", "image_url"}

    def test_patch_null_is_active_keeps_link_live(self, client):
        link = create(client)

        response = client.patch(f"/api/links/{link['id']}", json={"is_active": None})

        assert response.status_code == 200
        updated = response.json()["link"]
        assert updated["is_active"] is True
        assert updated["status_reason"] is None
        assert "is_active" not in updated["curated_fields"]

    def test_patch_invalid_category(self, client):
        link = create(client)
        response = client.patch(f"/api/links/{link['id']}", json={"category": "gadgets"})
        assert response.status_code == 400

    def test_delete(self, client):
        link = create(client)
        assert client.delete(f"/api/links/{link['id']}").status_code == 200
        assert client.delete(f"/api/links/{link['id']}").status_code == 404

    def test_daily_maintenance(self, client):
        create(client)
        body = client.post("/api/links/maintenance/daily").json()

        assert body["success"]
        assert body["processed"] == 1
        assert body["failed"] == 0
