"""Tests for modules/resources/router.py: upload, listing, download and removal."""
import os

import pytest

from rms.schemas.resource import human_size, split_terms


def _upload(client, title="Annual report", access="public", status="published", content=b"%PDF-1.4 test body"):
    return client.post(
        "/api/resources",
        data={
            "title": title,
            "description": "Yearly summary",
            "type": "reports",
            "status": status,
            "accessLevel": access,
            "keywords": "ncd, annual ,",
        },
        files={"file": ("report.pdf", content, "application/pdf")},
    )


@pytest.fixture()
def resource_id(admin_client):
    resp = _upload(admin_client)
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


class TestHelpers:
    def test_human_size(self):
        assert human_size(0) == "0 B"
        assert human_size(512) == "512 B"
        assert human_size(1536) == "1.5 KB"
        assert human_size(5 * 1024 * 1024) == "5.0 MB"

    def test_split_terms(self):
        assert split_terms(" a, b ,,c ") == ["a", "b", "c"]
        assert split_terms("") == []


class TestUpload:
    def test_upload_stores_file_and_metadata(self, admin_client, app):
        resp = _upload(admin_client)
        assert resp.status_code == 201
        doc = resp.json()["data"]
        assert doc["title"] == "Annual report"
        assert doc["keywords"] == ["ncd", "annual"]
        assert doc["fileFormat"] == "pdf"
        assert doc["fileSize"] == len(b"%PDF-1.4 test body")
        assert doc["author"] == "Ama Mensah"
        assert len(os.listdir(app.state.upload_dir)) == 1

    def test_upload_requires_admin(self, user_client):
        assert _upload(user_client).status_code == 403

    def test_unknown_type(self, admin_client):
        resp = admin_client.post(
            "/api/resources",
            data={"title": "X", "type": "podcasts"},
            files={"file": ("x.txt", b"x", "text/plain")},
        )
        assert resp.status_code == 400


class TestReadAccess:
    def test_download_counts_and_returns_bytes(self, user_client, resource_id):
        resp = user_client.get(f"/api/resources/{resource_id}/download")
        assert resp.status_code == 200
        assert resp.content == b"%PDF-1.4 test body"

        doc = user_client.get(f"/api/resources/{resource_id}").json()
        assert doc["downloadCount"] == 1
        assert doc["viewCount"] == 1

    def test_restricted_resources_are_hidden_from_respondents(self, admin_client, user_client):
        restricted = _upload(admin_client, title="Board minutes", access="restricted").json()["id"]
        draft = _upload(admin_client, title="Work in progress", status="draft").json()["id"]
        assert user_client.get(f"/api/resources/{restricted}").status_code == 404
        assert user_client.get(f"/api/resources/{draft}").status_code == 404
        assert admin_client.get(f"/api/resources/{restricted}").status_code == 200
        assert user_client.get("/api/resources").json()["total"] == 0
        assert admin_client.get("/api/resources").json()["total"] == 2

    def test_missing_file_is_reported(self, admin_client, app, resource_id):
        for name in os.listdir(app.state.upload_dir):
            os.remove(os.path.join(app.state.upload_dir, name))
        resp = admin_client.get(f"/api/resources/{resource_id}/download")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Resource file not found"

    def test_search(self, admin_client, resource_id):
        assert admin_client.get("/api/resources", params={"q": "annual"}).json()["total"] == 1
        assert admin_client.get("/api/resources", params={"q": "budget"}).json()["total"] == 0


class TestAdminChanges:
    def test_update(self, admin_client, resource_id):
        resp = admin_client.put(
            f"/api/resources/{resource_id}",
            json={"title": "Annual report 2024", "accessLevel": "internal", "tags": [" ncd ", ""]},
        )
        assert resp.status_code == 200
        doc = resp.json()["data"]
        assert doc["title"] == "Annual report 2024"
        assert doc["accessLevel"] == "internal"
        assert doc["tags"] == ["ncd"]

    def test_update_rejects_unknown_status(self, admin_client, resource_id):
        resp = admin_client.put(f"/api/resources/{resource_id}", json={"status": "lost"})
        assert resp.status_code == 400
        assert "status" in resp.json()["errors"]

    def test_delete_removes_file(self, admin_client, app, resource_id):
        resp = admin_client.delete(f"/api/resources/{resource_id}")
        assert resp.status_code == 200
        assert os.listdir(app.state.upload_dir) == []
        assert admin_client.get(f"/api/resources/{resource_id}").status_code == 404

    def test_stats(self, admin_client, resource_id):
        stats = admin_client.get("/api/resources/stats").json()
        assert stats["totalResources"] == 1
        assert stats["byType"]["reports"] == 1
        assert stats["storageUsed"] == len(b"%PDF-1.4 test body")
