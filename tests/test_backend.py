"""
Backend API tests for the Grievance Desk.

Uses httpx AsyncClient + ASGITransport against an in-memory store and a
temporary uploads directory (see conftest.py).
"""

from datetime import datetime
from pathlib import Path

import httpx
import pytest

from grievance_desk.app import create_app
from grievance_desk.config import normalize_prefix
from grievance_desk.store import InMemoryStore

pytestmark = pytest.mark.asyncio

TEXT_FILE = ("notes.txt", b"Room 204 AC logbook\n", "text/plain")
PNG_FILE = ("photo.png", b"\x89PNG\r\n\x1a\nnot-really-a-png", "image/png")


def ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def upload(client, grievance_id, *files, description=""):
    return await client.post(
        "/api/upload",
        files=[("files", f) for f in files],
        data={"grievanceId": grievance_id, "description": description},
    )


# ═══════════════════════════════════════════════════════════════════════════════
# HEALTH CHECK
# ═══════════════════════════════════════════════════════════════════════════════

class TestHealthCheck:
    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    async def test_health_endpoint(self, client, path):
        resp = await client.get(path)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "OK"
        assert data["message"]
        assert "timestamp" in data
        assert data["uptime"] >= 0

    async def test_security_headers(self, client):
        resp = await client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    async def test_unknown_route(self, client):
        resp = await client.get("/api/v1/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Route not found", "code": "ROUTE_NOT_FOUND"}


# ═══════════════════════════════════════════════════════════════════════════════
# GRIEVANCE CRUD
# ═══════════════════════════════════════════════════════════════════════════════

class TestGrievanceCRUD:
    async def test_submit_grievance(self, client, sample_grievance):
        resp = await client.post("/api/grievances", json=sample_grievance)
        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Grievance submitted successfully!"
        data = body["data"]
        assert data["id"]
        assert data["reference_id"].startswith("GRV-")
        assert data["status"] == "Submitted"
        assert data["title"] == sample_grievance["title"]
        assert data["created_at"] == data["updated_at"]

    async def test_submit_via_feedback_alias(self, client, sample_grievance):
        resp = await client.post("/api/feedback/submit", json=dict(sample_grievance, user_id="u-17"))
        assert resp.status_code == 201
        gid = resp.json()["data"]["id"]

        detail = await client.get(f"/api/grievances/{gid}")
        assert detail.status_code == 200
        assert detail.json()["user_id"] == "u-17"

    async def test_round_trip(self, client, grievance, sample_grievance):
        resp = await client.get(f"/api/feedback/{grievance['id']}")
        assert resp.status_code == 200
        data = resp.json()
        for field in ("title", "description", "category"):
            assert data[field] == sample_grievance[field]
        assert data["status"] == "Submitted"

    async def test_text_fields_stored_as_submitted(self, client, sample_grievance):
        payload = dict(sample_grievance, title="  Broken AC in Room 204  ",
                       description=sample_grievance["description"] + "\n", category=" hostel")
        resp = await client.post("/api/grievances", json=payload)
        assert resp.status_code == 201

        data = (await client.get(f"/api/grievances/{resp.json()['data']['id']}")).json()
        for field in ("title", "description", "category"):
            assert data[field] == payload[field]

    async def test_anonymous_submission_drops_identity(self, client, sample_grievance):
        payload = dict(sample_grievance, is_anonymous=True,
                       submitter_name="Asha", submitter_email="asha@example.com")
        resp = await client.post("/api/grievances", json=payload)
        data = resp.json()["data"]
        assert data["is_anonymous"] is True
        assert data["submitter_name"] is None
        assert data["submitter_email"] is None

    async def test_list_keeps_insertion_order(self, client, sample_grievance):
        ids = []
        for n in range(3):
            resp = await client.post("/api/grievances", json=dict(sample_grievance, title=f"Issue number {n}"))
            ids.append(resp.json()["data"]["id"])

        resp = await client.get("/api/grievances")
        assert resp.status_code == 200
        assert [g["id"] for g in resp.json()] == ids

    async def test_list_ignores_filters(self, client, grievance):
        resp = await client.get("/api/grievances?status=closed&category=library")
        assert resp.status_code == 200
        assert [g["id"] for g in resp.json()] == [grievance["id"]]

    async def test_list_empty(self, client):
        resp = await client.get("/api/feedback")
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_get_unknown_id(self, client):
        resp = await client.get("/api/grievances/nonexistent-id-12345")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Grievance not found", "code": "GRIEVANCE_NOT_FOUND"}

    async def test_statistics(self, client, sample_grievance):
        await client.post("/api/grievances", json=sample_grievance)
        await client.post("/api/grievances", json=dict(sample_grievance, category="library", priority="high"))

        resp = await client.get("/api/grievances/statistics")
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["total"] == 2
        assert stats["by_status"] == {"Submitted": 2}
        assert stats["by_category"] == {"hostel": 1, "library": 1}
        assert stats["by_priority"] == {"medium": 1, "high": 1}
        assert len(stats["recent"]) == 2


# ═══════════════════════════════════════════════════════════════════════════════
# STATUS UPDATES
# ═══════════════════════════════════════════════════════════════════════════════

class TestStatusUpdate:
    async def test_end_to_end_resolution(self, client, grievance):
        resp = await client.put(f"/api/feedback/{grievance['id']}/status", json={"status": "resolved"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Grievance status updated successfully!"
        assert body["data"]["status"] == "resolved"
        assert ts(body["data"]["updated_at"]) > ts(grievance["updated_at"])
        assert body["data"]["created_at"] == grievance["created_at"]

    async def test_patch_alias(self, client, grievance):
        resp = await client.patch(f"/api/grievances/{grievance['id']}/status", json={"status": "under_review"})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "under_review"

    async def test_same_status_twice_only_moves_updated_at(self, client, grievance):
        url = f"/api/grievances/{grievance['id']}/status"
        first = (await client.put(url, json={"status": "in_progress"})).json()["data"]
        second = (await client.put(url, json={"status": "in_progress"})).json()["data"]

        assert ts(second["updated_at"]) > ts(first["updated_at"])
        first.pop("updated_at")
        second.pop("updated_at")
        assert first == second

    async def test_unknown_id(self, client):
        resp = await client.put("/api/grievances/missing/status", json={"status": "closed"})
        assert resp.status_code == 404
        assert "error" in resp.json()

    async def test_invalid_status(self, client, grievance):
        resp = await client.put(f"/api/grievances/{grievance['id']}/status", json={"status": "archived"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_STATUS"

        detail = await client.get(f"/api/grievances/{grievance['id']}")
        assert detail.json()["status"] == "Submitted"


# ═══════════════════════════════════════════════════════════════════════════════
# INPUT VALIDATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestInputValidation:
    async def test_missing_fields(self, client):
        resp = await client.post("/api/grievances", json={"title": "Only a title"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert any(d.startswith("description") for d in body["details"])
        assert any(d.startswith("category") for d in body["details"])

    async def test_short_title_and_description(self, client):
        resp = await client.post("/api/grievances", json={
            "title": "AC", "description": "too short", "category": "hostel"})
        assert resp.status_code == 400
        details = resp.json()["details"]
        assert "title: Title must be at least 5 characters long" in details
        assert "description: Description must be at least 20 characters long" in details

    async def test_bad_email(self, client, sample_grievance):
        resp = await client.post("/api/grievances", json=dict(sample_grievance, submitter_email="nope"))
        assert resp.status_code == 400

    async def test_email_with_trailing_newline_rejected(self, client, sample_grievance):
        resp = await client.post("/api/grievances",
                                 json=dict(sample_grievance, submitter_email="a@b.co\n"))
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_malformed_json(self, client):
        resp = await client.post("/api/grievances", content=b"{not json",
                                 headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"


# ═══════════════════════════════════════════════════════════════════════════════
# FILE ATTACHMENTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestFileAttachments:
    async def test_upload_list_delete_cycle(self, client, grievance, upload_dir):
        gid = grievance["id"]
        resp = await upload(client, gid, TEXT_FILE, description="logbook scan")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert len(body["files"]) == 1
        stored = body["files"][0]
        assert stored["original_name"] == "notes.txt"
        assert stored["content_type"] == "text/plain"
        assert stored["size"] == len(TEXT_FILE[1])
        assert stored["description"] == "logbook scan"
        assert "path" not in stored
        file_id = stored["id"]

        on_disk = list((upload_dir / gid).iterdir())
        assert len(on_disk) == 1
        assert on_disk[0].name.startswith("notes-") and on_disk[0].suffix == ".txt"

        listing = await client.get(f"/api/files/{gid}")
        assert listing.status_code == 200
        assert [f["id"] for f in listing.json()["files"]] == [file_id]

        resp = await client.delete(f"/api/files/{file_id}")
        assert resp.status_code == 200
        assert resp.json()["message"] == "File deleted successfully"
        assert list((upload_dir / gid).iterdir()) == []

        resp = await client.get(f"/api/download/{file_id}")
        assert resp.status_code == 404
        assert resp.json()["code"] == "FILE_NOT_FOUND"

        listing = await client.get(f"/api/files/{gid}")
        assert listing.json()["files"] == []

    async def test_download_streams_original_bytes(self, client, grievance):
        resp = await upload(client, grievance["id"], TEXT_FILE)
        file_id = resp.json()["files"][0]["id"]

        resp = await client.get(f"/api/download/{file_id}")
        assert resp.status_code == 200
        assert resp.content == TEXT_FILE[1]
        assert resp.headers["content-type"].startswith("text/plain")
        assert 'filename="notes.txt"' in resp.headers["content-disposition"]
        assert resp.headers["content-disposition"].startswith("attachment")

    async def test_multiple_files_in_one_request(self, client, grievance):
        resp = await upload(client, grievance["id"], TEXT_FILE, PNG_FILE)
        assert resp.status_code == 200
        assert [f["original_name"] for f in resp.json()["files"]] == ["notes.txt", "photo.png"]

    async def test_upload_without_grievance_id_goes_to_temp(self, client, upload_dir):
        resp = await client.post("/api/upload", files=[("files", TEXT_FILE)])
        assert resp.status_code == 200
        assert resp.json()["files"][0]["grievance_id"] == "temp"
        assert len(list((upload_dir / "temp").iterdir())) == 1

    async def test_grievance_id_cannot_escape_upload_dir(self, client, upload_dir):
        resp = await upload(client, "../../etc", TEXT_FILE)
        assert resp.status_code == 200
        written = [p for p in upload_dir.rglob("*") if p.is_file()]
        assert len(written) == 1
        assert upload_dir in written[0].parents

    async def test_too_many_files(self, client, grievance, upload_dir):
        resp = await upload(client, grievance["id"], *[TEXT_FILE] * 6)
        assert resp.status_code == 400
        assert resp.json()["code"] == "TOO_MANY_FILES"
        assert not any(p.is_file() for p in upload_dir.rglob("*"))

    async def test_invalid_file_type(self, client, grievance):
        resp = await upload(client, grievance["id"], ("tool.exe", b"MZ", "application/x-msdownload"))
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "INVALID_FILE_TYPE"
        assert "Invalid file type" in body["error"]

    async def test_no_files(self, client, grievance):
        resp = await client.post("/api/upload", data={"grievanceId": grievance["id"]})
        assert resp.status_code == 400
        assert resp.json()["code"] == "NO_FILES"

    async def test_delete_unknown_file(self, client):
        resp = await client.delete("/api/files/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["code"] == "FILE_NOT_FOUND"

    async def test_download_when_bytes_missing(self, client, grievance, upload_dir):
        resp = await upload(client, grievance["id"], TEXT_FILE)
        file_id = resp.json()["files"][0]["id"]
        for p in (upload_dir / grievance["id"]).iterdir():
            p.unlink()

        resp = await client.get(f"/api/download/{file_id}")
        assert resp.status_code == 404
        assert resp.json()["code"] == "FILE_NOT_ON_DISK"

    async def test_preview_image(self, client, grievance):
        resp = await upload(client, grievance["id"], PNG_FILE)
        file_id = resp.json()["files"][0]["id"]

        resp = await client.get(f"/api/preview/{file_id}")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert resp.content == PNG_FILE[1]

    async def test_preview_rejects_non_image(self, client, grievance):
        resp = await upload(client, grievance["id"], TEXT_FILE)
        file_id = resp.json()["files"][0]["id"]

        resp = await client.get(f"/api/preview/{file_id}")
        assert resp.status_code == 400
        assert resp.json()["code"] == "NOT_AN_IMAGE"


class TestUploadSizeLimit:
    async def test_file_too_large(self, tmp_path):
        upload_dir = tmp_path / "small"
        app = create_app(store=InMemoryStore(), upload_dir=upload_dir, max_file_size=16)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            resp = await upload(c, "g-1", ("ok.txt", b"tiny", "text/plain"),
                                ("big.txt", b"x" * 64, "text/plain"))
            assert resp.status_code == 400
            assert resp.json()["code"] == "FILE_TOO_LARGE"

            # the accepted first file is rolled back with the request
            assert not any(p.is_file() for p in Path(upload_dir).rglob("*"))
            listing = await c.get("/api/files/g-1")
            assert listing.json()["files"] == []


class TestUploadRollback:
    async def test_metadata_removed_when_store_fails_mid_batch(self, tmp_path):
        class FlakyStore(InMemoryStore):
            def __init__(self):
                super().__init__()
                self.adds = 0

            async def add_attachment(self, attachment):
                self.adds += 1
                if self.adds == 2:
                    raise RuntimeError("write conflict")
                return await super().add_attachment(attachment)

        upload_dir = tmp_path / "uploads"
        app = create_app(store=FlakyStore(), upload_dir=upload_dir)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            resp = await upload(c, "g-1", TEXT_FILE, PNG_FILE)
            assert resp.status_code == 500
            assert resp.json() == {"error": "write conflict", "code": "INTERNAL_ERROR"}

            listing = await c.get("/api/files/g-1")
            assert listing.json()["files"] == []
            assert not any(p.is_file() for p in upload_dir.rglob("*"))


# ═══════════════════════════════════════════════════════════════════════════════
# API PREFIX
# ═══════════════════════════════════════════════════════════════════════════════

class TestApiPrefix:
    @pytest.mark.parametrize("raw,expected", [
        ("/api", "/api"),
        ("api/", "/api"),
        ("/v2/api/", "/v2/api"),
        ("", ""),
        ("/", ""),
    ])
    async def test_normalize_prefix(self, raw, expected):
        assert normalize_prefix(raw) == expected

    async def test_routes_mount_at_root_without_prefix(self, tmp_path):
        app = create_app(store=InMemoryStore(), upload_dir=tmp_path / "uploads", api_prefix="")
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            assert (await c.get("/health")).status_code == 200
            resp = await c.post("/grievances", json={
                "title": "Broken AC in Room 204",
                "description": "The air conditioning unit has been broken for days.",
                "category": "hostel",
            })
            assert resp.status_code == 201
            assert (await c.get("/grievances")).json()[0]["id"] == resp.json()["data"]["id"]
