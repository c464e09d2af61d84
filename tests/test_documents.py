"""
Tests for api/routes/documents.py, api/routes/storage.py and utils/storage.py

Covers multipart upload (size limit, empty file, default name), object
layout in the bucket, signed download links, deletion and the storage
path jail.
"""
import sqlite3
import sys
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import api.routes.documents as documents_routes  # noqa: E402
from api.settings import get_settings  # noqa: E402
from conftest import create_project  # noqa: E402
from utils.storage import LocalStorage, StorageError  # noqa: E402


def _upload(c, filename="report.pdf", data=b"%PDF-1.4 test", content_type="application/pdf",
            **form):
    return c.post("/api/v1/documents",
                  files={"file": (filename, data, content_type)}, data=form)


# ── LocalStorage ──────────────────────────────────────────────────────────────

class TestLocalStorage:
    def test_upload_and_open(self, tmp_path):
        store = LocalStorage(tmp_path, "k")
        store.upload("documents", "documents/1.txt", b"hello")
        assert store.open("documents", "documents/1.txt").read_bytes() == b"hello"
        assert store.exists("documents", "documents/1.txt")

    def test_no_overwrite(self, tmp_path):
        store = LocalStorage(tmp_path, "k")
        store.upload("documents", "a.txt", b"one")
        with pytest.raises(StorageError):
            store.upload("documents", "a.txt", b"two")

    @pytest.mark.parametrize("path", ["../escape.txt", "/etc/passwd", "a/../../b", "a\\b", ""])
    def test_path_jail(self, tmp_path, path):
        store = LocalStorage(tmp_path, "k")
        with pytest.raises(StorageError):
            store.upload("documents", path, b"x")

    @pytest.mark.parametrize("bucket", ["", "..", "a/b"])
    def test_bad_bucket(self, tmp_path, bucket):
        with pytest.raises(StorageError):
            LocalStorage(tmp_path, "k").exists(bucket, "x.txt")

    def test_remove_missing_is_ignored(self, tmp_path):
        store = LocalStorage(tmp_path, "k")
        store.upload("documents", "a.txt", b"one")
        assert store.remove("documents", ["a.txt", "missing.txt"]) == 1
        assert not store.exists("documents", "a.txt")

    def test_signed_url_round_trip(self, tmp_path):
        store = LocalStorage(tmp_path, "k")
        store.upload("documents", "documents/9.pdf", b"x")
        url = store.create_signed_url("documents", "documents/9.pdf", 60)
        assert url.startswith("/storage/documents/documents/9.pdf?expires=")
        query = dict(part.split("=") for part in url.split("?")[1].split("&"))
        assert store.verify_signed_url("documents", "documents/9.pdf",
                                       int(query["expires"]), query["token"])
        assert not store.verify_signed_url("documents", "documents/other.pdf",
                                           int(query["expires"]), query["token"])
        assert not LocalStorage(tmp_path, "other-key").verify_signed_url(
            "documents", "documents/9.pdf", int(query["expires"]), query["token"])

    def test_expired_signature_rejected(self, tmp_path):
        store = LocalStorage(tmp_path, "k")
        past = int(time.time()) - 10
        token = store._sign("documents", "a.txt", past)
        assert not store.verify_signed_url("documents", "a.txt", past, token)


# ── Endpoints ─────────────────────────────────────────────────────────────────

class TestUpload:
    def test_upload_stores_object(self, auth_client):
        resp = _upload(auth_client)
        assert resp.status_code == 201, resp.text
        doc = resp.json()
        assert doc["name"] == "report"
        assert doc["file_type"] == "application/pdf"
        assert doc["file_size"] == len(b"%PDF-1.4 test")
        assert doc["file_path"].startswith("documents/")
        assert doc["file_path"].endswith(".pdf")
        stored = get_settings().storage_dir / "documents" / doc["file_path"]
        assert stored.read_bytes() == b"%PDF-1.4 test"

    def test_explicit_name_and_project(self, auth_client):
        p = create_project(auth_client, "Docs Project")
        resp = _upload(auth_client, "brief.docx", b"brief", "application/msword",
                       name="Client Brief", project_id=p["id"])
        assert resp.status_code == 201
        assert resp.json()["name"] == "Client Brief"
        assert resp.json()["project_name"] == "Docs Project"

    def test_empty_file_400(self, auth_client):
        resp = _upload(auth_client, "empty.txt", b"", "text/plain")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Please select a file to upload"

    def test_too_large_413(self, auth_client):
        big = b"x" * (get_settings().max_upload_bytes + 1)
        resp = _upload(auth_client, "big.bin", big, "application/octet-stream")
        assert resp.status_code == 413

    def test_short_name_400(self, auth_client):
        resp = _upload(auth_client, "a.txt", b"abc", "text/plain")
        assert resp.status_code == 400

    def test_unknown_project_404(self, auth_client):
        resp = _upload(auth_client, project_id="missing")
        assert resp.status_code == 404

    def test_two_uploads_get_distinct_paths(self, auth_client):
        a = _upload(auth_client, "same.txt", b"one", "text/plain").json()
        b = _upload(auth_client, "same.txt", b"two", "text/plain").json()
        assert a["file_path"] != b["file_path"]

    def test_failed_insert_removes_stored_object(self, auth_client, monkeypatch):
        def _fail_insert(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(documents_routes, "insert_row", _fail_insert)
        bucket = get_settings().storage_dir / "documents"
        before = sorted(p for p in bucket.rglob("*") if p.is_file())
        with pytest.raises(sqlite3.OperationalError):
            _upload(auth_client, "rollback.txt", b"orphan", "text/plain")
        after = sorted(p for p in bucket.rglob("*") if p.is_file())
        assert after == before

    def test_requires_auth(self, client):
        assert _upload(client).status_code == 401


class TestListDocuments:
    def test_search_by_name(self, signup):
        c = signup("docs-list@example.com")
        _upload(c, "invoice-march.pdf")
        _upload(c, "contract.pdf")
        body = c.get("/api/v1/documents", params={"q": "INVOICE"}).json()
        assert [d["name"] for d in body["items"]] == ["invoice-march"]
        assert c.get("/api/v1/documents").json()["total"] == 2

    def test_isolation(self, auth_client, other_client):
        _upload(auth_client, "private.pdf")
        names = {d["name"] for d in other_client.get("/api/v1/documents").json()["items"]}
        assert "private" not in names


class TestDownload:
    def test_signed_url_serves_file(self, auth_client, client):
        doc = _upload(auth_client, "download-me.txt", b"payload", "text/plain").json()
        link = auth_client.get(f"/api/v1/documents/{doc['id']}/download-url").json()
        assert link["expires_in"] == get_settings().signed_url_ttl
        # Signed links work without a session.
        resp = client.get(link["url"])
        assert resp.status_code == 200
        assert resp.content == b"payload"

    def test_tampered_token_403(self, auth_client, client):
        doc = _upload(auth_client, "tamper.txt", b"payload", "text/plain").json()
        url = auth_client.get(f"/api/v1/documents/{doc['id']}/download-url").json()["url"]
        resp = client.get(url[:-4] + "0000")
        assert resp.status_code == 403

    def test_other_user_cannot_get_link(self, auth_client, other_client):
        doc = _upload(auth_client, "mine.txt", b"payload", "text/plain").json()
        resp = other_client.get(f"/api/v1/documents/{doc['id']}/download-url")
        assert resp.status_code == 404


class TestDeleteDocument:
    def test_delete_removes_object_and_row(self, auth_client):
        doc = _upload(auth_client, "remove-me.txt", b"bye", "text/plain").json()
        stored = get_settings().storage_dir / "documents" / doc["file_path"]
        assert stored.exists()
        assert auth_client.delete(f"/api/v1/documents/{doc['id']}").status_code == 204
        assert not stored.exists()
        assert auth_client.get(f"/api/v1/documents/{doc['id']}").status_code == 404

    def test_other_user_cannot_delete(self, auth_client, other_client):
        doc = _upload(auth_client, "keep-me.txt", b"stay", "text/plain").json()
        assert other_client.delete(f"/api/v1/documents/{doc['id']}").status_code == 404
        assert auth_client.get(f"/api/v1/documents/{doc['id']}").status_code == 200
