"""
Tests for api/routes/snippets.py

Covers snippet CRUD, language validation and per-language counts, search
across title and code, and project links.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conftest import create_project  # noqa: E402
from utils.config import SNIPPET_LANGUAGES  # noqa: E402


def _snippet(c, title, language, code, **fields):
    resp = c.post("/api/v1/snippets",
                  json={"title": title, "language": language, "code": code, **fields})
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture(scope="module")
def library(signup):
    c = signup("snippets@example.com")
    _snippet(c, "Debounce helper", "javascript", "function debounce(fn, wait) {}")
    _snippet(c, "Read CSV", "python", "import csv\nrows = list(csv.DictReader(fh))")
    _snippet(c, "Overdue tasks", "sql", "SELECT * FROM tasks WHERE due_date < date('now')")
    _snippet(c, "Throttle", "javascript", "// no debounce here\nfunction throttle() {}")
    return c


class TestListSnippets:
    def test_newest_first(self, library):
        titles = [s["title"] for s in library.get("/api/v1/snippets").json()["items"]]
        assert titles == ["Throttle", "Overdue tasks", "Read CSV", "Debounce helper"]

    def test_language_filter(self, library):
        body = library.get("/api/v1/snippets", params={"language": "javascript"}).json()
        assert {s["title"] for s in body["items"]} == {"Debounce helper", "Throttle"}

    def test_language_all(self, library):
        assert library.get("/api/v1/snippets", params={"language": "all"}).json()["total"] == 4

    def test_unsupported_language_400(self, library):
        resp = library.get("/api/v1/snippets", params={"language": "cobol"})
        assert resp.status_code == 400

    def test_search_matches_title_or_code(self, library):
        body = library.get("/api/v1/snippets", params={"q": "DEBOUNCE"}).json()
        assert {s["title"] for s in body["items"]} == {"Debounce helper", "Throttle"}

    def test_search_wildcards_are_literal(self, library):
        assert library.get("/api/v1/snippets", params={"q": "%"}).json()["total"] == 0


class TestLanguages:
    def test_all_languages_in_order_with_counts(self, library):
        langs = library.get("/api/v1/snippets/languages").json()
        assert [l["value"] for l in langs] == list(SNIPPET_LANGUAGES)
        counts = {l["value"]: l["count"] for l in langs}
        assert counts["javascript"] == 2
        assert counts["python"] == 1
        assert counts["rust"] == 0

    def test_labels(self, library):
        labels = {l["value"]: l["label"] for l in library.get("/api/v1/snippets/languages").json()}
        assert labels["csharp"] == "C#"


class TestSnippetCrud:
    def test_invalid_language_422(self, auth_client):
        resp = auth_client.post("/api/v1/snippets",
                                json={"title": "Bad", "language": "cobol", "code": "x"})
        assert resp.status_code == 422

    def test_blank_code_422(self, auth_client):
        resp = auth_client.post("/api/v1/snippets",
                                json={"title": "Blank", "language": "python", "code": "   "})
        assert resp.status_code == 422

    def test_project_link(self, auth_client):
        p = create_project(auth_client, "Snippet Project")
        s = _snippet(auth_client, "Linked", "go", "package main", project_id=p["id"])
        assert s["project_name"] == "Snippet Project"

        body = auth_client.get("/api/v1/snippets", params={"project_id": p["id"]}).json()
        assert [x["title"] for x in body["items"]] == ["Linked"]

    def test_foreign_project_404(self, auth_client, other_client):
        p = create_project(auth_client, "Guarded Snippets")
        resp = other_client.post("/api/v1/snippets", json={
            "title": "Intruder", "language": "go", "code": "x", "project_id": p["id"],
        })
        assert resp.status_code == 404

    def test_update_and_unlink(self, auth_client):
        p = create_project(auth_client, "Unlink Project")
        s = _snippet(auth_client, "Editable", "python", "print(1)", project_id=p["id"])
        resp = auth_client.patch(f"/api/v1/snippets/{s['id']}",
                                 json={"code": "print(2)", "project_id": ""})
        assert resp.status_code == 200
        body = resp.json()
        assert body["code"] == "print(2)"
        assert body["project_id"] is None
        assert body["language"] == "python"

    def test_null_title_400(self, auth_client):
        s = _snippet(auth_client, "Titled", "css", "a {}")
        resp = auth_client.patch(f"/api/v1/snippets/{s['id']}", json={"title": None})
        assert resp.status_code == 400

    def test_delete(self, auth_client):
        s = _snippet(auth_client, "Disposable", "ruby", "puts 1")
        assert auth_client.delete(f"/api/v1/snippets/{s['id']}").status_code == 204
        resp = auth_client.get(f"/api/v1/snippets/{s['id']}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Snippet not found"

    def test_project_delete_keeps_snippet(self, auth_client):
        p = create_project(auth_client, "Going Away")
        s = _snippet(auth_client, "Survivor", "sql", "SELECT 1", project_id=p["id"])
        auth_client.delete(f"/api/v1/projects/{p['id']}")
        body = auth_client.get(f"/api/v1/snippets/{s['id']}").json()
        assert body["project_id"] is None
