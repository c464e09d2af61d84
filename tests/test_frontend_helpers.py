"""
Tests for api/routes/frontend.py: helper functions

Tests _error_message, _redirect, _pop_flash, _choice and template
initialization without going through a running app.
"""
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock
from urllib.parse import quote, unquote

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi import HTTPException  # noqa: E402
from pydantic import ValidationError  # noqa: E402

import api.routes.frontend as frontend  # noqa: E402
from api.models import ProjectIn  # noqa: E402
from api.routes.frontend import (  # noqa: E402
    FLASH_COOKIE,
    _choice,
    _error_message,
    _pop_flash,
    _redirect,
    _tmpl,
    set_templates,
)
from utils.config import PROJECT_STATUSES  # noqa: E402


def _request_with_cookie(value: str | None) -> MagicMock:
    request = MagicMock()
    request.cookies = {} if value is None else {FLASH_COOKIE: value}
    return request


# ── _error_message ───────────────────────────────────────────────────────────

class TestErrorMessage:
    def test_http_exception_uses_detail(self):
        exc = HTTPException(status_code=404, detail="Project not found")
        assert _error_message(exc) == "Project not found"

    def test_validation_error_names_field(self):
        with pytest.raises(ValidationError) as exc_info:
            ProjectIn(name="x")
        message = _error_message(exc_info.value)
        assert message.startswith("name: ")

    def test_plain_exception(self):
        assert _error_message(ValueError("boom")) == "boom"


# ── _redirect / _pop_flash ───────────────────────────────────────────────────

class TestFlash:
    def test_redirect_without_message_sets_no_cookie(self):
        resp = _redirect("/projects")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/projects"
        assert "set-cookie" not in resp.headers

    def test_redirect_with_message_sets_cookie(self):
        resp = _redirect("/clients", "Client created")
        cookie = resp.headers["set-cookie"]
        assert cookie.startswith(f"{FLASH_COOKIE}=")
        assert "HttpOnly" in cookie
        raw = cookie.split(";", 1)[0].split("=", 1)[1].strip('"')
        assert json.loads(unquote(raw)) == {"message": "Client created", "kind": "success"}

    def test_pop_flash_reads_cookie(self):
        raw = quote(json.dumps({"message": "Saved", "kind": "error"}))
        assert _pop_flash(_request_with_cookie(raw)) == {"message": "Saved", "kind": "error"}

    @pytest.mark.parametrize("raw", [None, "", "not-json", quote(json.dumps(["list"])),
                                     quote(json.dumps({"kind": "success"}))])
    def test_pop_flash_ignores_bad_cookies(self, raw):
        assert _pop_flash(_request_with_cookie(raw)) is None


# ── _choice ──────────────────────────────────────────────────────────────────

class TestChoice:
    def test_allowed_value_kept(self):
        assert _choice("on_hold", PROJECT_STATUSES) == "on_hold"

    @pytest.mark.parametrize("value", [None, "", "finished"])
    def test_unknown_value_becomes_all(self, value):
        assert _choice(value, PROJECT_STATUSES) == "all"


# ── set_templates / _tmpl ─────────────────────────────────────────────────────

class TestTemplateInit:
    @pytest.fixture(autouse=True)
    def _restore_templates(self):
        saved = frontend._templates
        yield
        set_templates(saved)

    def test_tmpl_raises_when_not_set(self):
        set_templates(None)
        with pytest.raises(RuntimeError, match="Templates not initialised"):
            _tmpl()

    def test_set_and_get_templates(self):
        mock_templates = MagicMock()
        set_templates(mock_templates)
        assert _tmpl() is mock_templates
