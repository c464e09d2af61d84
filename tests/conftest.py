"""
Pytest fixtures for ProjectFlow tests.

Every test module gets its own app instance backed by a fresh SQLite
database and storage directory under a temporary path. Rate limits are
raised so that fixture-heavy modules never hit 429.

Fixtures:
    app           create_app() wired to the module's temp database
    client        anonymous TestClient (lifespan entered)
    auth_client   TestClient signed in as the module's first user (admin)
    other_client  TestClient signed in as a second user, for isolation checks
    signup        helper that registers and signs in a TestClient
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient  # noqa: E402

from api.app import create_app  # noqa: E402
from utils.config import AppConfig  # noqa: E402

TEST_PASSWORD = "secret123"


def make_settings(tmp: Path, **overrides) -> AppConfig:
    """AppConfig rooted at *tmp* with test-friendly limits."""
    return AppConfig.from_dict({
        "db_path": tmp / "test.sqlite",
        "storage_dir": tmp / "storage",
        "secret_key": "test-secret-key",
        "rate_limit_auth": 1000,
        "rate_limit_default": 10_000,
        "max_upload_mb": 1,
        "log_format": "text",
        "trusted_proxies": set(),
        **overrides,
    })


def do_signup(client: TestClient, email: str, password: str = TEST_PASSWORD,
              full_name: str | None = "Test User") -> dict:
    resp = client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": password, "full_name": full_name},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture(scope="module")
def app(tmp_path_factory):
    tmp = tmp_path_factory.mktemp("projectflow")
    return create_app(settings=make_settings(tmp))


@pytest.fixture(scope="module")
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="module")
def auth_client(app):
    with TestClient(app) as c:
        session = do_signup(c, "owner@example.com", full_name="Olivia Owner")
        c.user = session["user"]
        yield c


@pytest.fixture(scope="module")
def other_client(app, auth_client):
    with TestClient(app) as c:
        session = do_signup(c, "other@example.com", full_name="Oscar Other")
        c.user = session["user"]
        yield c


@pytest.fixture(scope="module")
def signup(app):
    """Return a function that signs up *email* and yields a signed-in client."""
    opened: list[TestClient] = []

    def _signup(email: str, password: str = TEST_PASSWORD) -> TestClient:
        c = TestClient(app)
        c.__enter__()
        opened.append(c)
        c.user = do_signup(c, email, password)["user"]
        return c

    yield _signup
    for c in opened:
        c.__exit__(None, None, None)


def create_project(client: TestClient, name: str = "Website Redesign", **fields) -> dict:
    resp = client.post("/api/v1/projects", json={"name": name, **fields})
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_task(client: TestClient, project_id: str, title: str = "Homepage Design",
                **fields) -> dict:
    resp = client.post("/api/v1/tasks", json={"project_id": project_id, "title": title, **fields})
    assert resp.status_code == 201, resp.text
    return resp.json()
