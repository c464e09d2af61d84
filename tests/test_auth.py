"""
Tests for api/auth.py and the /api/v1/auth endpoints.

Covers password hashing, session token signing/expiry, sign-up (first user
becomes admin, duplicate email 409), sign-in, sign-out, profile and
password change.
"""
import sys
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi import HTTPException  # noqa: E402

import api.auth as auth_module  # noqa: E402
from api.auth import (  # noqa: E402
    SESSION_COOKIE,
    create_session_token,
    create_user,
    hash_password,
    verify_password,
    verify_session_token,
)
from conftest import TEST_PASSWORD  # noqa: E402
from schema_design import create_database  # noqa: E402


# ── Unit: hashing and tokens ──────────────────────────────────────────────────

class TestPasswordHashing:
    def test_round_trip(self):
        pw_hash, salt = hash_password("hunter22")
        assert verify_password("hunter22", pw_hash, salt)

    def test_wrong_password_rejected(self):
        pw_hash, salt = hash_password("hunter22")
        assert not verify_password("hunter23", pw_hash, salt)

    def test_salt_is_random(self):
        a, salt_a = hash_password("same-password")
        b, salt_b = hash_password("same-password")
        assert salt_a != salt_b
        assert a != b

    def test_given_salt_is_reused(self):
        a, salt = hash_password("same-password")
        b, salt_again = hash_password("same-password", salt)
        assert a == b
        assert salt == salt_again


class TestSessionTokens:
    def test_valid_token_returns_user_id(self):
        token, expires = create_session_token("user-1", "key")
        assert verify_session_token(token, "key") == "user-1"
        assert expires > time.time()

    def test_wrong_key_rejected(self):
        token, _ = create_session_token("user-1", "key")
        assert verify_session_token(token, "other-key") is None

    def test_expired_token_rejected(self):
        token, _ = create_session_token("user-1", "key", ttl_hours=-1)
        assert verify_session_token(token, "key") is None

    def test_tampered_user_rejected(self):
        token, _ = create_session_token("user-1", "key")
        _, expires, sig = token.split(":")
        assert verify_session_token(f"user-2:{expires}:{sig}", "key") is None

    @pytest.mark.parametrize("token", ["", "garbage", "a:b", "a:notanint:sig"])
    def test_malformed_token_rejected(self, token):
        assert verify_session_token(token, "key") is None


# ── Endpoints ─────────────────────────────────────────────────────────────────

class TestSignUp:
    def test_first_user_is_admin(self, auth_client):
        assert auth_client.user["role"] == "admin"
        assert auth_client.user["email"] == "owner@example.com"

    def test_second_user_is_member(self, other_client):
        assert other_client.user["role"] == "member"

    def test_signup_sets_session_cookie(self, signup):
        c = signup("cookie@example.com")
        assert c.cookies.get(SESSION_COOKIE)

    def test_signup_returns_token(self, client):
        resp = client.post("/api/v1/auth/signup",
                           json={"email": "token@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 201
        body = resp.json()
        assert body["access_token"].startswith(body["user"]["id"] + ":")
        assert "password_hash" not in body["user"]
        client.cookies.clear()

    def test_email_is_normalised(self, client):
        resp = client.post("/api/v1/auth/signup",
                           json={"email": "  MiXed@Example.COM ", "password": TEST_PASSWORD})
        assert resp.status_code == 201
        assert resp.json()["user"]["email"] == "mixed@example.com"
        client.cookies.clear()

    def test_duplicate_email_409(self, auth_client, client):
        resp = client.post("/api/v1/auth/signup",
                           json={"email": "OWNER@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 409
        assert "already exists" in resp.json()["detail"]

    def test_short_password_422(self, client):
        resp = client.post("/api/v1/auth/signup",
                           json={"email": "short@example.com", "password": "abc"})
        assert resp.status_code == 422

    def test_invalid_email_422(self, client):
        resp = client.post("/api/v1/auth/signup",
                           json={"email": "not-an-email", "password": TEST_PASSWORD})
        assert resp.status_code == 422


class TestSignIn:
    def test_login_success(self, auth_client, client):
        resp = client.post("/api/v1/auth/login",
                           json={"email": "owner@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "owner@example.com"
        client.cookies.clear()

    def test_wrong_password_401(self, auth_client, client):
        resp = client.post("/api/v1/auth/login",
                           json={"email": "owner@example.com", "password": "wrong-password"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"

    def test_unknown_email_401(self, client):
        resp = client.post("/api/v1/auth/login",
                           json={"email": "nobody@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"

    def test_bearer_token_authenticates(self, auth_client, client):
        resp = client.post("/api/v1/auth/login",
                           json={"email": "owner@example.com", "password": TEST_PASSWORD})
        token = resp.json()["access_token"]
        client.cookies.clear()
        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "owner@example.com"


class TestCurrentUser:
    def test_me_requires_auth(self, client):
        client.cookies.clear()
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.headers.get("WWW-Authenticate") == "Bearer"

    def test_me_returns_user(self, auth_client):
        resp = auth_client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["full_name"] == "Olivia Owner"

    def test_forged_token_rejected(self, client):
        client.cookies.clear()
        resp = client.get("/api/v1/auth/me",
                          headers={"Authorization": "Bearer someone:9999999999:deadbeef"})
        assert resp.status_code == 401

    def test_update_profile(self, signup):
        c = signup("profile@example.com")
        resp = c.patch("/api/v1/auth/me", json={"full_name": "Pat Profile"})
        assert resp.status_code == 200
        assert resp.json()["full_name"] == "Pat Profile"
        assert c.get("/api/v1/auth/me").json()["full_name"] == "Pat Profile"


class TestPasswordChange:
    def test_change_and_login_with_new_password(self, signup, client):
        c = signup("changer@example.com")
        resp = c.post("/api/v1/auth/password",
                      json={"current_password": TEST_PASSWORD, "new_password": "newsecret1"})
        assert resp.status_code == 200
        old = client.post("/api/v1/auth/login",
                          json={"email": "changer@example.com", "password": TEST_PASSWORD})
        assert old.status_code == 401
        new = client.post("/api/v1/auth/login",
                          json={"email": "changer@example.com", "password": "newsecret1"})
        assert new.status_code == 200
        client.cookies.clear()

    def test_wrong_current_password_400(self, signup):
        c = signup("wrongcurrent@example.com")
        resp = c.post("/api/v1/auth/password",
                      json={"current_password": "nope-nope", "new_password": "newsecret1"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Current password is incorrect"


class TestSignOut:
    def test_logout_clears_cookie(self, signup):
        c = signup("leaver@example.com")
        assert c.get("/api/v1/auth/me").status_code == 200
        resp = c.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully"
        assert c.get("/api/v1/auth/me").status_code == 401


class TestCreateUserRace:
    def test_unique_violation_reported_as_409(self, tmp_path, monkeypatch):
        conn = create_database(tmp_path / "race.sqlite")
        try:
            create_user(conn, "race@example.com", TEST_PASSWORD)
            # The existence check misses the row a concurrent request just wrote.
            monkeypatch.setattr(auth_module, "query_one", lambda *a, **kw: None)
            with pytest.raises(HTTPException) as exc_info:
                create_user(conn, "race@example.com", TEST_PASSWORD)
            assert exc_info.value.status_code == 409
            assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 1
        finally:
            conn.close()
