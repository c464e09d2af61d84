"""
Authentication: password hashing, signed session tokens and user lookup.

Passwords are hashed with PBKDF2-HMAC-SHA256 and a per-user random salt.

Session token format: ``{user_id}:{expires_unix}:{hex_hmac}``, signed with
``APP_SECRET_KEY``. Changing the key invalidates every outstanding session
without a server-side session store. The token travels in the
``projectflow_session`` cookie (HTML pages) or an ``Authorization: Bearer``
header (JSON API).
"""

import base64
import hashlib
import hmac
import logging
import secrets
import sqlite3
import time

from fastapi import Depends, HTTPException, Request, Response

from api.database import get_db
from api.settings import get_settings
from utils.database import new_id, query_one, utc_now

logger = logging.getLogger(__name__)

SESSION_COOKIE = "projectflow_session"
PBKDF2_ITERATIONS = 310_000
MIN_PASSWORD_LENGTH = 6

_USER_COLUMNS = "id, email, full_name, role, created_at"


# ── Passwords ─────────────────────────────────────────────────────────────────

def hash_password(password: str, salt_b64: str | None = None) -> tuple[str, str]:
    """Return ``(hash_b64, salt_b64)`` for *password*.

    A fresh 16-byte salt is generated unless *salt_b64* is given.
    """
    salt = base64.b64decode(salt_b64) if salt_b64 else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return base64.b64encode(digest).decode("ascii"), base64.b64encode(salt).decode("ascii")


def verify_password(password: str, expected_hash: str, salt_b64: str) -> bool:
    computed, _ = hash_password(password, salt_b64)
    return hmac.compare_digest(computed, expected_hash)


# ── Session tokens ────────────────────────────────────────────────────────────

def _sign(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


def create_session_token(user_id: str, secret_key: str, ttl_hours: int = 24) -> tuple[str, int]:
    """Issue a token for *user_id* that expires after *ttl_hours*.

    Returns:
        ``(token, expires_unix)``
    """
    expires = int(time.time()) + ttl_hours * 3600
    payload = f"{user_id}:{expires}"
    return f"{payload}:{_sign(secret_key, payload)}", expires


def verify_session_token(token: str, secret_key: str) -> str | None:
    """Return the user id carried by a valid, unexpired token, else None."""
    parts = (token or "").split(":")
    if len(parts) != 3:
        return None
    user_id, expires_str, sig = parts
    try:
        expires = int(expires_str)
    except ValueError:
        return None
    if time.time() > expires:
        return None
    expected = _sign(secret_key, f"{user_id}:{expires_str}")
    if not hmac.compare_digest(sig, expected):
        return None
    return user_id


def token_from_request(request: Request) -> str | None:
    """Extract a session token from the Authorization header or the cookie."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


# ── Users ─────────────────────────────────────────────────────────────────────

def get_user(conn: sqlite3.Connection, user_id: str) -> dict | None:
    return query_one(conn, f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,))


def create_user(conn: sqlite3.Connection, email: str, password: str,
                full_name: str | None = None) -> dict:
    """Register a new account. The first account becomes ``admin``.

    Raises:
        HTTPException: 400 for a short password, 409 for a taken email.
    """
    email = email.strip().lower()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400,
                            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if query_one(conn, "SELECT id FROM users WHERE email = ?", (email,)):
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    has_users = conn.execute("SELECT 1 FROM users LIMIT 1").fetchone() is not None
    role = "member" if has_users else "admin"
    pw_hash, salt = hash_password(password)
    now = utc_now()
    user_id = new_id()
    try:
        conn.execute(
            "INSERT INTO users (id, email, full_name, password_hash, password_salt, role,"
            " created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (user_id, email, full_name, pw_hash, salt, role, now, now),
        )
        conn.commit()
    except sqlite3.IntegrityError:
        # A concurrent sign-up took the email between the check and the insert.
        conn.rollback()
        raise HTTPException(status_code=409,
                            detail="An account with this email already exists") from None
    logger.info("user signed up id=%s role=%s", user_id, role)
    return get_user(conn, user_id)


def authenticate(conn: sqlite3.Connection, email: str, password: str) -> dict:
    """Return the user for valid credentials.

    Raises:
        HTTPException: 401 with a generic message for any mismatch.
    """
    row = query_one(
        conn,
        "SELECT id, password_hash, password_salt FROM users WHERE email = ?",
        (email.strip().lower(),),
    )
    if row is None or not verify_password(password, row["password_hash"], row["password_salt"]):
        logger.warning("failed sign-in email=%s", email.strip().lower())
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return get_user(conn, row["id"])


def update_profile(conn: sqlite3.Connection, user_id: str, full_name: str | None) -> dict:
    conn.execute(
        "UPDATE users SET full_name = ?, updated_at = ? WHERE id = ?",
        (full_name, utc_now(), user_id),
    )
    conn.commit()
    return get_user(conn, user_id)


def change_password(conn: sqlite3.Connection, user_id: str,
                    current_password: str, new_password: str) -> None:
    """Replace the password after re-checking the current one.

    Raises:
        HTTPException: 400 if the current password is wrong or the new one is short.
    """
    row = query_one(
        conn, "SELECT password_hash, password_salt FROM users WHERE id = ?", (user_id,),
    )
    if row is None or not verify_password(current_password, row["password_hash"], row["password_salt"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400,
                            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    pw_hash, salt = hash_password(new_password)
    conn.execute(
        "UPDATE users SET password_hash = ?, password_salt = ?, updated_at = ? WHERE id = ?",
        (pw_hash, salt, utc_now(), user_id),
    )
    conn.commit()
    logger.info("password changed id=%s", user_id)


# ── Dependencies ──────────────────────────────────────────────────────────────

def get_optional_user(
    request: Request,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict | None:
    """FastAPI dependency: the signed-in user, or None for anonymous requests."""
    token = token_from_request(request)
    if not token:
        return None
    user_id = verify_session_token(token, get_settings().secret_key)
    if user_id is None:
        return None
    return get_user(conn, user_id)


def get_current_user(user: dict | None = Depends(get_optional_user)) -> dict:
    """FastAPI dependency: the signed-in user; 401 when not signed in."""
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


# ── Cookies ───────────────────────────────────────────────────────────────────

def start_session(response: Response, user_id: str) -> tuple[str, int]:
    """Issue a session token and set it as an HTTP-only cookie."""
    cfg = get_settings()
    token, expires = create_session_token(user_id, cfg.secret_key, cfg.session_ttl_hours)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=cfg.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        path="/",
    )
    return token, expires


def end_session(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")
