"""
Auth endpoints: sign up, sign in, sign out, current user, profile.

    POST /api/v1/auth/signup     create account + start session (201)
    POST /api/v1/auth/login      start session
    POST /api/v1/auth/logout     clear session cookie
    GET  /api/v1/auth/me         current user
    PATCH /api/v1/auth/me        update display name
    POST /api/v1/auth/password   change password
"""

import sqlite3

from fastapi import APIRouter, Depends, Response, status

from api.auth import (
    authenticate,
    change_password,
    create_user,
    end_session,
    get_current_user,
    start_session,
    update_profile,
)
from api.database import get_db
from api.models import PasswordChange, ProfileUpdate, SessionOut, SignInIn, SignUpIn, UserOut

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    response_model=SessionOut,
    responses={409: {"description": "Email already registered"}},
    summary="Create an account",
)
def sign_up(
    body: SignUpIn,
    response: Response,
    conn: sqlite3.Connection = Depends(get_db),
) -> SessionOut:
    user = create_user(conn, body.email, body.password, body.full_name)
    token, expires = start_session(response, user["id"])
    return SessionOut(user=UserOut(**user), access_token=token, expires_at=expires)


@router.post(
    "/login",
    response_model=SessionOut,
    responses={401: {"description": "Invalid email or password"}},
    summary="Sign in",
)
def sign_in(
    body: SignInIn,
    response: Response,
    conn: sqlite3.Connection = Depends(get_db),
) -> SessionOut:
    user = authenticate(conn, body.email, body.password)
    token, expires = start_session(response, user["id"])
    return SessionOut(user=UserOut(**user), access_token=token, expires_at=expires)


@router.post("/logout", summary="Sign out")
def sign_out(response: Response) -> dict:
    """Clear the session cookie. Tokens are stateless, so this always succeeds."""
    end_session(response)
    return {"status": "signed_out", "message": "Logged out successfully"}


@router.get("/me", response_model=UserOut, summary="Current user")
def me(user: dict = Depends(get_current_user)) -> UserOut:
    return UserOut(**user)


@router.patch("/me", response_model=UserOut, summary="Update profile")
def update_me(
    body: ProfileUpdate,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> UserOut:
    return UserOut(**update_profile(conn, user["id"], body.full_name))


@router.post("/password", summary="Change password")
def password(
    body: PasswordChange,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    change_password(conn, user["id"], body.current_password, body.new_password)
    return {"status": "ok"}
