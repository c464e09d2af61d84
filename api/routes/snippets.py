"""
Code snippet endpoints.

    GET    /api/v1/snippets              list (q matches title or code, language)
    GET    /api/v1/snippets/languages    supported languages with per-user counts
    POST   /api/v1/snippets              create (201)
    GET    /api/v1/snippets/{id}         one snippet
    PATCH  /api/v1/snippets/{id}         partial update
    DELETE /api/v1/snippets/{id}         delete
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from api import cache
from api.auth import get_current_user
from api.database import get_db, require_owned
from api.models import LanguageOut, Page, SnippetIn, SnippetOut, SnippetUpdate
from utils.config import SNIPPET_LANGUAGES
from utils.database import insert_row, new_id, query_one, query_to_dicts, update_row, utc_now
from utils.query import build_where_clause

router = APIRouter(prefix="/snippets", tags=["snippets"])

_SELECT = """
    SELECT s.*, p.name AS project_name, t.title AS task_title
    FROM code_snippets s
    LEFT JOIN projects p ON p.id = s.project_id
    LEFT JOIN tasks t ON t.id = s.task_id
"""


def list_snippets(
    conn: sqlite3.Connection,
    owner_id: str,
    q: str | None = None,
    language: str | None = None,
    project_id: str | None = None,
    limit: int = 500,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(rows, total)``, newest first. ``language="all"`` disables the filter."""
    if language not in (None, "", "all") and language not in SNIPPET_LANGUAGES:
        raise HTTPException(status_code=400, detail=f"Unsupported language '{language}'")
    where, params = build_where_clause(
        owner_id=owner_id,
        owner_column="s.owner_id",
        equals={"s.language": language, "s.project_id": project_id},
        search=q,
        search_columns=["s.title", "s.code"],
    )
    total = conn.execute(f"SELECT COUNT(*) FROM code_snippets s {where}", params).fetchone()[0]
    rows = query_to_dicts(
        conn, f"{_SELECT} {where} ORDER BY s.created_at DESC LIMIT ? OFFSET ?",
        params + [limit, offset],
    )
    return rows, total


def language_counts(conn: sqlite3.Connection, owner_id: str) -> list[dict[str, Any]]:
    """Every supported language (fixed order) with the user's snippet count."""
    counts = {
        r["language"]: r["n"]
        for r in query_to_dicts(
            conn,
            "SELECT language, COUNT(*) AS n FROM code_snippets WHERE owner_id = ? GROUP BY language",
            (owner_id,),
        )
    }
    return [
        {"value": value, "label": label, "count": counts.get(value, 0)}
        for value, label in SNIPPET_LANGUAGES.items()
    ]


def get_snippet(conn: sqlite3.Connection, owner_id: str, snippet_id: str) -> dict[str, Any]:
    row = query_one(conn, f"{_SELECT} WHERE s.id = ? AND s.owner_id = ?", (snippet_id, owner_id))
    if row is None:
        raise HTTPException(status_code=404, detail="Snippet not found")
    return row


def _check_links(conn: sqlite3.Connection, owner_id: str, values: dict[str, Any]) -> None:
    if values.get("project_id"):
        require_owned(conn, "projects", values["project_id"], owner_id, "Project")
    if values.get("task_id"):
        require_owned(conn, "tasks", values["task_id"], owner_id, "Task")


def create_snippet(conn: sqlite3.Connection, owner_id: str, body: SnippetIn) -> dict[str, Any]:
    values = body.model_dump()
    _check_links(conn, owner_id, values)
    now = utc_now()
    snippet_id = new_id()
    insert_row(conn, "code_snippets", {
        "id": snippet_id, "owner_id": owner_id, **values,
        "created_at": now, "updated_at": now,
    })
    conn.commit()
    cache.invalidate(owner_id)
    return get_snippet(conn, owner_id, snippet_id)


def update_snippet(conn: sqlite3.Connection, owner_id: str, snippet_id: str,
                   body: SnippetUpdate) -> dict[str, Any]:
    require_owned(conn, "code_snippets", snippet_id, owner_id, "Snippet")
    changes = body.model_dump(exclude_unset=True)
    for required in ("title", "language", "code"):
        if required in changes and changes[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be empty")
    for link in ("project_id", "task_id"):
        if link in changes and not changes[link]:
            changes[link] = None
    _check_links(conn, owner_id, changes)
    update_row(conn, "code_snippets", snippet_id, changes)
    conn.commit()
    cache.invalidate(owner_id)
    return get_snippet(conn, owner_id, snippet_id)


def delete_snippet(conn: sqlite3.Connection, owner_id: str, snippet_id: str) -> None:
    require_owned(conn, "code_snippets", snippet_id, owner_id, "Snippet")
    conn.execute("DELETE FROM code_snippets WHERE id = ?", (snippet_id,))
    conn.commit()
    cache.invalidate(owner_id)


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.get("", response_model=Page[SnippetOut], summary="List snippets")
def list_snippets_endpoint(
    q: str | None = Query(None, description="Case-insensitive match on title or code"),
    language: str | None = Query(None, description="Language value or 'all'"),
    project_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Page[SnippetOut]:
    rows, total = list_snippets(conn, user["id"], q, language, project_id, limit, offset)
    return Page[SnippetOut](total=total, limit=limit, offset=offset,
                            items=[SnippetOut(**r) for r in rows])


@router.get("/languages", response_model=list[LanguageOut], summary="Supported languages")
def languages_endpoint(
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[LanguageOut]:
    return [LanguageOut(**r) for r in language_counts(conn, user["id"])]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SnippetOut,
             summary="Create snippet")
def create_snippet_endpoint(
    body: SnippetIn,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> SnippetOut:
    return SnippetOut(**create_snippet(conn, user["id"], body))


@router.get("/{snippet_id}", response_model=SnippetOut, summary="Get snippet")
def get_snippet_endpoint(
    snippet_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> SnippetOut:
    return SnippetOut(**get_snippet(conn, user["id"], snippet_id))


@router.patch("/{snippet_id}", response_model=SnippetOut, summary="Update snippet")
def update_snippet_endpoint(
    snippet_id: str,
    body: SnippetUpdate,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> SnippetOut:
    return SnippetOut(**update_snippet(conn, user["id"], snippet_id, body))


@router.delete("/{snippet_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete snippet")
def delete_snippet_endpoint(
    snippet_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Response:
    delete_snippet(conn, user["id"], snippet_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
