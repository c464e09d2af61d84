"""
Client endpoints.

    GET    /api/v1/clients              list (q searches name, company, email)
    POST   /api/v1/clients              create (201)
    GET    /api/v1/clients/{id}         client + its projects
    PATCH  /api/v1/clients/{id}         partial update
    DELETE /api/v1/clients/{id}         delete; projects keep existing, unlinked

The list/create/update/delete functions are shared with the HTML views.
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from api import cache
from api.auth import get_current_user
from api.database import get_db, require_owned
from api.models import ClientIn, ClientOut, ClientUpdate, Page, ProjectOut
from api.routes.projects import list_projects
from utils.database import insert_row, new_id, query_one, query_to_dicts, update_row, utc_now
from utils.query import build_order_clause, build_where_clause

router = APIRouter(prefix="/clients", tags=["clients"])

_ALLOWED_SORT = {
    "name": "c.name COLLATE NOCASE",
    "company": "c.company COLLATE NOCASE",
    "created_at": "c.created_at",
    "projects_count": "projects_count",
}

_SEARCH_COLUMNS = ["c.name", "c.company", "c.email"]

_SELECT = """
    SELECT c.*,
           (SELECT COUNT(*) FROM projects p WHERE p.client_id = c.id) AS projects_count
    FROM clients c
"""


def list_clients(
    conn: sqlite3.Connection,
    owner_id: str,
    q: str | None = None,
    status_filter: str | None = None,
    sort_by: str = "name",
    sort_dir: str = "asc",
    limit: int = 500,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(rows, total)`` for the owner's clients matching the filters."""
    where, params = build_where_clause(
        owner_id=owner_id,
        owner_column="c.owner_id",
        equals={"c.status": status_filter},
        search=q,
        search_columns=_SEARCH_COLUMNS,
    )
    total = conn.execute(f"SELECT COUNT(*) FROM clients c {where}", params).fetchone()[0]
    order = build_order_clause(sort_by, sort_dir, _ALLOWED_SORT, default_sort="name",
                               tiebreak="c.created_at DESC")
    rows = query_to_dicts(conn, f"{_SELECT} {where} {order} LIMIT ? OFFSET ?",
                          params + [limit, offset])
    return rows, total


def get_client(conn: sqlite3.Connection, owner_id: str, client_id: str) -> dict[str, Any]:
    row = query_one(conn, f"{_SELECT} WHERE c.id = ? AND c.owner_id = ?", (client_id, owner_id))
    if row is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return row


def create_client(conn: sqlite3.Connection, owner_id: str, body: ClientIn) -> dict[str, Any]:
    now = utc_now()
    client_id = new_id()
    insert_row(conn, "clients", {
        "id": client_id, "owner_id": owner_id, **body.model_dump(),
        "created_at": now, "updated_at": now,
    })
    conn.commit()
    cache.invalidate(owner_id)
    return get_client(conn, owner_id, client_id)


def update_client(conn: sqlite3.Connection, owner_id: str, client_id: str,
                  body: ClientUpdate) -> dict[str, Any]:
    require_owned(conn, "clients", client_id, owner_id, "Client")
    changes = body.model_dump(exclude_unset=True)
    for required in ("name", "status"):
        if required in changes and changes[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be empty")
    update_row(conn, "clients", client_id, changes)
    conn.commit()
    cache.invalidate(owner_id)
    return get_client(conn, owner_id, client_id)


def delete_client(conn: sqlite3.Connection, owner_id: str, client_id: str) -> None:
    require_owned(conn, "clients", client_id, owner_id, "Client")
    conn.execute("DELETE FROM clients WHERE id = ?", (client_id,))
    conn.commit()
    cache.invalidate(owner_id)


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.get("", response_model=Page[ClientOut], summary="List clients")
def list_clients_endpoint(
    q: str | None = Query(None, description="Case-insensitive match on name, company or email"),
    client_status: str | None = Query(None, alias="status", description="active | inactive | all"),
    sort_by: str = Query("name", description=f"One of: {', '.join(_ALLOWED_SORT)}"),
    sort_dir: str = Query("asc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Page[ClientOut]:
    if sort_by not in _ALLOWED_SORT:
        raise HTTPException(status_code=400, detail=f"Invalid sort_by '{sort_by}'")
    rows, total = list_clients(conn, user["id"], q, client_status, sort_by, sort_dir, limit, offset)
    return Page[ClientOut](total=total, limit=limit, offset=offset,
                           items=[ClientOut(**r) for r in rows])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ClientOut,
             summary="Create client")
def create_client_endpoint(
    body: ClientIn,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> ClientOut:
    return ClientOut(**create_client(conn, user["id"], body))


@router.get("/{client_id}", summary="Client with its projects",
            responses={404: {"description": "Client not found"}})
def get_client_endpoint(
    client_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    client = ClientOut(**get_client(conn, user["id"], client_id))
    projects, _ = list_projects(conn, user["id"], client_id=client_id)
    return {**client.model_dump(), "projects": [ProjectOut(**p).model_dump() for p in projects]}


@router.patch("/{client_id}", response_model=ClientOut, summary="Update client")
def update_client_endpoint(
    client_id: str,
    body: ClientUpdate,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> ClientOut:
    return ClientOut(**update_client(conn, user["id"], client_id, body))


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="Delete client")
def delete_client_endpoint(
    client_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Response:
    delete_client(conn, user["id"], client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
