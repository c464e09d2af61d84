"""
Project endpoints.

    GET    /api/v1/projects                 list (q, status, client_id, sort, paging)
    POST   /api/v1/projects                 create (201)
    GET    /api/v1/projects/{id}            project + tasks + finance summary
    PATCH  /api/v1/projects/{id}            partial update
    DELETE /api/v1/projects/{id}            delete; tasks and ledger rows cascade
    GET    /api/v1/projects/{id}/tasks      the project's tasks

Progress is derived from tasks: round(100 * done / total). A project
without tasks reports 0, or 100 once it is marked completed.
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from api import cache
from api.auth import get_current_user
from api.database import get_db, require_owned
from api.models import Page, ProjectFinanceOut, ProjectIn, ProjectOut, ProjectUpdate, TaskOut
from api.routes.finance import get_project_finance
from api.routes.tasks import list_tasks
from utils.config import PROJECT_STATUSES
from utils.database import insert_row, new_id, query_one, query_to_dicts, update_row, utc_now
from utils.query import build_order_clause, build_where_clause

router = APIRouter(prefix="/projects", tags=["projects"])

_ALLOWED_SORT = {
    "created_at": "p.created_at",
    "updated_at": "p.updated_at",
    "name": "p.name COLLATE NOCASE",
    "status": "p.status",
    "start_date": "p.start_date",
    "end_date": "p.end_date",
}

_SEARCH_COLUMNS = ["p.name", "p.description"]

_SELECT = """
    SELECT p.*, c.name AS client_name,
           (SELECT COUNT(*) FROM tasks t WHERE t.project_id = p.id) AS task_count,
           (SELECT COUNT(*) FROM tasks t
             WHERE t.project_id = p.id AND t.status = 'done') AS completed_task_count
    FROM projects p
    LEFT JOIN clients c ON c.id = p.client_id
"""


def compute_progress(task_count: int, completed: int, project_status: str | None = None) -> int:
    """Percent of tasks done, 0-100."""
    if not task_count:
        return 100 if project_status == "completed" else 0
    return round(100 * completed / task_count)


def _decorate(row: dict[str, Any]) -> dict[str, Any]:
    row["progress"] = compute_progress(
        row.get("task_count") or 0, row.get("completed_task_count") or 0, row.get("status"),
    )
    return row


def list_projects(
    conn: sqlite3.Connection,
    owner_id: str,
    q: str | None = None,
    status_filter: str | None = None,
    client_id: str | None = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    limit: int = 500,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(rows, total)`` for the owner's projects.

    ``q`` matches name or description case-insensitively; ``status_filter``
    of ``None`` or ``"all"`` disables the status filter.
    """
    if status_filter not in (None, "", "all") and status_filter not in PROJECT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status '{status_filter}'")
    where, params = build_where_clause(
        owner_id=owner_id,
        owner_column="p.owner_id",
        equals={"p.status": status_filter, "p.client_id": client_id},
        search=q,
        search_columns=_SEARCH_COLUMNS,
    )
    total = conn.execute(f"SELECT COUNT(*) FROM projects p {where}", params).fetchone()[0]
    order = build_order_clause(sort_by, sort_dir, _ALLOWED_SORT, tiebreak="p.id")
    rows = query_to_dicts(conn, f"{_SELECT} {where} {order} LIMIT ? OFFSET ?",
                          params + [limit, offset])
    return [_decorate(r) for r in rows], total


def recent_projects(conn: sqlite3.Connection, owner_id: str, limit: int = 3) -> list[dict[str, Any]]:
    """Most recently touched projects first."""
    rows, _ = list_projects(conn, owner_id, sort_by="updated_at", sort_dir="desc", limit=limit)
    return rows


def get_project(conn: sqlite3.Connection, owner_id: str, project_id: str) -> dict[str, Any]:
    row = query_one(conn, f"{_SELECT} WHERE p.id = ? AND p.owner_id = ?", (project_id, owner_id))
    if row is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return _decorate(row)


def _check_client(conn: sqlite3.Connection, owner_id: str, client_id: str | None) -> None:
    if client_id:
        require_owned(conn, "clients", client_id, owner_id, "Client")


def create_project(conn: sqlite3.Connection, owner_id: str, body: ProjectIn) -> dict[str, Any]:
    _check_client(conn, owner_id, body.client_id)
    now = utc_now()
    project_id = new_id()
    insert_row(conn, "projects", {
        "id": project_id, "owner_id": owner_id, **body.model_dump(),
        "created_at": now, "updated_at": now,
    })
    conn.commit()
    cache.invalidate(owner_id)
    return get_project(conn, owner_id, project_id)


def update_project(conn: sqlite3.Connection, owner_id: str, project_id: str,
                   body: ProjectUpdate) -> dict[str, Any]:
    current = require_owned(conn, "projects", project_id, owner_id, "Project")
    changes = body.model_dump(exclude_unset=True)
    for required in ("name", "status"):
        if required in changes and changes[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be empty")
    if changes.get("client_id"):
        _check_client(conn, owner_id, changes["client_id"])
    start = changes.get("start_date", current["start_date"])
    end = changes.get("end_date", current["end_date"])
    if start and end and str(end) < str(start):
        raise HTTPException(status_code=400, detail="End date cannot be before start date")
    update_row(conn, "projects", project_id, changes)
    conn.commit()
    cache.invalidate(owner_id)
    return get_project(conn, owner_id, project_id)


def delete_project(conn: sqlite3.Connection, owner_id: str, project_id: str) -> None:
    require_owned(conn, "projects", project_id, owner_id, "Project")
    conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
    conn.commit()
    cache.invalidate(owner_id)


def project_options(conn: sqlite3.Connection, owner_id: str) -> list[dict[str, Any]]:
    """``id``/``name`` pairs for select boxes, alphabetical."""
    return query_to_dicts(
        conn,
        "SELECT id, name FROM projects WHERE owner_id = ? ORDER BY name COLLATE NOCASE",
        (owner_id,),
    )


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.get("", response_model=Page[ProjectOut], summary="List projects")
def list_projects_endpoint(
    q: str | None = Query(None, description="Case-insensitive match on name or description"),
    project_status: str | None = Query(
        None, alias="status", description=f"all | {' | '.join(PROJECT_STATUSES)}"),
    client_id: str | None = Query(None, description="Only projects of this client"),
    sort_by: str = Query("created_at", description=f"One of: {', '.join(_ALLOWED_SORT)}"),
    sort_dir: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Page[ProjectOut]:
    if sort_by not in _ALLOWED_SORT:
        raise HTTPException(status_code=400, detail=f"Invalid sort_by '{sort_by}'")
    rows, total = list_projects(conn, user["id"], q, project_status, client_id,
                                sort_by, sort_dir, limit, offset)
    return Page[ProjectOut](total=total, limit=limit, offset=offset,
                            items=[ProjectOut(**r) for r in rows])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ProjectOut,
             summary="Create project")
def create_project_endpoint(
    body: ProjectIn,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> ProjectOut:
    return ProjectOut(**create_project(conn, user["id"], body))


@router.get("/{project_id}", summary="Project detail",
            responses={404: {"description": "Project not found"}})
def get_project_endpoint(
    project_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    """Project row plus its tasks and budget/ledger summary."""
    project = ProjectOut(**get_project(conn, user["id"], project_id))
    tasks, _ = list_tasks(conn, user["id"], project_id=project_id, sort_by="due_date", sort_dir="asc")
    finance = get_project_finance(conn, user["id"], project_id)
    return {
        **project.model_dump(),
        "tasks": [TaskOut(**t).model_dump() for t in tasks],
        "finance": ProjectFinanceOut(**finance).model_dump(),
    }


@router.get("/{project_id}/tasks", response_model=list[TaskOut], summary="Project tasks")
def project_tasks_endpoint(
    project_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[TaskOut]:
    require_owned(conn, "projects", project_id, user["id"], "Project")
    tasks, _ = list_tasks(conn, user["id"], project_id=project_id, sort_by="due_date", sort_dir="asc")
    return [TaskOut(**t) for t in tasks]


@router.patch("/{project_id}", response_model=ProjectOut, summary="Update project")
def update_project_endpoint(
    project_id: str,
    body: ProjectUpdate,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> ProjectOut:
    return ProjectOut(**update_project(conn, user["id"], project_id, body))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="Delete project")
def delete_project_endpoint(
    project_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Response:
    delete_project(conn, user["id"], project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
