"""
Task endpoints.

    GET    /api/v1/tasks               list (project_id, status, priority, q, parent_task_id)
    GET    /api/v1/tasks/upcoming      open tasks with a due date, soonest first
    POST   /api/v1/tasks               create (201); project must exist
    GET    /api/v1/tasks/{id}          task + subtasks
    PATCH  /api/v1/tasks/{id}          partial update
    DELETE /api/v1/tasks/{id}          delete; subtasks cascade
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from api import cache
from api.auth import get_current_user
from api.database import get_db, require_owned
from api.models import Page, TaskIn, TaskOut, TaskUpdate
from utils.config import TASK_PRIORITIES, TASK_STATUSES
from utils.database import insert_row, new_id, query_one, query_to_dicts, update_row, utc_now
from utils.query import build_order_clause, build_where_clause

router = APIRouter(prefix="/tasks", tags=["tasks"])

_ALLOWED_SORT = {
    "created_at": "t.created_at",
    "due_date": "t.due_date IS NULL, t.due_date",
    "priority": "CASE t.priority WHEN 'high' THEN 3 WHEN 'medium' THEN 2 ELSE 1 END",
    "status": "t.status",
    "title": "t.title COLLATE NOCASE",
}

_SEARCH_COLUMNS = ["t.title", "t.description"]

_SELECT = """
    SELECT t.*, p.name AS project_name,
           (SELECT COUNT(*) FROM tasks s WHERE s.parent_task_id = t.id) AS subtask_count,
           (SELECT COUNT(*) FROM tasks s
             WHERE s.parent_task_id = t.id AND s.status = 'done') AS completed_subtask_count
    FROM tasks t
    JOIN projects p ON p.id = t.project_id
"""


def _check_vocab(value: str | None, allowed: tuple[str, ...], label: str) -> None:
    if value not in (None, "", "all") and value not in allowed:
        raise HTTPException(status_code=400, detail=f"Invalid {label} '{value}'")


def list_tasks(
    conn: sqlite3.Connection,
    owner_id: str,
    project_id: str | None = None,
    status_filter: str | None = None,
    priority: str | None = None,
    q: str | None = None,
    parent_task_id: str | None = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    limit: int = 500,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(rows, total)`` for the owner's tasks matching the filters."""
    _check_vocab(status_filter, TASK_STATUSES, "status")
    _check_vocab(priority, TASK_PRIORITIES, "priority")
    where, params = build_where_clause(
        owner_id=owner_id,
        owner_column="t.owner_id",
        equals={
            "t.project_id": project_id,
            "t.status": status_filter,
            "t.priority": priority,
            "t.parent_task_id": parent_task_id,
        },
        search=q,
        search_columns=_SEARCH_COLUMNS,
    )
    total = conn.execute(f"SELECT COUNT(*) FROM tasks t {where}", params).fetchone()[0]
    order = build_order_clause(sort_by, sort_dir, _ALLOWED_SORT, tiebreak="t.created_at")
    rows = query_to_dicts(conn, f"{_SELECT} {where} {order} LIMIT ? OFFSET ?",
                          params + [limit, offset])
    return rows, total


def upcoming_tasks(conn: sqlite3.Connection, owner_id: str, limit: int = 4) -> list[dict[str, Any]]:
    """Tasks not done that have a due date, earliest (including overdue) first."""
    return query_to_dicts(
        conn,
        f"""{_SELECT}
        WHERE t.owner_id = ? AND t.status != 'done' AND t.due_date IS NOT NULL
        ORDER BY t.due_date ASC, t.created_at ASC
        LIMIT ?""",
        (owner_id, limit),
    )


def get_task(conn: sqlite3.Connection, owner_id: str, task_id: str) -> dict[str, Any]:
    row = query_one(conn, f"{_SELECT} WHERE t.id = ? AND t.owner_id = ?", (task_id, owner_id))
    if row is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return row


def create_task(conn: sqlite3.Connection, owner_id: str, body: TaskIn) -> dict[str, Any]:
    require_owned(conn, "projects", body.project_id, owner_id, "Project")
    if body.parent_task_id:
        parent = require_owned(conn, "tasks", body.parent_task_id, owner_id, "Parent task")
        if parent["project_id"] != body.project_id:
            raise HTTPException(status_code=400,
                                detail="Parent task belongs to a different project")
    now = utc_now()
    task_id = new_id()
    insert_row(conn, "tasks", {
        "id": task_id, "owner_id": owner_id, **body.model_dump(),
        "created_at": now, "updated_at": now,
    })
    # Touch the project so it surfaces in "recent projects".
    update_row(conn, "projects", body.project_id, {})
    conn.commit()
    cache.invalidate(owner_id)
    return get_task(conn, owner_id, task_id)


def update_task(conn: sqlite3.Connection, owner_id: str, task_id: str,
                body: TaskUpdate) -> dict[str, Any]:
    current = require_owned(conn, "tasks", task_id, owner_id, "Task")
    changes = body.model_dump(exclude_unset=True)
    for required in ("title", "status", "priority"):
        if required in changes and changes[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be empty")
    update_row(conn, "tasks", task_id, changes)
    update_row(conn, "projects", current["project_id"], {})
    conn.commit()
    cache.invalidate(owner_id)
    return get_task(conn, owner_id, task_id)


def delete_task(conn: sqlite3.Connection, owner_id: str, task_id: str) -> None:
    current = require_owned(conn, "tasks", task_id, owner_id, "Task")
    conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
    update_row(conn, "projects", current["project_id"], {})
    conn.commit()
    cache.invalidate(owner_id)


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.get("", response_model=Page[TaskOut], summary="List tasks")
def list_tasks_endpoint(
    project_id: str | None = Query(None),
    task_status: str | None = Query(None, alias="status", description=" | ".join(TASK_STATUSES)),
    priority: str | None = Query(None, description=" | ".join(TASK_PRIORITIES)),
    q: str | None = Query(None, description="Case-insensitive match on title or description"),
    parent_task_id: str | None = Query(None, description="Only subtasks of this task"),
    sort_by: str = Query("created_at", description=f"One of: {', '.join(_ALLOWED_SORT)}"),
    sort_dir: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Page[TaskOut]:
    if sort_by not in _ALLOWED_SORT:
        raise HTTPException(status_code=400, detail=f"Invalid sort_by '{sort_by}'")
    rows, total = list_tasks(conn, user["id"], project_id, task_status, priority, q,
                             parent_task_id, sort_by, sort_dir, limit, offset)
    return Page[TaskOut](total=total, limit=limit, offset=offset,
                         items=[TaskOut(**r) for r in rows])


@router.get("/upcoming", response_model=list[TaskOut], summary="Upcoming tasks")
def upcoming_tasks_endpoint(
    limit: int = Query(4, ge=1, le=100),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[TaskOut]:
    return [TaskOut(**r) for r in upcoming_tasks(conn, user["id"], limit)]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TaskOut,
             summary="Create task")
def create_task_endpoint(
    body: TaskIn,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> TaskOut:
    return TaskOut(**create_task(conn, user["id"], body))


@router.get("/{task_id}", summary="Task detail with subtasks",
            responses={404: {"description": "Task not found"}})
def get_task_endpoint(
    task_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict:
    task = TaskOut(**get_task(conn, user["id"], task_id))
    subtasks, _ = list_tasks(conn, user["id"], parent_task_id=task_id,
                             sort_by="created_at", sort_dir="asc")
    return {**task.model_dump(), "subtasks": [TaskOut(**s).model_dump() for s in subtasks]}


@router.patch("/{task_id}", response_model=TaskOut, summary="Update task")
def update_task_endpoint(
    task_id: str,
    body: TaskUpdate,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> TaskOut:
    return TaskOut(**update_task(conn, user["id"], task_id, body))


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete task")
def delete_task_endpoint(
    task_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Response:
    delete_task(conn, user["id"], task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
