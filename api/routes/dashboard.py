"""Dashboard summary endpoint for the overview page."""

import sqlite3
from datetime import date

from fastapi import APIRouter, Depends

from api.auth import get_current_user
from api.cache import dashboard_cache
from api.database import get_db
from api.models import DashboardSummary, ProjectOut, TaskOut
from api.routes.finance import finance_summary
from api.routes.projects import recent_projects
from api.routes.tasks import upcoming_tasks
from utils.database import query_one

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _month_bounds(today: date) -> tuple[str, str]:
    """First and last ISO day of *today*'s calendar month."""
    first = today.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    last = date.fromordinal(next_first.toordinal() - 1)
    return first.isoformat(), last.isoformat()


def dashboard_summary(conn: sqlite3.Connection, owner_id: str,
                      today: date | None = None) -> DashboardSummary:
    """Build the stat cards and lists for *owner_id*.

    Results are cached per user under ``("dashboard", owner_id)`` until the
    TTL lapses or a write invalidates them. Passing *today* bypasses the
    cache, which keeps month-boundary tests deterministic.
    """
    cache_key = ("dashboard", owner_id)
    if today is None:
        cached = dashboard_cache.get(cache_key)
        if cached is not None:
            return cached

    counts = query_one(
        conn,
        """SELECT
             COUNT(*) AS total_projects,
             COALESCE(SUM(status IN ('planning', 'in_progress')), 0) AS active_projects,
             COALESCE(SUM(status = 'completed'), 0) AS completed_projects,
             COALESCE(SUM(status = 'on_hold'), 0) AS on_hold_projects
           FROM projects WHERE owner_id = ?""",
        (owner_id,),
    )
    task_counts = query_one(
        conn,
        """SELECT COUNT(*) AS total_tasks,
                  COALESCE(SUM(status = 'done'), 0) AS completed_tasks
           FROM tasks WHERE owner_id = ?""",
        (owner_id,),
    )
    active_clients = conn.execute(
        "SELECT COUNT(*) FROM clients WHERE owner_id = ? AND status = 'active'",
        (owner_id,),
    ).fetchone()[0]

    month_from, month_to = _month_bounds(today or date.today())
    month = finance_summary(conn, owner_id, date_from=month_from, date_to=month_to)

    summary = DashboardSummary(
        **counts,
        **task_counts,
        active_clients=active_clients,
        revenue_this_month=month["total_income"],
        expenses_this_month=month["total_expense"],
        recent_projects=[ProjectOut(**p) for p in recent_projects(conn, owner_id, 3)],
        upcoming_tasks=[TaskOut(**t) for t in upcoming_tasks(conn, owner_id, 4)],
    )
    if today is None:
        dashboard_cache.set(cache_key, summary)
    return summary


@router.get("/summary", response_model=DashboardSummary, summary="Dashboard summary statistics")
def dashboard_summary_endpoint(
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> DashboardSummary:
    """Return the stat cards, the 3 most recently updated projects and the
    next 4 open tasks with a due date for the signed-in user."""
    return dashboard_summary(conn, user["id"])
