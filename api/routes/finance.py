"""
Finance endpoints: income/expense ledger, totals, project budgets, export.

    GET    /api/v1/finance/transactions          list (project_id, type, date range)
    POST   /api/v1/finance/transactions          add entry (201)
    DELETE /api/v1/finance/transactions/{id}     remove entry
    GET    /api/v1/finance/summary               total income / expense / net profit
    GET    /api/v1/finance/projects              budget rows for every project
    PUT    /api/v1/finance/projects/{project_id} create or replace a project budget
    GET    /api/v1/finance/export                CSV or Excel download of the ledger

Totals are plain sums over the user's ledger entries:
net_profit = total_income - total_expense.

The export materialises the ledger before streaming because the request's
database connection is closed once the endpoint returns.
"""

import csv
import io
import sqlite3
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse

from api import cache
from api.auth import get_current_user
from api.database import get_db, require_owned
from api.models import (
    FinanceSummary,
    Page,
    ProjectFinanceIn,
    ProjectFinanceOut,
    TransactionIn,
    TransactionOut,
)
from utils.config import TRANSACTION_TYPES
from utils.database import insert_row, new_id, query_one, query_to_dicts, update_row, utc_now
from utils.query import build_where_clause

router = APIRouter(prefix="/finance", tags=["finance"])

EXPORT_HEADER = ["Date", "Project", "Type", "Description", "Amount"]
EXPORT_PAGE_SIZE = 1000

_TXN_SELECT = """
    SELECT f.*, p.name AS project_name
    FROM project_finance_transactions f
    JOIN projects p ON p.id = f.project_id
"""


def _txn_where(
    owner_id: str,
    project_id: str | None = None,
    type_filter: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    q: str | None = None,
) -> tuple[str, list[Any]]:
    if type_filter not in (None, "", "all") and type_filter not in TRANSACTION_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid type '{type_filter}'")
    return build_where_clause(
        owner_id=owner_id,
        owner_column="f.owner_id",
        equals={"f.project_id": project_id, "f.type": type_filter},
        search=q,
        search_columns=["f.description", "p.name"],
        date_column="f.date",
        date_from=date_from,
        date_to=date_to,
    )


def list_transactions(
    conn: sqlite3.Connection,
    owner_id: str,
    project_id: str | None = None,
    type_filter: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    q: str | None = None,
    limit: int = 1000,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(rows, total)``, newest entry date first."""
    where, params = _txn_where(owner_id, project_id, type_filter, date_from, date_to, q)
    total = conn.execute(
        f"SELECT COUNT(*) FROM project_finance_transactions f "
        f"JOIN projects p ON p.id = f.project_id {where}",
        params,
    ).fetchone()[0]
    rows = query_to_dicts(
        conn,
        f"{_TXN_SELECT} {where} ORDER BY f.date DESC, f.created_at DESC LIMIT ? OFFSET ?",
        params + [limit, offset],
    )
    return rows, total


def finance_summary(
    conn: sqlite3.Connection,
    owner_id: str,
    project_id: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict[str, Any]:
    """Sum income and expense amounts over the matching ledger entries."""
    where, params = _txn_where(owner_id, project_id, None, date_from, date_to)
    row = query_one(
        conn,
        f"""SELECT
              COALESCE(SUM(CASE WHEN f.type = 'income'  THEN f.amount END), 0) AS total_income,
              COALESCE(SUM(CASE WHEN f.type = 'expense' THEN f.amount END), 0) AS total_expense,
              COUNT(*) AS transaction_count
            FROM project_finance_transactions f
            JOIN projects p ON p.id = f.project_id
            {where}""",
        params,
    )
    income = round(row["total_income"], 2)
    expense = round(row["total_expense"], 2)
    return {
        "total_income": income,
        "total_expense": expense,
        "net_profit": round(income - expense, 2),
        "transaction_count": row["transaction_count"],
    }


def add_transaction(conn: sqlite3.Connection, owner_id: str, body: TransactionIn) -> dict[str, Any]:
    require_owned(conn, "projects", body.project_id, owner_id, "Project")
    txn_id = new_id()
    insert_row(conn, "project_finance_transactions", {
        "id": txn_id, "owner_id": owner_id, **body.model_dump(), "created_at": utc_now(),
    })
    conn.commit()
    cache.invalidate(owner_id)
    return query_one(conn, f"{_TXN_SELECT} WHERE f.id = ?", (txn_id,))


def delete_transaction(conn: sqlite3.Connection, owner_id: str, txn_id: str) -> None:
    require_owned(conn, "project_finance_transactions", txn_id, owner_id, "Transaction")
    conn.execute("DELETE FROM project_finance_transactions WHERE id = ?", (txn_id,))
    conn.commit()
    cache.invalidate(owner_id)


_BUDGET_SELECT = """
    SELECT p.id AS project_id, p.name AS project_name, p.status AS project_status,
           COALESCE(pf.budget, 0) AS budget,
           COALESCE(pf.received, 0) AS received,
           COALESCE(pf.spent, 0) AS spent,
           COALESCE((SELECT SUM(amount) FROM project_finance_transactions t
                      WHERE t.project_id = p.id AND t.type = 'income'), 0) AS income,
           COALESCE((SELECT SUM(amount) FROM project_finance_transactions t
                      WHERE t.project_id = p.id AND t.type = 'expense'), 0) AS expense
    FROM projects p
    LEFT JOIN project_finance pf ON pf.project_id = p.id
"""


def _with_remaining(row: dict[str, Any]) -> dict[str, Any]:
    row["remaining"] = round(row["budget"] - row["spent"], 2)
    return row


def list_project_finances(conn: sqlite3.Connection, owner_id: str) -> list[dict[str, Any]]:
    """One budget row per project (zeros where no budget was set)."""
    rows = query_to_dicts(
        conn, f"{_BUDGET_SELECT} WHERE p.owner_id = ? ORDER BY p.name COLLATE NOCASE", (owner_id,),
    )
    return [_with_remaining(r) for r in rows]


def get_project_finance(conn: sqlite3.Connection, owner_id: str, project_id: str) -> dict[str, Any]:
    row = query_one(conn, f"{_BUDGET_SELECT} WHERE p.id = ? AND p.owner_id = ?",
                    (project_id, owner_id))
    if row is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return _with_remaining(row)


def upsert_project_finance(conn: sqlite3.Connection, owner_id: str, project_id: str,
                           body: ProjectFinanceIn) -> dict[str, Any]:
    require_owned(conn, "projects", project_id, owner_id, "Project")
    existing = query_one(conn, "SELECT id FROM project_finance WHERE project_id = ?", (project_id,))
    if existing:
        update_row(conn, "project_finance", existing["id"], body.model_dump())
    else:
        now = utc_now()
        insert_row(conn, "project_finance", {
            "id": new_id(), "owner_id": owner_id, "project_id": project_id,
            **body.model_dump(), "created_at": now, "updated_at": now,
        })
    conn.commit()
    cache.invalidate(owner_id)
    return get_project_finance(conn, owner_id, project_id)


def export_rows(rows: list[dict[str, Any]]) -> list[list[Any]]:
    """Ledger rows in EXPORT_HEADER column order."""
    return [
        [r["date"], r.get("project_name") or "", r["type"], r["description"], r["amount"]]
        for r in rows
    ]


def export_csv(rows: list[dict[str, Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    writer.writerows(export_rows(rows))
    return buf.getvalue()


def export_xlsx(rows: list[dict[str, Any]], summary: dict[str, Any]) -> bytes:
    import openpyxl

    wb = openpyxl.Workbook(write_only=True)
    ws = wb.create_sheet("Transactions")
    ws.append(EXPORT_HEADER)
    for line in export_rows(rows):
        ws.append(line)
    meta = wb.create_sheet("Summary")
    meta.append(["Export Date", datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")])
    meta.append(["Total Income", summary["total_income"]])
    meta.append(["Total Expense", summary["total_expense"]])
    meta.append(["Net Profit", summary["net_profit"]])
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.get("/transactions", response_model=Page[TransactionOut], summary="List ledger entries")
def list_transactions_endpoint(
    project_id: str | None = Query(None),
    txn_type: str | None = Query(None, alias="type", description="income | expense | all"),
    date_from: date | None = Query(None, description="Inclusive lower bound (YYYY-MM-DD)"),
    date_to: date | None = Query(None, description="Inclusive upper bound (YYYY-MM-DD)"),
    q: str | None = Query(None, description="Match on description or project name"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Page[TransactionOut]:
    rows, total = list_transactions(
        conn, user["id"], project_id, txn_type,
        date_from.isoformat() if date_from else None,
        date_to.isoformat() if date_to else None,
        q, limit, offset,
    )
    return Page[TransactionOut](total=total, limit=limit, offset=offset,
                                items=[TransactionOut(**r) for r in rows])


@router.post("/transactions", status_code=status.HTTP_201_CREATED,
             response_model=TransactionOut, summary="Add ledger entry")
def add_transaction_endpoint(
    body: TransactionIn,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> TransactionOut:
    return TransactionOut(**add_transaction(conn, user["id"], body))


@router.delete("/transactions/{txn_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="Delete ledger entry")
def delete_transaction_endpoint(
    txn_id: str,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> Response:
    delete_transaction(conn, user["id"], txn_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/summary", response_model=FinanceSummary, summary="Income, expense and net profit")
def summary_endpoint(
    project_id: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> FinanceSummary:
    return FinanceSummary(**finance_summary(
        conn, user["id"], project_id,
        date_from.isoformat() if date_from else None,
        date_to.isoformat() if date_to else None,
    ))


@router.get("/projects", response_model=list[ProjectFinanceOut], summary="Project budgets")
def project_finances_endpoint(
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[ProjectFinanceOut]:
    return [ProjectFinanceOut(**r) for r in list_project_finances(conn, user["id"])]


@router.put("/projects/{project_id}", response_model=ProjectFinanceOut,
            summary="Set project budget")
def upsert_project_finance_endpoint(
    project_id: str,
    body: ProjectFinanceIn,
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> ProjectFinanceOut:
    return ProjectFinanceOut(**upsert_project_finance(conn, user["id"], project_id, body))


@router.get("/export", summary="Download the ledger as CSV or Excel")
def export_endpoint(
    fmt: str = Query("csv", pattern="^(csv|xlsx)$", description="Output format"),
    project_id: str | None = Query(None),
    txn_type: str | None = Query(None, alias="type"),
    user: dict = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> StreamingResponse:
    """Export every matching ledger entry (same ordering as the list).

    Rows are read in pages of ``EXPORT_PAGE_SIZE`` until ``X-Total-Count`` is reached.
    """
    rows, total = list_transactions(conn, user["id"], project_id, txn_type,
                                    limit=EXPORT_PAGE_SIZE)
    while len(rows) < total:
        page, _ = list_transactions(conn, user["id"], project_id, txn_type,
                                    limit=EXPORT_PAGE_SIZE, offset=len(rows))
        if not page:
            break
        rows.extend(page)
    stamp = date.today().isoformat()
    headers = {"X-Total-Count": str(total)}

    if fmt == "xlsx":
        payload = export_xlsx(rows, finance_summary(conn, user["id"], project_id))
        return StreamingResponse(
            io.BytesIO(payload),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename=finance_export_{stamp}.xlsx",
                     **headers},
        )

    return StreamingResponse(
        iter([export_csv(rows)]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=finance_export_{stamp}.csv",
                 **headers},
    )
