"""
Frontend HTML routes.

Serves the Jinja2 pages of the ProjectFlow dashboard. Pages reuse the data
functions of the JSON routers; forms post back here and follow
Post/Redirect/Get, reporting the outcome through a one-shot flash cookie.

Routes:
    GET  /                              dashboard.html
    GET  /projects                      projects.html (search, status filter, add forms)
    POST /projects                      create project
    GET  /projects/{id}                 project_detail.html (tasks, budget, ledger)
    POST /projects/{id}/update          edit project
    POST /projects/{id}/delete
    POST /tasks                         create task, back to ``next``
    POST /tasks/{id}/status             change task status
    POST /tasks/{id}/delete
    GET  /clients                       clients.html
    POST /clients, /clients/{id}/update, /clients/{id}/delete
    GET  /documents                     documents.html
    POST /documents                     multipart upload
    GET  /documents/{id}/download       303 to a signed storage URL
    POST /documents/{id}/delete
    GET  /finance                       finance.html
    POST /finance/transactions, /finance/transactions/{id}/delete
    POST /finance/budgets/{project_id}
    GET  /snippets                      snippets.html (language tabs, ?edit=id)
    POST /snippets, /snippets/{id}/update, /snippets/{id}/delete
    GET  /settings                      settings.html
    POST /settings/profile, /settings/password
    GET  /auth                          auth.html (?mode=signin|signup)
    POST /auth/signin, /auth/signup, /auth/signout

Anonymous visitors to any page except /auth are redirected (303) to /auth.
"""

import json
import logging
import sqlite3
from typing import Any
from urllib.parse import quote, unquote

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import (
    authenticate,
    change_password,
    create_user,
    end_session,
    get_optional_user,
    start_session,
    update_profile,
)
from api.database import get_db
from api.models import (
    ClientIn,
    ClientUpdate,
    PasswordChange,
    ProfileUpdate,
    ProjectFinanceIn,
    ProjectIn,
    ProjectUpdate,
    SignUpIn,
    SnippetIn,
    SnippetUpdate,
    TaskIn,
    TaskUpdate,
    TransactionIn,
)
from api.routes.clients import create_client, delete_client, list_clients, update_client
from api.routes.dashboard import dashboard_summary
from api.routes.documents import delete_document, download_url, get_document, list_documents, upload_document
from api.routes.finance import (
    add_transaction,
    delete_transaction,
    finance_summary,
    get_project_finance,
    list_project_finances,
    list_transactions,
    upsert_project_finance,
)
from api.routes.projects import (
    create_project,
    delete_project,
    get_project,
    list_projects,
    project_options,
    update_project,
)
from api.routes.snippets import create_snippet, delete_snippet, get_snippet, language_counts, list_snippets, update_snippet
from api.routes.tasks import create_task, delete_task, get_task, list_tasks, update_task
from api.settings import get_settings, get_storage
from utils.config import (
    CLIENT_STATUSES,
    PROJECT_STATUSES,
    SNIPPET_LANGUAGES,
    TASK_PRIORITIES,
    TASK_STATUSES,
    TRANSACTION_TYPES,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["frontend"])

FLASH_COOKIE = "projectflow_flash"

# Paths whose errors stay JSON even when raised from a browser.
_NON_HTML_PREFIXES = ("/api/", "/storage/", "/static/", "/health", "/docs", "/redoc", "/openapi")

# Templates instance is set by create_app() after mounting.
_templates: Jinja2Templates | None = None


def set_templates(t: Jinja2Templates) -> None:
    global _templates
    _templates = t


def _tmpl() -> Jinja2Templates:
    if _templates is None:
        raise RuntimeError("Templates not initialised; call set_templates() first")
    return _templates


class LoginRequired(Exception):
    """Raised by page dependencies when nobody is signed in."""


def require_page_user(user: dict | None = Depends(get_optional_user)) -> dict:
    if user is None:
        raise LoginRequired()
    return user


# ── Flash messages + rendering ────────────────────────────────────────────────

def _error_message(exc: Exception) -> str:
    """Short human-readable reason for a failed form submission."""
    if isinstance(exc, HTTPException):
        return str(exc.detail)
    if isinstance(exc, ValidationError):
        err = exc.errors()[0]
        field = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value").removeprefix("Value error, ")
        return f"{field}: {msg}" if field else msg
    return str(exc)


def _redirect(url: str, message: str | None = None, kind: str = "success") -> RedirectResponse:
    response = RedirectResponse(url, status_code=303)
    if message:
        payload = quote(json.dumps({"message": message, "kind": kind}))
        response.set_cookie(FLASH_COOKIE, payload, max_age=60, httponly=True,
                            samesite="lax", path="/")
    return response


def _fail(url: str, action: str, exc: Exception) -> RedirectResponse:
    logger.info("form failed action=%r reason=%s", action, _error_message(exc))
    return _redirect(url, f"Failed to {action}: {_error_message(exc)}", "error")


def _pop_flash(request: Request) -> dict | None:
    raw = request.cookies.get(FLASH_COOKIE)
    if not raw:
        return None
    try:
        data = json.loads(unquote(raw))
    except ValueError:
        return None
    return data if isinstance(data, dict) and "message" in data else None


def _render(request: Request, name: str, context: dict[str, Any],
            user: dict | None = None, status_code: int = 200) -> HTMLResponse:
    flash = _pop_flash(request)
    response = _tmpl().TemplateResponse(
        request, name, {"user": user, "flash": flash, **context}, status_code=status_code,
    )
    if flash is not None:
        response.delete_cookie(FLASH_COOKIE, path="/")
    return response


def _safe_next(url: str | None, default: str) -> str:
    """Only same-site relative paths are accepted as redirect targets."""
    if url and url.startswith("/") and not url.startswith("//"):
        return url
    return default


def _choice(value: str | None, allowed) -> str:
    return value if value in allowed else "all"


# ── Dashboard ─────────────────────────────────────────────────────────────────

@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def dashboard_page(
    request: Request,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    summary = dashboard_summary(conn, user["id"])
    return _render(request, "dashboard.html", {"active": "dashboard", "summary": summary}, user)


# ── Projects + tasks ──────────────────────────────────────────────────────────

@router.get("/projects", response_class=HTMLResponse, include_in_schema=False)
def projects_page(
    request: Request,
    q: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    status_filter = _choice(status_filter, PROJECT_STATUSES)
    projects, total = list_projects(conn, user["id"], q, status_filter)
    clients, _ = list_clients(conn, user["id"])
    return _render(request, "projects.html", {
        "active": "projects",
        "projects": projects,
        "total": total,
        "q": q or "",
        "status_filter": status_filter,
        "statuses": PROJECT_STATUSES,
        "task_statuses": TASK_STATUSES,
        "priorities": TASK_PRIORITIES,
        "clients": clients,
        "project_options": project_options(conn, user["id"]),
    }, user)


def _project_fields(name: str, description: str, status: str, start_date: str,
                    end_date: str, client_id: str) -> dict[str, Any]:
    return {"name": name, "description": description or None, "status": status,
            "start_date": start_date, "end_date": end_date, "client_id": client_id}


@router.post("/projects", include_in_schema=False)
def create_project_form(
    name: str = Form(""),
    description: str = Form(""),
    status: str = Form("planning"),
    start_date: str = Form(""),
    end_date: str = Form(""),
    client_id: str = Form(""),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        body = ProjectIn(**_project_fields(name, description, status, start_date, end_date, client_id))
        create_project(conn, user["id"], body)
    except (ValidationError, HTTPException) as exc:
        return _fail("/projects", "create project", exc)
    return _redirect("/projects", "Project created successfully!")


@router.get("/projects/{project_id}", response_class=HTMLResponse, include_in_schema=False)
def project_detail_page(
    project_id: str,
    request: Request,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    project = get_project(conn, user["id"], project_id)
    tasks, _ = list_tasks(conn, user["id"], project_id=project_id,
                          sort_by="due_date", sort_dir="asc")
    transactions, _ = list_transactions(conn, user["id"], project_id=project_id, limit=20)
    clients, _ = list_clients(conn, user["id"])
    return _render(request, "project_detail.html", {
        "active": "projects",
        "project": project,
        "tasks": tasks,
        "finance": get_project_finance(conn, user["id"], project_id),
        "transactions": transactions,
        "clients": clients,
        "statuses": PROJECT_STATUSES,
        "task_statuses": TASK_STATUSES,
        "priorities": TASK_PRIORITIES,
    }, user)


@router.post("/projects/{project_id}/update", include_in_schema=False)
def update_project_form(
    project_id: str,
    name: str = Form(""),
    description: str = Form(""),
    status: str = Form("planning"),
    start_date: str = Form(""),
    end_date: str = Form(""),
    client_id: str = Form(""),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    target = f"/projects/{project_id}"
    try:
        body = ProjectUpdate(**_project_fields(name, description, status, start_date, end_date, client_id))
        update_project(conn, user["id"], project_id, body)
    except (ValidationError, HTTPException) as exc:
        return _fail(target, "update project", exc)
    return _redirect(target, "Project updated successfully!")


@router.post("/projects/{project_id}/delete", include_in_schema=False)
def delete_project_form(
    project_id: str,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        delete_project(conn, user["id"], project_id)
    except HTTPException as exc:
        return _fail("/projects", "delete project", exc)
    return _redirect("/projects", "Project deleted")


@router.post("/tasks", include_in_schema=False)
def create_task_form(
    project_id: str = Form(""),
    title: str = Form(""),
    description: str = Form(""),
    status: str = Form("to_do"),
    priority: str = Form("medium"),
    due_date: str = Form(""),
    assignee: str = Form(""),
    parent_task_id: str = Form(""),
    next_url: str = Form("", alias="next"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    default = f"/projects/{project_id}" if project_id else "/projects"
    target = _safe_next(next_url, default)
    try:
        body = TaskIn(project_id=project_id, title=title, description=description,
                      status=status, priority=priority, due_date=due_date,
                      assignee=assignee, parent_task_id=parent_task_id)
        create_task(conn, user["id"], body)
    except (ValidationError, HTTPException) as exc:
        return _fail(target, "add task", exc)
    return _redirect(target, "Task created successfully!")


@router.post("/tasks/{task_id}/status", include_in_schema=False)
def task_status_form(
    task_id: str,
    status: str = Form(...),
    next_url: str = Form("", alias="next"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        task = get_task(conn, user["id"], task_id)
    except HTTPException as exc:
        return _fail(_safe_next(next_url, "/projects"), "update task", exc)
    target = _safe_next(next_url, f"/projects/{task['project_id']}")
    try:
        update_task(conn, user["id"], task_id, TaskUpdate(status=status))
    except (ValidationError, HTTPException) as exc:
        return _fail(target, "update task", exc)
    return _redirect(target, "Task updated")


@router.post("/tasks/{task_id}/delete", include_in_schema=False)
def delete_task_form(
    task_id: str,
    next_url: str = Form("", alias="next"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        task = get_task(conn, user["id"], task_id)
        delete_task(conn, user["id"], task_id)
    except HTTPException as exc:
        return _fail(_safe_next(next_url, "/projects"), "delete task", exc)
    return _redirect(_safe_next(next_url, f"/projects/{task['project_id']}"), "Task deleted")


# ── Clients ───────────────────────────────────────────────────────────────────

@router.get("/clients", response_class=HTMLResponse, include_in_schema=False)
def clients_page(
    request: Request,
    q: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    status_filter = _choice(status_filter, CLIENT_STATUSES)
    clients, total = list_clients(conn, user["id"], q, status_filter)
    return _render(request, "clients.html", {
        "active": "clients",
        "clients": clients,
        "total": total,
        "q": q or "",
        "status_filter": status_filter,
        "statuses": CLIENT_STATUSES,
    }, user)


@router.post("/clients", include_in_schema=False)
def create_client_form(
    name: str = Form(""),
    company: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    notes: str = Form(""),
    status: str = Form("active"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        body = ClientIn(name=name, company=company, email=email, phone=phone,
                        notes=notes, status=status)
        create_client(conn, user["id"], body)
    except (ValidationError, HTTPException) as exc:
        return _fail("/clients", "add client", exc)
    return _redirect("/clients", "Client added successfully!")


@router.post("/clients/{client_id}/update", include_in_schema=False)
def update_client_form(
    client_id: str,
    name: str = Form(""),
    company: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    notes: str = Form(""),
    status: str = Form("active"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        body = ClientUpdate(name=name, company=company or None, email=email or None,
                            phone=phone or None, notes=notes or None, status=status)
        update_client(conn, user["id"], client_id, body)
    except (ValidationError, HTTPException) as exc:
        return _fail("/clients", "update client", exc)
    return _redirect("/clients", "Client updated successfully!")


@router.post("/clients/{client_id}/delete", include_in_schema=False)
def delete_client_form(
    client_id: str,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        delete_client(conn, user["id"], client_id)
    except HTTPException as exc:
        return _fail("/clients", "delete client", exc)
    return _redirect("/clients", "Client deleted")


# ── Documents ─────────────────────────────────────────────────────────────────

@router.get("/documents", response_class=HTMLResponse, include_in_schema=False)
def documents_page(
    request: Request,
    q: str | None = Query(None),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    documents, total = list_documents(conn, user["id"], q)
    return _render(request, "documents.html", {
        "active": "documents",
        "documents": documents,
        "total": total,
        "q": q or "",
        "project_options": project_options(conn, user["id"]),
        "max_upload_mb": get_settings().max_upload_mb,
    }, user)


@router.post("/documents", include_in_schema=False)
def upload_document_form(
    file: UploadFile | None = File(None),
    name: str = Form(""),
    project_id: str = Form(""),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    if file is None or not file.filename:
        return _redirect("/documents", "Please select a file to upload", "error")
    data = file.file.read(get_settings().max_upload_bytes + 1)
    try:
        upload_document(conn, get_storage(), user["id"], file.filename, data,
                        file.content_type, name, project_id)
    except HTTPException as exc:
        return _fail("/documents", "upload document", exc)
    return _redirect("/documents", "Document uploaded successfully!")


@router.get("/documents/{document_id}/download", include_in_schema=False)
def download_document(
    document_id: str,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    document = get_document(conn, user["id"], document_id)
    return RedirectResponse(download_url(get_storage(), document).url, status_code=303)


@router.post("/documents/{document_id}/delete", include_in_schema=False)
def delete_document_form(
    document_id: str,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        delete_document(conn, get_storage(), user["id"], document_id)
    except HTTPException as exc:
        return _fail("/documents", "delete document", exc)
    return _redirect("/documents", "Document deleted successfully")


# ── Finance ───────────────────────────────────────────────────────────────────

@router.get("/finance", response_class=HTMLResponse, include_in_schema=False)
def finance_page(
    request: Request,
    project_id: str | None = Query(None),
    txn_type: str | None = Query(None, alias="type"),
    date_from: str | None = Query(None),
    date_to: str | None = Query(None),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    txn_type = _choice(txn_type, TRANSACTION_TYPES)
    project_id = project_id or None
    transactions, total = list_transactions(conn, user["id"], project_id, txn_type,
                                            date_from or None, date_to or None, limit=200)
    summary = finance_summary(conn, user["id"], project_id, date_from or None, date_to or None)
    export_query = "&".join(
        f"{k}={quote(v)}" for k, v in (("project_id", project_id), ("type", txn_type)) if v and v != "all"
    )
    return _render(request, "finance.html", {
        "active": "finance",
        "transactions": transactions,
        "total": total,
        "summary": summary,
        "budgets": list_project_finances(conn, user["id"]),
        "project_options": project_options(conn, user["id"]),
        "types": TRANSACTION_TYPES,
        "filters": {"project_id": project_id or "", "type": txn_type,
                    "date_from": date_from or "", "date_to": date_to or ""},
        "export_query": export_query,
    }, user)


@router.post("/finance/transactions", include_in_schema=False)
def add_transaction_form(
    project_id: str = Form(""),
    txn_type: str = Form("income", alias="type"),
    amount: str = Form(""),
    description: str = Form(""),
    txn_date: str = Form("", alias="date"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    fields: dict[str, Any] = {"project_id": project_id, "type": txn_type,
                              "amount": amount, "description": description}
    if txn_date:
        fields["date"] = txn_date
    try:
        add_transaction(conn, user["id"], TransactionIn(**fields))
    except (ValidationError, HTTPException) as exc:
        return _fail("/finance", "add transaction", exc)
    return _redirect("/finance", "Transaction added successfully!")


@router.post("/finance/transactions/{txn_id}/delete", include_in_schema=False)
def delete_transaction_form(
    txn_id: str,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        delete_transaction(conn, user["id"], txn_id)
    except HTTPException as exc:
        return _fail("/finance", "delete transaction", exc)
    return _redirect("/finance", "Transaction deleted")


@router.post("/finance/budgets/{project_id}", include_in_schema=False)
def budget_form(
    project_id: str,
    budget: str = Form(""),
    received: str = Form(""),
    spent: str = Form(""),
    next_url: str = Form("", alias="next"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    target = _safe_next(next_url, "/finance")
    try:
        body = ProjectFinanceIn(budget=budget or 0, received=received or 0, spent=spent or 0)
        upsert_project_finance(conn, user["id"], project_id, body)
    except (ValidationError, HTTPException) as exc:
        return _fail(target, "update budget", exc)
    return _redirect(target, "Budget updated successfully!")


# ── Snippets ──────────────────────────────────────────────────────────────────

@router.get("/snippets", response_class=HTMLResponse, include_in_schema=False)
def snippets_page(
    request: Request,
    language: str | None = Query(None),
    q: str | None = Query(None),
    edit: str | None = Query(None, description="Snippet id to open in the edit form"),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    language = _choice(language, SNIPPET_LANGUAGES)
    snippets, total = list_snippets(conn, user["id"], q, language)
    languages = language_counts(conn, user["id"])
    editing = get_snippet(conn, user["id"], edit) if edit else None
    return _render(request, "snippets.html", {
        "active": "snippets",
        "snippets": snippets,
        "total": total,
        "all_count": sum(lang["count"] for lang in languages),
        "languages": languages,
        "language": language,
        "q": q or "",
        "editing": editing,
        "project_options": project_options(conn, user["id"]),
    }, user)


@router.post("/snippets", include_in_schema=False)
def create_snippet_form(
    title: str = Form(""),
    language: str = Form("javascript"),
    code: str = Form(""),
    project_id: str = Form(""),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        body = SnippetIn(title=title, language=language, code=code, project_id=project_id)
        create_snippet(conn, user["id"], body)
    except (ValidationError, HTTPException) as exc:
        return _fail("/snippets", "save snippet", exc)
    return _redirect("/snippets", "Snippet saved successfully!")


@router.post("/snippets/{snippet_id}/update", include_in_schema=False)
def update_snippet_form(
    snippet_id: str,
    title: str = Form(""),
    language: str = Form("javascript"),
    code: str = Form(""),
    project_id: str = Form(""),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        body = SnippetUpdate(title=title, language=language, code=code,
                             project_id=project_id or None)
        update_snippet(conn, user["id"], snippet_id, body)
    except (ValidationError, HTTPException) as exc:
        return _fail(f"/snippets?edit={snippet_id}", "update snippet", exc)
    return _redirect("/snippets", "Snippet updated successfully!")


@router.post("/snippets/{snippet_id}/delete", include_in_schema=False)
def delete_snippet_form(
    snippet_id: str,
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        delete_snippet(conn, user["id"], snippet_id)
    except HTTPException as exc:
        return _fail("/snippets", "delete snippet", exc)
    return _redirect("/snippets", "Snippet deleted")


# ── Settings ──────────────────────────────────────────────────────────────────

@router.get("/settings", response_class=HTMLResponse, include_in_schema=False)
def settings_page(
    request: Request,
    user: dict = Depends(require_page_user),
) -> HTMLResponse:
    return _render(request, "settings.html", {"active": "settings"}, user)


@router.post("/settings/profile", include_in_schema=False)
def profile_form(
    full_name: str = Form(""),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        body = ProfileUpdate(full_name=full_name)
    except ValidationError as exc:
        return _fail("/settings", "update profile", exc)
    update_profile(conn, user["id"], body.full_name)
    return _redirect("/settings", "Profile updated successfully!")


@router.post("/settings/password", include_in_schema=False)
def password_form(
    current_password: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
    user: dict = Depends(require_page_user),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    if new_password != confirm_password:
        return _redirect("/settings", "Failed to change password: Passwords do not match", "error")
    try:
        body = PasswordChange(current_password=current_password, new_password=new_password)
        change_password(conn, user["id"], body.current_password, body.new_password)
    except (ValidationError, HTTPException) as exc:
        return _fail("/settings", "change password", exc)
    return _redirect("/settings", "Password changed successfully!")


# ── Auth pages ────────────────────────────────────────────────────────────────

@router.get("/auth", response_class=HTMLResponse, include_in_schema=False)
def auth_page(
    request: Request,
    mode: str = Query("signin", pattern="^(signin|signup)$"),
    user: dict | None = Depends(get_optional_user),
) -> HTMLResponse:
    if user is not None:
        return _redirect("/")
    return _render(request, "auth.html", {"mode": mode})


@router.post("/auth/signin", include_in_schema=False)
def signin_form(
    email: str = Form(""),
    password: str = Form(""),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        user = authenticate(conn, email, password)
    except HTTPException as exc:
        return _fail("/auth", "sign in", exc)
    response = _redirect("/", "Signed in successfully")
    start_session(response, user["id"])
    return response


@router.post("/auth/signup", include_in_schema=False)
def signup_form(
    email: str = Form(""),
    password: str = Form(""),
    full_name: str = Form(""),
    conn: sqlite3.Connection = Depends(get_db),
) -> RedirectResponse:
    try:
        body = SignUpIn(email=email, password=password, full_name=full_name)
        user = create_user(conn, body.email, body.password, body.full_name)
    except (ValidationError, HTTPException) as exc:
        return _fail("/auth?mode=signup", "sign up", exc)
    response = _redirect("/", "Account created successfully!")
    start_session(response, user["id"])
    return response


@router.post("/auth/signout", include_in_schema=False)
def signout_form() -> RedirectResponse:
    response = _redirect("/auth", "Logged out successfully")
    end_session(response)
    return response


# ── Error pages ───────────────────────────────────────────────────────────────

def _wants_html(request: Request) -> bool:
    return not request.url.path.startswith(_NON_HTML_PREFIXES)


def register_error_handlers(app: FastAPI) -> None:
    """Render 404/500 pages for browser routes; API paths keep JSON bodies.

    Must run after create_app() registers its JSON ``Exception`` handler,
    which is kept for non-HTML paths.
    """
    json_500 = app.exception_handlers.get(Exception)

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):
        return RedirectResponse("/auth", status_code=303)

    @app.exception_handler(StarletteHTTPException)
    async def html_http_exception_handler(request: Request, exc: StarletteHTTPException):
        if not _wants_html(request):
            return await http_exception_handler(request, exc)
        template = "errors/404.html" if exc.status_code == 404 else "errors/500.html"
        return _tmpl().TemplateResponse(
            request, template,
            {"user": None, "flash": None, "status_code": exc.status_code, "detail": exc.detail},
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def html_server_error_handler(request: Request, exc: Exception):
        if not _wants_html(request):
            if json_500 is not None:
                return await json_500(request, exc)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": str(exc), "status_code": 500},
            )
        logger.exception("page error path=%s", request.url.path)
        return _tmpl().TemplateResponse(
            request, "errors/500.html",
            {"user": None, "flash": None, "status_code": 500, "detail": "Something went wrong"},
            status_code=500,
        )
