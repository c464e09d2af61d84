"""
Pydantic request/response models for the API.

Input models validate what users type into forms (the HTML views build the
same models from form data). Output models mirror table rows plus a few
joined or computed columns; optional fields default to None so rows with
NULL columns stay valid.
"""

from __future__ import annotations

import datetime as dt
from typing import Annotated, Generic, Literal, TypeVar

from pydantic import BaseModel, BeforeValidator, Field, field_validator, model_validator

from utils.common import is_valid_email

ProjectStatus = Literal["planning", "in_progress", "on_hold", "completed", "cancelled"]
TaskStatus = Literal["to_do", "in_progress", "done", "blocked"]
TaskPriority = Literal["low", "medium", "high"]
ClientStatus = Literal["active", "inactive"]
TransactionType = Literal["income", "expense"]
UserRole = Literal["admin", "manager", "member"]
SnippetLanguage = Literal[
    "javascript", "typescript", "html", "css", "python", "java", "csharp",
    "php", "ruby", "go", "rust", "swift", "kotlin", "sql",
]

T = TypeVar("T")


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _strip(value):
    return value.strip() if isinstance(value, str) else value


OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]
OptionalDate = Annotated[dt.date | None, BeforeValidator(_blank_to_none)]
Stripped = Annotated[str, BeforeValidator(_strip)]
OptionalStripped = Annotated[str | None, BeforeValidator(_strip)]


# ── Auth ──────────────────────────────────────────────────────────────────────

class SignUpIn(BaseModel):
    """New account credentials."""
    email: str = Field(..., description="Login email (case-insensitive)", examples=["ada@example.com"])
    password: str = Field(..., min_length=6, description="At least 6 characters")
    full_name: OptionalText = Field(None, max_length=120, description="Display name", examples=["Ada Lovelace"])

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not is_valid_email(v):
            raise ValueError("Enter a valid email address")
        return v


class SignInIn(BaseModel):
    email: str = Field(..., examples=["ada@example.com"])
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class ProfileUpdate(BaseModel):
    full_name: OptionalText = Field(None, max_length=120)


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, description="At least 6 characters")


class UserOut(BaseModel):
    """A signed-in user (password material never leaves the server)."""
    id: str
    email: str = Field(..., examples=["ada@example.com"])
    full_name: str | None = None
    role: UserRole = Field("member", description="admin | manager | member")
    created_at: str | None = None


class SessionOut(BaseModel):
    user: UserOut
    access_token: str = Field(..., description="Bearer token; also set as the session cookie")
    expires_at: int = Field(..., description="Unix time the session expires")


# ── Clients ───────────────────────────────────────────────────────────────────

class ClientIn(BaseModel):
    """Client create payload."""
    name: Stripped = Field(..., min_length=2, max_length=200, description="Contact name", examples=["Acme Inc."])
    company: OptionalText = Field(None, max_length=200, examples=["Acme Corporation"])
    email: OptionalText = Field(None, max_length=200, examples=["contact@acme.com"])
    phone: OptionalText = Field(None, max_length=50, examples=["(555) 123-4567"])
    notes: OptionalText = None
    status: ClientStatus = "active"
    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str | None) -> str | None:
        if v is not None and not is_valid_email(v):
            raise ValueError("Enter a valid email address")
        return v


class ClientUpdate(BaseModel):
    """Partial client update; omitted fields are left unchanged."""
    name: OptionalStripped = Field(None, min_length=2, max_length=200)
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None
    status: ClientStatus | None = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str | None) -> str | None:
        if v and not is_valid_email(v):
            raise ValueError("Enter a valid email address")
        return v


class ClientOut(BaseModel):
    id: str
    name: str
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None
    status: ClientStatus = "active"
    projects_count: int = Field(0, description="Number of projects linked to this client")
    created_at: str | None = None
    updated_at: str | None = None


# ── Projects ──────────────────────────────────────────────────────────────────

class ProjectIn(BaseModel):
    """Project create payload."""
    name: Stripped = Field(..., min_length=2, max_length=200, examples=["Website Redesign"])
    description: OptionalText = Field(None, examples=["Complete overhaul of the company website."])
    status: ProjectStatus = "planning"
    start_date: OptionalDate = None
    end_date: OptionalDate = None
    client_id: OptionalText = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class ProjectUpdate(BaseModel):
    name: OptionalStripped = Field(None, min_length=2, max_length=200)
    description: str | None = None
    status: ProjectStatus | None = None
    start_date: OptionalDate = None
    end_date: OptionalDate = None
    client_id: OptionalText = None


class ProjectOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    status: ProjectStatus
    start_date: str | None = None
    end_date: str | None = None
    client_id: str | None = None
    client_name: str | None = Field(None, description="Joined from clients.name")
    task_count: int = 0
    completed_task_count: int = 0
    progress: int = Field(0, ge=0, le=100, description="Percent of tasks done")
    created_at: str | None = None
    updated_at: str | None = None


# ── Tasks ─────────────────────────────────────────────────────────────────────

class TaskIn(BaseModel):
    """Task create payload."""
    title: Stripped = Field(..., min_length=2, max_length=200, examples=["Homepage Design"])
    description: OptionalText = None
    status: TaskStatus = "to_do"
    priority: TaskPriority = "medium"
    due_date: OptionalDate = None
    project_id: str = Field(..., description="Owning project")
    assignee: OptionalText = Field(None, max_length=120, examples=["Jane Smith"])
    parent_task_id: OptionalText = Field(None, description="Set to make this a subtask")


class TaskUpdate(BaseModel):
    title: OptionalStripped = Field(None, min_length=2, max_length=200)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: OptionalDate = None
    assignee: str | None = None


class TaskOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    status: TaskStatus
    priority: TaskPriority
    due_date: str | None = None
    project_id: str
    project_name: str | None = None
    assignee: str | None = None
    parent_task_id: str | None = None
    subtask_count: int = 0
    completed_subtask_count: int = 0
    created_at: str | None = None
    updated_at: str | None = None


# ── Finance ───────────────────────────────────────────────────────────────────

class TransactionIn(BaseModel):
    """Ledger entry create payload."""
    project_id: str = Field(..., min_length=1, description="Project the entry belongs to")
    type: TransactionType = Field(..., examples=["income"])
    amount: float = Field(..., ge=0.01, allow_inf_nan=False,
                          description="Positive amount in USD", examples=[1500.0])
    description: Stripped = Field(..., min_length=2, max_length=500, examples=["Milestone 1 payment"])
    date: dt.date = Field(default_factory=dt.date.today, description="Defaults to today")

    @field_validator("project_id", mode="before")
    @classmethod
    def _require_project(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("Project is required")
        return v

    @field_validator("date", mode="before")
    @classmethod
    def _default_date(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return dt.date.today()
        return v


class TransactionOut(BaseModel):
    id: str
    project_id: str
    project_name: str | None = None
    type: TransactionType
    amount: float
    description: str
    date: str
    created_at: str | None = None


class FinanceSummary(BaseModel):
    """Totals over every ledger entry of the user."""
    total_income: float = Field(..., examples=[12500.0])
    total_expense: float = Field(..., examples=[4300.0])
    net_profit: float = Field(..., description="total_income - total_expense", examples=[8200.0])
    transaction_count: int = 0


class ProjectFinanceIn(BaseModel):
    budget: float = Field(0, ge=0, allow_inf_nan=False)
    received: float = Field(0, ge=0, allow_inf_nan=False)
    spent: float = Field(0, ge=0, allow_inf_nan=False)


class ProjectFinanceOut(BaseModel):
    project_id: str
    project_name: str | None = None
    project_status: ProjectStatus | None = None
    budget: float = 0
    received: float = 0
    spent: float = 0
    remaining: float = Field(0, description="budget - spent")
    income: float = Field(0, description="Sum of income entries for the project")
    expense: float = Field(0, description="Sum of expense entries for the project")


# ── Documents ─────────────────────────────────────────────────────────────────

class DocumentOut(BaseModel):
    id: str
    name: str
    file_path: str = Field(..., description="Object path inside the documents bucket",
                           examples=["documents/1718000000000.pdf"])
    file_type: str | None = Field(None, examples=["application/pdf"])
    file_size: int = 0
    project_id: str | None = None
    project_name: str | None = None
    task_id: str | None = None
    created_at: str | None = None


class DownloadUrlOut(BaseModel):
    url: str = Field(..., description="Signed relative URL")
    expires_in: int = Field(..., description="Seconds the URL stays valid", examples=[60])


# ── Snippets ──────────────────────────────────────────────────────────────────

class SnippetIn(BaseModel):
    """Code snippet create payload."""
    title: Stripped = Field(..., min_length=2, max_length=200, examples=["Debounce helper"])
    language: SnippetLanguage = "javascript"
    code: str = Field(..., min_length=1)
    project_id: OptionalText = None
    task_id: OptionalText = None

    @field_validator("code")
    @classmethod
    def _code_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Code is required")
        return v


class SnippetUpdate(BaseModel):
    title: OptionalStripped = Field(None, min_length=2, max_length=200)
    language: SnippetLanguage | None = None
    code: str | None = None
    project_id: str | None = None
    task_id: str | None = None

    @field_validator("code")
    @classmethod
    def _code_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Code is required")
        return v


class SnippetOut(BaseModel):
    id: str
    title: str
    language: SnippetLanguage
    code: str
    project_id: str | None = None
    project_name: str | None = None
    task_id: str | None = None
    task_title: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class LanguageOut(BaseModel):
    value: str = Field(..., examples=["python"])
    label: str = Field(..., examples=["Python"])
    count: int = Field(0, description="Snippets of this language owned by the user")


# ── Dashboard ─────────────────────────────────────────────────────────────────

class DashboardSummary(BaseModel):
    """Stat cards plus the recent-project and upcoming-task lists."""
    active_projects: int
    completed_projects: int
    on_hold_projects: int
    total_projects: int
    total_tasks: int
    completed_tasks: int
    active_clients: int
    revenue_this_month: float
    expenses_this_month: float
    recent_projects: list[ProjectOut]
    upcoming_tasks: list[TaskOut]


# ── Paginated list wrapper ────────────────────────────────────────────────────

class Page(BaseModel, Generic[T]):
    """Generic paginated list wrapper."""
    total: int = Field(..., description="Total matching rows (before pagination)", examples=[42])
    limit: int = Field(..., description="Page size used", examples=[50])
    offset: int = Field(..., description="Offset of this page", examples=[0])
    items: list[T]


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Short error category", examples=["Bad request"])
    detail: str | None = Field(None, description="Extended error detail")
    status_code: int = Field(..., ge=400, le=599, description="HTTP status code", examples=[400])
