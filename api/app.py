"""
FastAPI application factory for ProjectFlow.

Usage:
    python -m api.app                           # Dev server on port 8000
    APP_DB_PATH=/data/projectflow.sqlite python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

Middleware, outermost first:
    security headers   CSP, X-Content-Type-Options, X-Frame-Options
    log_and_rate_limit request id, access log, per-IP limits (auth tier stricter)
    auth_context       request.state.user_id from the session token, no DB hit

Rate limits are per client IP and path over a 60 s window. Paths under
/api/v1/auth and /auth use RATE_LIMIT_AUTH, everything else
RATE_LIMIT_DEFAULT. /health is never limited.
"""

import json
import logging
import os
import sqlite3
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from api.auth import token_from_request, verify_session_token
from api.cache import dashboard_cache
from api.database import ensure_database, get_db_path, set_db_path
from api.routes import auth, clients, dashboard, documents, finance, projects, snippets, storage, tasks
from api.routes import frontend as frontend_routes
from api.settings import get_settings, set_settings
from utils.common import format_bytes
from utils.config import AppConfig
from utils.database import get_query_stats, get_slow_queries, get_table_count
from utils.formatting import (
    format_currency,
    format_date,
    format_percent,
    initials,
    is_overdue,
    status_color,
    status_label,
    truncate_text,
)

# ── Configuration ─────────────────────────────────────────────────────────────
_cfg = AppConfig.from_env()

# ── Structured JSON logging ───────────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge extra fields added via logger.info("...", extra={...})
        for key in ("method", "path", "status", "duration_ms", "client_ip",
                    "request_id", "user_id"):
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


_logger = logging.getLogger("projectflow")
_handler = logging.StreamHandler()
if _cfg.log_format == "json":
    _handler.setFormatter(_JsonFormatter())
else:
    _handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
logging.basicConfig(handlers=[_handler], level=logging.INFO, force=True)

# ── Rate limiting state with memory bounds ────────────────────────────────────
_AUTH_PREFIXES = ("/api/v1/auth", "/auth")
_rate_counters: dict[str, dict[str, list]] = defaultdict(lambda: defaultdict(list))
_MAX_TRACKED_IPS = 10_000
_last_cleanup: float = 0.0
_CLEANUP_INTERVAL = 300.0  # 5 minutes


def _rate_limit_for(path: str) -> int:
    cfg = get_settings()
    if path.startswith(_AUTH_PREFIXES):
        return cfg.rate_limit_auth
    return cfg.rate_limit_default


def _cleanup_rate_counters() -> None:
    """Remove stale rate counter entries to bound memory usage."""
    global _last_cleanup
    now = time.time()
    if now - _last_cleanup < _CLEANUP_INTERVAL:
        return
    _last_cleanup = now
    window_start = now - 60.0
    to_delete = []
    for ip, paths in _rate_counters.items():
        for path in list(paths.keys()):
            paths[path] = [t for t in paths[path] if t > window_start]
            if not paths[path]:
                del paths[path]
        if not paths:
            to_delete.append(ip)
    for ip in to_delete:
        del _rate_counters[ip]
    # Still over the cap: evict the IPs with the fewest recent hits
    if len(_rate_counters) > _MAX_TRACKED_IPS:
        excess = len(_rate_counters) - _MAX_TRACKED_IPS
        quietest = sorted(
            _rate_counters.keys(),
            key=lambda ip: sum(len(v) for v in _rate_counters[ip].values()),
        )[:excess]
        for ip in quietest:
            del _rate_counters[ip]


# ── Client IP behind trusted proxies ──────────────────────────────────────────

def _get_client_ip(request: Request) -> str:
    """Return the real client IP, respecting X-Forwarded-For from trusted proxies."""
    direct_ip = request.client.host if request.client else "unknown"
    trusted = get_settings().trusted_proxies
    if not trusted or direct_ip not in trusted:
        return direct_ip
    xff = request.headers.get("X-Forwarded-For", "")
    if xff:
        # leftmost entry is the original client
        real_ip = xff.split(",")[0].strip()
        if real_ip:
            return real_ip
    return direct_ip

# ── Application metrics ───────────────────────────────────────────────────────
# In-memory counters; reset on process restart.
_app_start_time: float = time.time()
_metrics: dict = {
    "request_count": 0,
    "error_count": 0,
    "blocked_count": 0,
    "response_times_ms": [],  # capped at last 100 entries
}
_RESPONSE_TIME_WINDOW = 100


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create/migrate the database and the storage root on startup."""
    db_path = ensure_database(get_db_path())
    storage_dir = get_settings().storage_dir
    storage_dir.mkdir(parents=True, exist_ok=True)
    _logger.info("startup db=%s storage=%s", db_path, storage_dir)
    _logger.debug("settings %s", get_settings().to_dict())
    yield


def _register_filters(templates: Jinja2Templates) -> None:
    templates.env.filters["currency"] = format_currency
    templates.env.filters["percent"] = format_percent
    templates.env.filters["filesize"] = format_bytes
    templates.env.filters["date"] = format_date
    templates.env.filters["overdue"] = is_overdue
    templates.env.filters["truncate_text"] = truncate_text
    templates.env.filters["status_label"] = status_label
    templates.env.filters["status_color"] = status_color
    templates.env.filters["initials"] = initials


def create_app(
    db_path: Path | None = None,
    storage_dir: Path | None = None,
    settings: AppConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Override the database path (useful for testing).
        storage_dir: Override the file-storage root (useful for testing).
        settings: Full configuration; defaults to ``AppConfig.from_env()``.

    Returns:
        Configured FastAPI application instance.
    """
    cfg = settings or AppConfig.from_env()
    if db_path is not None:
        cfg.db_path = Path(db_path)
    if storage_dir is not None:
        cfg.storage_dir = Path(storage_dir)
    set_settings(cfg)
    set_db_path(cfg.db_path)
    _rate_counters.clear()
    dashboard_cache.clear()

    app = FastAPI(
        title="ProjectFlow API",
        summary="Personal project management: projects, tasks, clients, finance, documents and snippets.",
        description=(
            "## ProjectFlow API\n\n"
            "JSON API behind the ProjectFlow dashboard. Every record belongs to the "
            "signed-in user; requests authenticate with the `projectflow_session` "
            "cookie or an `Authorization: Bearer` token from `/api/v1/auth/login`.\n\n"
            "### Rate limits\n"
            f"- `/api/v1/auth/*`: {cfg.rate_limit_auth} req/min per IP\n"
            f"- All other endpoints: {cfg.rate_limit_default} req/min per IP\n\n"
            "Returns `429 Too Many Requests` with `Retry-After: 60` when exceeded."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "auth", "description": "Sign up, sign in, sign out and profile."},
            {"name": "projects", "description": "Projects with computed task progress."},
            {"name": "tasks", "description": "Tasks and subtasks attached to projects."},
            {"name": "clients", "description": "Client directory."},
            {"name": "finance", "description": "Income/expense ledger, budgets and exports."},
            {"name": "documents", "description": "File uploads and signed download links."},
            {"name": "snippets", "description": "Reusable code snippets by language."},
            {"name": "dashboard", "description": "Overview stat cards and lists."},
            {"name": "storage", "description": "Signed object downloads."},
            {"name": "meta", "description": "Health check and query monitoring."},
        ],
    )

    # ── CORS middleware ───────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=cfg.cors_origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── Auth context ──────────────────────────────────────────────────────────

    @app.middleware("http")
    async def auth_context(request: Request, call_next):
        """Expose the session's user id as ``request.state.user_id`` (or None)."""
        token = token_from_request(request)
        request.state.user_id = (
            verify_session_token(token, get_settings().secret_key) if token else None
        )
        return await call_next(request)

    # ── Request logging + rate limiting ───────────────────────────────────────

    @app.middleware("http")
    async def log_and_rate_limit(request: Request, call_next):
        """Log each request, enforce per-IP rate limits, and record metrics."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        client_ip = _get_client_ip(request)
        path = request.url.path

        _cleanup_rate_counters()

        if path == "/health":
            return await call_next(request)

        limit = _rate_limit_for(path)
        now = time.time()
        window_start = now - 60.0
        hits = _rate_counters[client_ip][path]
        _rate_counters[client_ip][path] = [t for t in hits if t > window_start]
        if len(_rate_counters[client_ip][path]) >= limit:
            _metrics["blocked_count"] += 1
            _logger.warning(
                "rate_limited ip=%s path=%s limit=%d", client_ip, path, limit
            )
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests",
                         "detail": f"Limit of {limit} requests per minute exceeded",
                         "status_code": 429},
                headers={"Retry-After": "60"},
            )
        _rate_counters[client_ip][path].append(now)

        _metrics["request_count"] += 1
        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000

        _metrics["response_times_ms"].append(duration_ms)
        if len(_metrics["response_times_ms"]) > _RESPONSE_TIME_WINDOW:
            _metrics["response_times_ms"] = (
                _metrics["response_times_ms"][-_RESPONSE_TIME_WINDOW:]
            )

        if response.status_code >= 500:
            _metrics["error_count"] += 1

        response.headers["X-Request-ID"] = request_id
        user_id = getattr(request.state, "user_id", None)

        if get_settings().log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "client_ip": client_ip,
                    "request_id": request_id,
                    "user_id": user_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f ip=%s rid=%s uid=%s",
                request.method, path, response.status_code, duration_ms,
                client_ip, request_id, user_id or "-",
            )
        if duration_ms > 500:
            _logger.warning(
                "slow_request method=%s path=%s duration_ms=%.1f",
                request.method, path, duration_ms,
            )
        return response

    # ── Content Security Policy + security headers ────────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        """Add Content-Security-Policy, X-Content-Type-Options, and X-Frame-Options."""
        response = await call_next(request)
        # 'unsafe-inline' is required for the inline <script> blocks in templates.
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "font-src 'self'; "
            "connect-src 'self';"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of HTML traceback."""
        _logger.exception("unhandled error path=%s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc),
                "status_code": 500,
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        # pydantic.ValidationError is a ValueError too; response models failing
        # on stored rows are server errors.
        if isinstance(exc, ValidationError):
            return await app.exception_handlers[Exception](request, exc)
        return JSONResponse(
            status_code=400,
            content={"error": "Bad request", "detail": str(exc), "status_code": 400},
        )

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK if the API is running and can reach the database."""
        db_path = get_db_path()
        if not db_path.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "no_database", "database": str(db_path)},
            )
        try:
            conn = sqlite3.connect(str(db_path))
            try:
                count = get_table_count(conn, "users")
            finally:
                conn.close()
        except sqlite3.Error as e:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(e)},
            )
        return {"status": "ok", "database": str(db_path), "users": count}

    @app.get(
        "/health/detailed",
        tags=["meta"],
        summary="Detailed health metrics",
        response_description="Operational metrics for monitoring dashboards",
    )
    def health_detailed():
        """Return uptime, request/error counters, table counts, average
        response time, rate-limiter and cache stats. Counters reset on
        process restart.
        """
        db_path = get_db_path()
        uptime = time.time() - _app_start_time

        if not db_path.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "no_database", "database": str(db_path)},
            )

        try:
            conn = sqlite3.connect(str(db_path))
            try:
                counts = {
                    table: get_table_count(conn, table)
                    for table in ("users", "projects", "tasks", "clients", "documents")
                }
            finally:
                conn.close()
        except sqlite3.Error as exc:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(exc)},
            )

        rts = _metrics["response_times_ms"]
        avg_rt = round(sum(rts) / len(rts), 2) if rts else 0.0
        qstats = get_query_stats()

        return {
            "status": "ok",
            "uptime_seconds": round(uptime, 2),
            "request_count": _metrics["request_count"],
            "error_count": _metrics["error_count"],
            "db_size_bytes": os.path.getsize(str(db_path)),
            "table_counts": counts,
            "storage_dir_exists": get_settings().storage_dir.exists(),
            "avg_response_time_ms": avg_rt,
            "rate_limiter_stats": {
                "tracked_ips": len(_rate_counters),
                "blocked_requests": _metrics["blocked_count"],
            },
            "dashboard_cache": dashboard_cache.stats(),
            "slow_query_count": qstats["slow_query_count"],
            "avg_query_time_ms": qstats["avg_query_time_ms"],
        }

    @app.get(
        "/api/v1/health/queries",
        tags=["meta"],
        summary="Slow query log",
        response_description="Last 50 slow queries for performance monitoring",
    )
    def health_queries():
        """Return the last 50 slow queries (>100ms) for performance monitoring."""
        return {
            "stats": get_query_stats(),
            "slow_queries": get_slow_queries(),
        }

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/api/v1"
    app.include_router(auth.router,      prefix=prefix)
    app.include_router(projects.router,  prefix=prefix)
    app.include_router(tasks.router,     prefix=prefix)
    app.include_router(clients.router,   prefix=prefix)
    app.include_router(finance.router,   prefix=prefix)
    app.include_router(documents.router, prefix=prefix)
    app.include_router(snippets.router,  prefix=prefix)
    app.include_router(dashboard.router, prefix=prefix)
    app.include_router(storage.router)

    # ── Static files + Jinja2 templates ───────────────────────────────────────
    _here = Path(__file__).parent.parent  # project root

    static_dir = _here / "static"
    templates_dir = _here / "templates"

    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    if templates_dir.exists():
        templates = Jinja2Templates(directory=str(templates_dir))
        _register_filters(templates)

        frontend_routes.set_templates(templates)
        app.include_router(frontend_routes.router)
        frontend_routes.register_error_handlers(app)

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
