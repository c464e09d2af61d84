"""
Database connection management for the API.

Provides a get_db() dependency that opens a per-request SQLite connection and
closes it after the response is sent. The database path is resolved from the
APP_DB_PATH environment variable (default: projectflow.sqlite) and may be
overridden by create_app(db_path=...).

Connections are read-write with WAL, foreign keys ON and sqlite3.Row rows.
"""

import os
import sqlite3
from collections.abc import Generator
from pathlib import Path

from fastapi import HTTPException

from schema_design import create_database
from utils.database import init_pragmas, query_one

_DB_PATH: Path = Path(os.getenv("APP_DB_PATH", "projectflow.sqlite"))


def get_db_path() -> Path:
    """Return the configured database path."""
    return _DB_PATH


def set_db_path(path: Path) -> None:
    global _DB_PATH
    _DB_PATH = Path(path)


def ensure_database(db_path: Path | None = None) -> Path:
    """Create the database file if needed and apply pending migrations."""
    path = db_path or _DB_PATH
    conn = create_database(path)
    conn.close()
    return path


def _make_conn(db_path: Path) -> sqlite3.Connection:
    """Open a single SQLite connection with standard pragmas."""
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    init_pragmas(conn)
    return conn


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency: yield a SQLite connection, close on exit.

    Raises HTTP 503 with a friendly message if the database file is missing,
    instead of silently creating an empty file mid-request.

    Usage in a route::

        from api.database import get_db
        from fastapi import Depends

        @router.get("/example")
        def example(conn=Depends(get_db)):
            ...
    """
    if not _DB_PATH.exists():
        raise HTTPException(
            status_code=503,
            detail=(
                f"Database not found at '{_DB_PATH}'. "
                "Run 'python schema_design.py --db <path>' to create it."
            ),
        )
    conn = _make_conn(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def require_owned(conn: sqlite3.Connection, table: str, record_id: str,
                  owner_id: str, label: str) -> dict:
    """Return the row of *table* with this id owned by *owner_id*.

    Rows owned by someone else are reported as missing, so ids of other
    users' records are never confirmed.

    Raises:
        HTTPException: 404 ``"{label} not found"``.
    """
    row = query_one(
        conn, f"SELECT * FROM {table} WHERE id = ? AND owner_id = ?", (record_id, owner_id),
    )
    if row is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return row
