"""Database utilities for ProjectFlow.

Provides reusable functions for:
- Connection pragmas (WAL, foreign keys)
- Common queries returning plain dicts
- Row id / timestamp helpers shared by every table
- Query performance tracking (slow query log)
"""

import logging
import sqlite3
import threading
import time
import uuid
from collections import deque
from datetime import date, datetime, timezone
from typing import List, Dict, Any

logger = logging.getLogger(__name__)

SLOW_QUERY_MS = 100.0
_SLOW_QUERY_LOG_SIZE = 50

_stats_lock = threading.Lock()
_slow_queries: deque = deque(maxlen=_SLOW_QUERY_LOG_SIZE)
_query_count = 0
_query_total_ms = 0.0


def init_pragmas(conn: sqlite3.Connection) -> None:
    """Initialize SQLite reliability pragmas.

    - WAL mode for concurrent read/write
    - NORMAL synchronous mode for speed without data loss
    - foreign keys ON so cascades and SET NULL fire
    """
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=5000")


def new_id() -> str:
    """Return a new text primary key."""
    return str(uuid.uuid4())


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string (microsecond precision, "Z" suffix)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def get_table_count(conn: sqlite3.Connection, table: str) -> int:
    """Return the number of rows in *table*."""
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def _to_sql_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def insert_row(conn: sqlite3.Connection, table: str, values: Dict[str, Any]) -> None:
    """INSERT one row from a column -> value dict (dates stored as ISO strings).

    Column names come from code (model fields), never from user input.
    """
    columns = ", ".join(values)
    placeholders = ", ".join("?" * len(values))
    conn.execute(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
        [_to_sql_value(v) for v in values.values()],
    )


def update_row(conn: sqlite3.Connection, table: str, row_id: str,
               changes: Dict[str, Any], touch: bool = True) -> int:
    """UPDATE columns of the row with primary key *row_id*.

    Args:
        changes: Column -> new value. Empty dict is a no-op.
        touch: Also set ``updated_at`` to now.

    Returns:
        Number of rows changed (0 or 1).
    """
    changes = dict(changes)
    if touch:
        changes["updated_at"] = utc_now()
    if not changes:
        return 0
    assignments = ", ".join(f"{col} = ?" for col in changes)
    cur = conn.execute(
        f"UPDATE {table} SET {assignments} WHERE id = ?",
        [_to_sql_value(v) for v in changes.values()] + [row_id],
    )
    return cur.rowcount


def _record_query(query: str, duration_ms: float) -> None:
    global _query_count, _query_total_ms
    with _stats_lock:
        _query_count += 1
        _query_total_ms += duration_ms
        if duration_ms >= SLOW_QUERY_MS:
            _slow_queries.append({
                "sql": " ".join(query.split())[:500],
                "duration_ms": round(duration_ms, 2),
                "at": utc_now(),
            })
    if duration_ms >= SLOW_QUERY_MS:
        logger.warning("slow_query duration_ms=%.1f sql=%s",
                       duration_ms, " ".join(query.split())[:200])


def query_to_dicts(conn: sqlite3.Connection, query: str,
                   params: tuple | list = ()) -> List[Dict[str, Any]]:
    """Execute query and return results as a list of dicts.

    The execution time is recorded for the slow-query log.
    """
    start = time.perf_counter()
    cursor = conn.execute(query, params)
    rows = [dict(row) for row in cursor.fetchall()]
    _record_query(query, (time.perf_counter() - start) * 1000)
    return rows


def query_one(conn: sqlite3.Connection, query: str,
              params: tuple | list = ()) -> Dict[str, Any] | None:
    """Like query_to_dicts but returns the first row or None."""
    rows = query_to_dicts(conn, query, params)
    return rows[0] if rows else None


def get_slow_queries() -> List[Dict[str, Any]]:
    """Return the most recent slow queries, newest last."""
    with _stats_lock:
        return list(_slow_queries)


def get_query_stats() -> Dict[str, Any]:
    """Return aggregate query timing counters."""
    with _stats_lock:
        avg = _query_total_ms / _query_count if _query_count else 0.0
        return {
            "query_count": _query_count,
            "slow_query_count": len(_slow_queries),
            "avg_query_time_ms": round(avg, 2),
        }


def reset_query_stats() -> None:
    global _query_count, _query_total_ms
    with _stats_lock:
        _slow_queries.clear()
        _query_count = 0
        _query_total_ms = 0.0
