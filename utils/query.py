"""Shared SQL query builder utilities for ProjectFlow API routes.

Provides the WHERE clause and ORDER BY construction used by every list
endpoint and by the HTML views, so the JSON API and the pages filter
records identically.
"""

from typing import Any


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input matches literally (ESCAPE '\\')."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_where_clause(
    owner_id: str | None = None,
    equals: dict[str, Any] | None = None,
    search: str | None = None,
    search_columns: list[str] | None = None,
    date_column: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    owner_column: str = "owner_id",
) -> tuple[str, list[Any]]:
    """Build a SQL WHERE clause from filter parameters.

    Args:
        owner_id: Restrict rows to this owner (applied to ``owner_column``).
        equals: Column -> value exact matches. ``None`` values and the
            sentinel ``"all"`` are skipped so callers can pass raw query
            params straight through.
        search: Free-text term matched case-insensitively as a substring
            against any of ``search_columns`` (OR-combined).
        search_columns: Columns searched by ``search``.
        date_column: Column compared against ``date_from`` / ``date_to``.
        date_from: Inclusive lower bound (ISO date string).
        date_to: Inclusive upper bound (ISO date string).
        owner_column: Qualified owner column, e.g. ``"p.owner_id"``.

    Returns:
        Tuple of (where_clause_string, params_list). The where_clause_string
        starts with "WHERE " if any conditions exist, or is "" if none.
    """
    conditions: list[str] = []
    params: list[Any] = []

    if owner_id is not None:
        conditions.append(f"{owner_column} = ?")
        params.append(owner_id)

    for column, value in (equals or {}).items():
        if value is None or value == "" or value == "all":
            continue
        if isinstance(value, (list, tuple, set)):
            values = list(value)
            if not values:
                continue
            placeholders = ",".join("?" * len(values))
            conditions.append(f"{column} IN ({placeholders})")
            params.extend(values)
        else:
            conditions.append(f"{column} = ?")
            params.append(value)

    term = (search or "").strip()
    if term and search_columns:
        pattern = f"%{escape_like(term.lower())}%"
        likes = [
            f"LOWER(COALESCE({col}, '')) LIKE ? ESCAPE '\\'"
            for col in search_columns
        ]
        conditions.append("(" + " OR ".join(likes) + ")")
        params.extend([pattern] * len(search_columns))

    if date_column and date_from:
        conditions.append(f"{date_column} >= ?")
        params.append(date_from)
    if date_column and date_to:
        conditions.append(f"{date_column} <= ?")
        params.append(date_to)

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def build_order_clause(
    sort_by: str | None,
    sort_dir: str,
    allowed_sorts: dict[str, str],
    default_sort: str = "created_at",
    tiebreak: str | None = None,
) -> str:
    """Build a safe SQL ORDER BY clause.

    Args:
        sort_by: Public sort key requested by the caller.
        sort_dir: Direction: 'asc' or 'desc' (case-insensitive).
        allowed_sorts: Public sort key -> SQL column expression.
        default_sort: Key to use if sort_by is not in allowed_sorts.
        tiebreak: Optional extra ordering term appended after the main one.

    Returns:
        ORDER BY clause string, e.g. "ORDER BY p.created_at DESC".
    """
    key = sort_by if sort_by in allowed_sorts else default_sort
    col = allowed_sorts[key]
    direction = "DESC" if sort_dir.lower() == "desc" else "ASC"
    clause = f"ORDER BY {col} {direction}"
    if tiebreak:
        clause += f", {tiebreak}"
    return clause
