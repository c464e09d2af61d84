"""Shared utilities for ProjectFlow."""

# Common utilities
from utils.common import (
    format_bytes,
    file_stem,
    file_extension,
    is_valid_email,
)

# Database utilities
from utils.database import (
    init_pragmas,
    new_id,
    utc_now,
    get_table_count,
    query_to_dicts,
    query_one,
    insert_row,
    update_row,
    get_slow_queries,
    get_query_stats,
)

# Query builders
from utils.query import build_where_clause, build_order_clause, escape_like

# Caching
from utils.cache import TTLCache

# Formatting
from utils.formatting import (
    format_currency,
    format_percent,
    format_date,
    is_overdue,
    status_label,
    status_color,
    initials,
    truncate_text,
)

# Storage
from utils.storage import LocalStorage, StorageError

# Configuration
from utils.config import AppConfig

__all__ = [
    "format_bytes",
    "file_stem",
    "file_extension",
    "is_valid_email",
    "init_pragmas",
    "new_id",
    "utc_now",
    "get_table_count",
    "query_to_dicts",
    "query_one",
    "insert_row",
    "update_row",
    "get_slow_queries",
    "get_query_stats",
    "build_where_clause",
    "build_order_clause",
    "escape_like",
    "TTLCache",
    "format_currency",
    "format_percent",
    "format_date",
    "is_overdue",
    "status_label",
    "status_color",
    "initials",
    "truncate_text",
    "LocalStorage",
    "StorageError",
    "AppConfig",
]
