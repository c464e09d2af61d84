"""
Per-user cache for dashboard aggregates.

Write endpoints call invalidate(owner_id) after committing so the next
dashboard view recomputes.
"""

from utils.cache import TTLCache

dashboard_cache: TTLCache = TTLCache(maxsize=512, ttl_seconds=30)


def invalidate(owner_id: str) -> None:
    dashboard_cache.invalidate_owner(owner_id)
