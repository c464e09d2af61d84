"""Output formatting utilities for ProjectFlow.

Provides reusable functions for:
- Formatting currency amounts (USD)
- Percentages
- Dates for cards and tables
- Human labels and badge colours for status vocabularies
"""

from datetime import date, datetime
from typing import Optional


def format_currency(value: Optional[float]) -> str:
    """Format an amount as US dollars with two decimals.

    Examples:
        format_currency(1234.5) -> "$1,234.50"
        format_currency(-20) -> "-$20.00"
        format_currency(None) -> "$0.00"
    """
    amount = float(value or 0)
    if amount < 0:
        return f"-${abs(amount):,.2f}"
    return f"${amount:,.2f}"


def format_percent(value: Optional[float], precision: int = 0) -> str:
    """Format a percentage for display.

    Examples:
        format_percent(42.5, 1) -> "42.5%"
        format_percent(None) -> "-"
    """
    if value is None:
        return "-"
    return f"{value:.{precision}f}%"


def _parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def format_date(value, fmt: str = "%b %d, %Y") -> str:
    """Format an ISO date/datetime string for display ("Mar 04, 2025").

    Unparseable values are returned unchanged; empty values become "".
    """
    parsed = _parse_date(value)
    if parsed is None:
        return "" if value in (None, "") else str(value)
    return parsed.strftime(fmt)


def is_overdue(value, today: Optional[date] = None) -> bool:
    """True when *value* is a date strictly before today."""
    parsed = _parse_date(value)
    if parsed is None:
        return False
    return parsed < (today or date.today())


def status_label(value: Optional[str]) -> str:
    """Human label for a status/priority slug ("in_progress" -> "In Progress")."""
    if not value:
        return ""
    return value.replace("_", " ").replace("-", " ").title()


_STATUS_COLOURS = {
    "planning": "blue",
    "in_progress": "amber",
    "on_hold": "grey",
    "completed": "green",
    "cancelled": "red",
    "to_do": "grey",
    "done": "green",
    "blocked": "red",
    "low": "grey",
    "medium": "amber",
    "high": "red",
    "active": "green",
    "inactive": "grey",
    "income": "green",
    "expense": "red",
}


def status_color(value: Optional[str]) -> str:
    """CSS colour modifier for a status badge."""
    return _STATUS_COLOURS.get(value or "", "grey")


def initials(name: Optional[str]) -> str:
    """Avatar initials from a name ("Jane van Dyke" -> "JVD")."""
    if not name:
        return "?"
    return "".join(part[0] for part in name.split() if part).upper()


def truncate_text(text: Optional[str], max_length: int = 100, suffix: str = "...") -> str:
    """Truncate text to max_length, appending suffix when shortened."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)].rstrip() + suffix
