"""Common utility functions used across ProjectFlow."""

import re
from pathlib import Path

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def format_bytes(b: int | None) -> str:
    """Format bytes into a human-readable size string.

    Examples:
        0 Bytes, 512 Bytes, 1.5 KB, 2.34 MB
    """
    if not b:
        return "0 Bytes"
    value = float(b)
    for unit in ("Bytes", "KB", "MB"):
        if value < 1024:
            break
        value /= 1024
    else:
        unit = "GB"
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {unit}"


def file_stem(filename: str) -> str:
    """Return the filename without its last extension ("report.v2.pdf" -> "report.v2")."""
    base = Path(filename).name
    if "." in base.lstrip("."):
        return base.rsplit(".", 1)[0]
    return base


def file_extension(filename: str) -> str:
    """Return the lower-cased extension without the dot, or ''."""
    base = Path(filename).name
    if "." not in base.lstrip("."):
        return ""
    return base.rsplit(".", 1)[1].lower()


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value or ""))
