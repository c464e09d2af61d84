"""Configuration management utilities for ProjectFlow.

Provides:
- Domain vocabularies (statuses, priorities, snippet languages)
- A small Config base class with dict round-tripping (secrets masked)
- AppConfig, populated from environment variables
"""

from pathlib import Path
from typing import Dict, Any
import os as _os
import secrets


# ── Domain vocabularies ──────────────────────────────────────────────────────
# Order matters: templates render select options and tabs in this order.

PROJECT_STATUSES = ("planning", "in_progress", "on_hold", "completed", "cancelled")
ACTIVE_PROJECT_STATUSES = ("planning", "in_progress")

TASK_STATUSES = ("to_do", "in_progress", "done", "blocked")
TASK_PRIORITIES = ("low", "medium", "high")

CLIENT_STATUSES = ("active", "inactive")
USER_ROLES = ("admin", "manager", "member")
TRANSACTION_TYPES = ("income", "expense")

SNIPPET_LANGUAGES: dict[str, str] = {
    "javascript": "JavaScript",
    "typescript": "TypeScript",
    "html": "HTML",
    "css": "CSS",
    "python": "Python",
    "java": "Java",
    "csharp": "C#",
    "php": "PHP",
    "ruby": "Ruby",
    "go": "Go",
    "rust": "Rust",
    "swift": "Swift",
    "kotlin": "Kotlin",
    "sql": "SQL",
}

DOCUMENTS_BUCKET = "documents"


class Config:
    """Base configuration class for organizing application settings."""

    _SECRET_KEYS: tuple[str, ...] = ()

    def __init__(self):
        """Initialize configuration with default values."""
        pass

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all public config attributes. Secret values are
            masked unless *include_secrets* is set.
        """
        data = {k: v for k, v in self.__dict__.items() if not k.startswith("_")}
        if not include_secrets:
            for key in self._SECRET_KEYS:
                if key in data:
                    data[key] = "***"
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary, overriding defaults."""
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    All env vars have sensible defaults so the application works out of the
    box without any configuration.

    Environment variables:
        APP_DB_PATH: Path to the SQLite database file (default: projectflow.sqlite)
        APP_STORAGE_DIR: Root directory for file-storage buckets (default: storage)
        APP_SECRET_KEY: HMAC key for sessions and signed URLs (default: random per process)
        APP_SESSION_TTL_HOURS: Login session lifetime in hours (default: 24)
        APP_SIGNED_URL_TTL: Seconds a document download link stays valid (default: 60)
        APP_MAX_UPLOAD_MB: Maximum upload size in megabytes (default: 20)
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        RATE_LIMIT_AUTH: Max auth requests per minute per IP (default: 10)
        RATE_LIMIT_DEFAULT: Max requests per minute for other endpoints (default: 120)
        TRUSTED_PROXIES: Comma-separated proxy IP addresses to trust for forwarded IPs
    """

    _SECRET_KEYS = ("secret_key",)

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(_os.getenv("APP_DB_PATH", "projectflow.sqlite"))
        self.storage_dir = Path(_os.getenv("APP_STORAGE_DIR", "storage"))
        self.secret_key = _os.getenv("APP_SECRET_KEY") or secrets.token_hex(32)
        self.session_ttl_hours = int(_os.getenv("APP_SESSION_TTL_HOURS", "24"))
        self.signed_url_ttl = int(_os.getenv("APP_SIGNED_URL_TTL", "60"))
        self.max_upload_mb = int(_os.getenv("APP_MAX_UPLOAD_MB", "20"))
        self.api_port = int(_os.getenv("APP_PORT", "8000"))
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = _os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )
        self.rate_limit_auth = int(_os.getenv("RATE_LIMIT_AUTH", "10"))
        self.rate_limit_default = int(_os.getenv("RATE_LIMIT_DEFAULT", "120"))
        raw_proxies = _os.getenv("TRUSTED_PROXIES", "")
        self.trusted_proxies: set[str] = (
            {p.strip() for p in raw_proxies.split(",") if p.strip()}
        )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
