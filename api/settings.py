"""
Process-wide settings and service objects for the API.

create_app() installs the AppConfig and LocalStorage instances here; route
modules read them through the getters (also usable as FastAPI dependencies).
"""

from utils.config import AppConfig
from utils.storage import LocalStorage

_settings: AppConfig = AppConfig.from_env()
_storage: LocalStorage | None = None


def get_settings() -> AppConfig:
    return _settings


def set_settings(cfg: AppConfig) -> None:
    global _settings, _storage
    _settings = cfg
    _storage = None


def get_storage() -> LocalStorage:
    """Return the bucket store rooted at ``settings.storage_dir``."""
    global _storage
    if _storage is None:
        _storage = LocalStorage(_settings.storage_dir, _settings.secret_key)
    return _storage
