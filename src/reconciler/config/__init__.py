"""Configuration loaded from environment variables."""

from reconciler.config.constants import DEFAULT_DATABASE_URL, DEFAULT_SERVICE_NAME
from reconciler.config.database import DatabaseSettings
from reconciler.config.settings import ReconcilerSettings, get_settings

__all__ = [
    "DEFAULT_DATABASE_URL",
    "DEFAULT_SERVICE_NAME",
    "DatabaseSettings",
    "ReconcilerSettings",
    "get_settings",
]
