"""Defaults for environment-driven settings."""

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./preferences.db"
DEFAULT_SERVICE_NAME = "reconciler"
DEFAULT_LOG_LEVEL = "INFO"
