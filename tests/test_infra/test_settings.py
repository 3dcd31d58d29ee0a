"""Tests for ReconcilerSettings and DatabaseSettings."""

import pytest
from pydantic import ValidationError

from reconciler.config import DEFAULT_DATABASE_URL, DatabaseSettings, ReconcilerSettings, get_settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Settings have sensible defaults."""
    for name in ("MIN_AUTO_ROUTE_CONFIDENCE", "SCOPE_MEMORY_CONFIDENCE", "LOG_LEVEL", "LOG_JSON", "SERVICE_NAME"):
        monkeypatch.delenv(name, raising=False)
    settings = ReconcilerSettings()
    assert settings.MIN_AUTO_ROUTE_CONFIDENCE == 0.6
    assert settings.SCOPE_MEMORY_CONFIDENCE == 0.7
    assert settings.LOG_LEVEL == "INFO"
    assert settings.LOG_JSON is True
    assert settings.SERVICE_NAME == "reconciler"


def test_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Settings can be overridden via environment variables."""
    monkeypatch.setenv("MIN_AUTO_ROUTE_CONFIDENCE", "0.75")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_JSON", "false")

    settings = ReconcilerSettings()
    assert settings.MIN_AUTO_ROUTE_CONFIDENCE == 0.75
    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.LOG_JSON is False


def test_threshold_out_of_range() -> None:
    with pytest.raises(ValidationError):
        ReconcilerSettings(MIN_AUTO_ROUTE_CONFIDENCE=1.5)


def test_get_settings_is_cached() -> None:
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_database_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = DatabaseSettings()
    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.use_null_pool is True


def test_database_url_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    assert DatabaseSettings().database_url == "sqlite+aiosqlite:///:memory:"
