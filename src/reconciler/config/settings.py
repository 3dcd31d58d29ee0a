"""Engine settings loaded from environment variables."""

import functools

from pydantic import field_validator
from pydantic_settings import BaseSettings

from reconciler.config.constants import DEFAULT_LOG_LEVEL, DEFAULT_SERVICE_NAME
from reconciler.constants import DEFAULT_SCOPE_MEMORY_CONFIDENCE, MIN_AUTO_ROUTE_CONFIDENCE


class ReconcilerSettings(BaseSettings):
    """Reconciliation engine configuration."""

    # Review queue
    MIN_AUTO_ROUTE_CONFIDENCE: float = MIN_AUTO_ROUTE_CONFIDENCE
    SCOPE_MEMORY_CONFIDENCE: float = DEFAULT_SCOPE_MEMORY_CONFIDENCE

    # Logging
    LOG_LEVEL: str = DEFAULT_LOG_LEVEL
    LOG_JSON: bool = True
    SERVICE_NAME: str = DEFAULT_SERVICE_NAME

    model_config = {"env_prefix": ""}

    @field_validator("MIN_AUTO_ROUTE_CONFIDENCE", "SCOPE_MEMORY_CONFIDENCE")
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("confidence thresholds must be between 0 and 1")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


@functools.lru_cache(maxsize=1)
def get_settings() -> ReconcilerSettings:
    """Return cached settings singleton."""
    return ReconcilerSettings()
