"""Small helpers shared across modules."""

import math
from datetime import UTC, datetime

from reconciler.constants import DEFAULT_CONFIDENCE


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def normalize(value: str) -> str:
    """Return the dedup key for a preference or constraint string (trimmed, lowercase)."""
    return value.strip().lower()


def clamp_confidence(confidence: float | None, default: float = DEFAULT_CONFIDENCE) -> float:
    """Clamp a confidence score into [0, 1]; ``None`` and NaN become ``default``."""
    if confidence is None:
        return default
    confidence = float(confidence)
    if math.isnan(confidence):
        return default
    return max(0.0, min(1.0, confidence))
