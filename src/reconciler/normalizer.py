"""Value normalization and PreferenceValue construction."""

import logging
from collections.abc import Iterable

from reconciler.constants import HIGH_CONFIDENCE, MIN_AUTO_ROUTE_CONFIDENCE, PLACEHOLDER_VALUES
from reconciler.enums import ConfidenceLevel, PreferenceSource, Sentiment
from reconciler.models import PreferenceValue
from reconciler.utils import clamp_confidence, normalize, utc_now

logger = logging.getLogger(__name__)

__all__ = [
    "clamp_confidence",
    "confidence_level",
    "create_preference_value",
    "create_preference_values",
    "is_placeholder",
    "normalize",
]


def is_placeholder(value: str) -> bool:
    """True for blank strings and form placeholders such as "Other"."""
    normalized = normalize(value)
    return not normalized or normalized in PLACEHOLDER_VALUES


def create_preference_value(
    value: str,
    source: PreferenceSource,
    sentiment: Sentiment = Sentiment.LIKE,
    confidence: float | None = None,
    evidence: str | None = None,
) -> PreferenceValue | None:
    """Build a PreferenceValue from user or extracted input.

    Returns None for blank input; blank values are dropped rather than raised.
    Confidence is clamped into [0, 1] and defaults to 1.0 when absent.
    """
    display = value.strip()
    if not display:
        logger.debug("Dropping blank preference value from %s", source)
        return None

    return PreferenceValue(
        value=display,
        normalized_value=normalize(display),
        source=source,
        sentiment=sentiment,
        confidence=clamp_confidence(confidence),
        evidence=evidence.strip() if evidence and evidence.strip() else None,
        created_at=utc_now(),
    )


def create_preference_values(
    values: Iterable[str],
    source: PreferenceSource,
    sentiment: Sentiment = Sentiment.LIKE,
) -> list[PreferenceValue]:
    """Build values for a whole form field, skipping blanks and placeholders."""
    created: list[PreferenceValue] = []
    for raw in values:
        if not isinstance(raw, str) or is_placeholder(raw):
            continue
        pref = create_preference_value(raw, source, sentiment)
        if pref is not None:
            created.append(pref)
    return created


def confidence_level(confidence: float) -> ConfidenceLevel:
    if confidence >= HIGH_CONFIDENCE:
        return ConfidenceLevel.HIGH
    if confidence >= MIN_AUTO_ROUTE_CONFIDENCE:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
