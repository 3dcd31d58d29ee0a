"""Folding a fresh extraction pass into stored conversation metadata.

Precedence: constraints the user already confirmed always win, values waved
off inline suppress detections, and learned memory is the fallback. Keys of
the metadata document this module does not own are carried through untouched.
"""

import logging
from collections.abc import Mapping
from typing import Any

from reconciler.enums import ConstraintSource, LearnedOrigin
from reconciler.models import (
    DetectedConstraintRecord,
    DetectedPreferenceRecord,
    ExtractionResult,
    LearnedPreference,
    UserPreferences,
)
from reconciler.review_queue import coerce_metadata, constraint_key, is_already_adopted
from reconciler.utils import normalize, utc_now

logger = logging.getLogger(__name__)


def _record_to_raw(record: DetectedConstraintRecord | DetectedPreferenceRecord) -> dict[str, Any]:
    raw = record.model_dump(mode="json", by_alias=True, exclude_none=True)
    raw["extractedAt"] = utc_now().isoformat()
    raw["source"] = ConstraintSource.CHATBOT.value
    return raw


def _merge_scopes(existing: Mapping[str, Any], incoming: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
    merged = {k: dict(v) for k, v in existing.items() if isinstance(v, Mapping)}
    for scope, entries in incoming.items():
        if not entries:
            continue
        merged[scope] = {**merged.get(scope, {}), **entries}
    return merged


def merge_extraction(
    raw_metadata: Mapping[str, Any] | None,
    extraction: ExtractionResult,
    preferences: UserPreferences,
) -> dict[str, Any]:
    """Return the full metadata document after applying ``extraction``.

    Scopes are shallow-merged per scope. A detected constraint is appended
    unless the same category/value is already in memory, the value is already
    a unified constraint, or it was dismissed inline. A detected preference is
    skipped when already saved, dismissed inline, or already approved or
    dismissed for the same category/key. Otherwise it is upserted into the
    pending entry for its (category, key), keeping whichever has the higher
    confidence; reviewed entries for other values are left as they are.
    """
    raw = dict(raw_metadata or {})
    current = coerce_metadata(raw)
    suppressed = {normalize(d.value) for d in current.dismissed_inline}

    constraints = _raw_list(raw, "detected_constraints")
    for record in extraction.detected_constraints:
        value = normalize(record.value)
        in_memory = any(
            c.category == record.category and normalize(c.value) == value for c in current.detected_constraints
        )
        adopted = is_already_adopted(
            preferences,
            LearnedPreference(
                scope=record.category,
                key=constraint_key(record.value),
                value=record.value,
                constraint_rule=record.rule,
                origin=LearnedOrigin.DETECTED_CONSTRAINT,
            ),
        )
        if in_memory:
            logger.debug("Skipping constraint %r: already in memory", record.value)
        elif adopted:
            logger.debug("Skipping constraint %r: already a user constraint", record.value)
        elif value in suppressed:
            logger.debug("Skipping constraint %r: dismissed inline", record.value)
        else:
            constraints.append(_record_to_raw(record))
            current.detected_constraints.append(record)

    detected = _raw_list(raw, "detected_preferences")
    for record in extraction.detected_preferences:
        value = normalize(record.value)
        item = LearnedPreference(scope=record.category, key=record.key, value=record.value)
        if is_already_adopted(preferences, item):
            logger.debug("Skipping preference %r: already saved", record.value)
            continue
        if value in suppressed:
            logger.debug("Skipping preference %r: dismissed inline", record.value)
            continue

        same_key = [
            i
            for i, p in enumerate(detected)
            if isinstance(p, Mapping) and p.get("category") == record.category and p.get("key") == record.key
        ]
        if any(_is_reviewed(detected[i]) and normalize(str(detected[i].get("value", ""))) == value for i in same_key):
            logger.debug("Skipping preference %r: already reviewed", record.value)
            continue

        # Reviewed entries keep their stamps; only a pending entry is replaced.
        idx = next((i for i in same_key if not _is_reviewed(detected[i])), None)
        if idx is None:
            detected.append(_record_to_raw(record))
        elif record.confidence > _confidence(detected[idx]):
            detected[idx] = _record_to_raw(record)

    merged = {
        **raw,
        "scopes": _merge_scopes(current.scopes, extraction.scopes),
        "detected_constraints": constraints,
        "detected_preferences": detected,
    }
    logger.info(
        "Merged extraction: %d constraints, %d preferences, %d scopes",
        len(constraints),
        len(detected),
        len(merged["scopes"]),
    )
    return merged


def _is_reviewed(entry: Mapping[str, Any]) -> bool:
    return bool(entry.get("approvedAt") or entry.get("approved_at") or entry.get("dismissed"))


def _confidence(entry: Mapping[str, Any]) -> float:
    try:
        return float(entry.get("confidence", 0.0))
    except (TypeError, ValueError):
        return 0.0


def _raw_list(raw: Mapping[str, Any], field: str) -> list[Any]:
    entries = raw.get(field)
    return list(entries) if isinstance(entries, list) else []
