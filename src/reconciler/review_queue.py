"""Review queue over values learned from conversations.

Raw conversation metadata is validated into ``ConversationMetadata`` here and
nowhere else; everything downstream only sees ``LearnedPreference`` items.
An item is pending until it is approved or dismissed, and it never leaves a
terminal state.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from reconciler.categories import add_value_to_category, value_exists_in_category
from reconciler.constants import CONSTRAINT_KEY_PREFIX, DEFAULT_SCOPE_MEMORY_CONFIDENCE
from reconciler.constraints import add_unified_constraint, create_unified_constraint
from reconciler.enums import ConstraintIntent, ConstraintSource, LearnedOrigin, PreferenceSource, Sentiment
from reconciler.models import (
    ConversationMetadata,
    DetectedConstraintRecord,
    DetectedPreferenceRecord,
    DismissedInlineItem,
    LearnedPreference,
    ScopeReview,
    UserPreferences,
    intent_from_raw,
)
from reconciler.normalizer import create_preference_value
from reconciler.routing import route_preference, rule_to_target_type, scope_to_constraint_scope
from reconciler.utils import normalize

logger = logging.getLogger(__name__)

UNIFIED_CONSTRAINTS_TARGET = "unifiedConstraints"

_METADATA_LISTS: dict[str, type] = {
    "detected_constraints": DetectedConstraintRecord,
    "detected_preferences": DetectedPreferenceRecord,
    "scope_reviews": ScopeReview,
    "dismissed_inline": DismissedInlineItem,
}


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------


def coerce_metadata(raw: Mapping[str, Any] | None) -> ConversationMetadata:
    """Validate raw metadata entry by entry; malformed entries are dropped with a warning."""
    if not raw:
        return ConversationMetadata()

    scopes: dict[str, dict[str, Any]] = {}
    raw_scopes = raw.get("scopes")
    if isinstance(raw_scopes, Mapping):
        for scope, entries in raw_scopes.items():
            if isinstance(entries, Mapping):
                scopes[str(scope)] = dict(entries)
            else:
                logger.warning("Dropping scope %r: expected a mapping, got %s", scope, type(entries).__name__)

    lists: dict[str, list[Any]] = {}
    for field, model in _METADATA_LISTS.items():
        entries = raw.get(field)
        if entries is None:
            lists[field] = []
            continue
        if not isinstance(entries, list):
            logger.warning("Dropping metadata.%s: expected a list", field)
            lists[field] = []
            continue
        valid = []
        for entry in entries:
            try:
                valid.append(model.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Dropping malformed %s entry: %s", field, exc.errors()[0].get("msg"))
        lists[field] = valid

    return ConversationMetadata(scopes=scopes, **lists)


def constraint_key(value: str) -> str:
    return f"{CONSTRAINT_KEY_PREFIX}{normalize(value)}"


# ---------------------------------------------------------------------------
# Queue construction
# ---------------------------------------------------------------------------


def _target_field(scope: str) -> str:
    routed = route_preference(scope)
    return routed.value if routed is not None else scope.strip()


def is_already_adopted(preferences: UserPreferences, item: LearnedPreference) -> bool:
    """True when the item's value already lives in the document it would be applied to."""
    if item.is_constraint:
        return any(c.normalized_value == item.normalized_value for c in preferences.unified_constraints.items)
    return value_exists_in_category(preferences.get_category(_target_field(item.scope)), item.normalized_value)


def _scope_values(value: Any) -> list[str]:
    if isinstance(value, bool) or value is None:
        return []
    if isinstance(value, str | int | float):
        return [str(value)]
    if isinstance(value, list):
        return [str(v) for v in value if isinstance(v, str | int | float) and not isinstance(v, bool)]
    return []


def _scope_review(metadata: ConversationMetadata, scope: str, key: str, value: str) -> ScopeReview | None:
    for review in metadata.scope_reviews:
        if _matches(review.scope, review.key, review.value, scope, key, value):
            return review
    return None


def _matches(scope: str, key: str, value: str, want_scope: str, want_key: str, want_value: str | None) -> bool:
    return (
        normalize(scope) == normalize(want_scope)
        and normalize(key) == normalize(want_key)
        and (want_value is None or normalize(value) == normalize(want_value))
    )


def build_learned_preferences(
    metadata: ConversationMetadata,
    preferences: UserPreferences,
    *,
    scope_confidence: float = DEFAULT_SCOPE_MEMORY_CONFIDENCE,
) -> list[LearnedPreference]:
    """Derive review items from conversation metadata.

    Pending items whose value the user already has, or waved off inline, are
    left out. Approved and dismissed items always stay in the result so later
    approve/dismiss calls see them as processed. Reviews recorded for values
    with no metadata entry of their own (``scope_reviews``) come last.
    """
    suppressed = {normalize(d.value) for d in metadata.dismissed_inline}
    items: list[LearnedPreference] = []
    seen: set[tuple[str, str, str]] = set()

    def emit(item: LearnedPreference) -> None:
        identity = (normalize(item.scope), normalize(item.key), item.normalized_value)
        if not item.normalized_value or identity in seen:
            return
        seen.add(identity)
        if not item.is_pending:
            items.append(item)
            return
        if item.normalized_value in suppressed:
            logger.debug("Skipping %s=%s: dismissed inline", item.key, item.value)
            return
        if is_already_adopted(preferences, item):
            logger.debug("Skipping %s=%s: already in preferences", item.key, item.value)
            return
        items.append(item)

    for record in metadata.detected_constraints:
        emit(
            LearnedPreference(
                scope=record.category,
                key=constraint_key(record.value),
                value=record.value,
                confidence=record.confidence,
                evidence=record.evidence,
                extracted_at=record.extracted_at,
                approved_at=record.approved_at,
                dismissed=record.dismissed,
                constraint_rule=record.rule,
                constraint_intent=record.intent or ConstraintIntent.AVOID.value,
                origin=LearnedOrigin.DETECTED_CONSTRAINT,
            )
        )

    for record in metadata.detected_preferences:
        emit(
            LearnedPreference(
                scope=record.category,
                key=record.key,
                value=record.value,
                confidence=record.confidence,
                evidence=record.evidence,
                extracted_at=record.extracted_at,
                approved_at=record.approved_at,
                dismissed=record.dismissed,
                origin=LearnedOrigin.DETECTED_PREFERENCE,
            )
        )

    for scope, entries in metadata.scopes.items():
        for key, raw_value in entries.items():
            for value in _scope_values(raw_value):
                review = _scope_review(metadata, scope, key, value)
                emit(
                    LearnedPreference(
                        scope=scope,
                        key=str(key),
                        value=value,
                        confidence=scope_confidence,
                        approved_at=review.approved_at if review else None,
                        dismissed=review.dismissed if review else False,
                        origin=LearnedOrigin.SCOPE_MEMORY,
                    )
                )

    for review in metadata.scope_reviews:
        if review.approved_at is None and not review.dismissed:
            continue
        emit(
            LearnedPreference(
                scope=review.scope,
                key=review.key,
                value=review.value,
                confidence=scope_confidence,
                approved_at=review.approved_at,
                dismissed=review.dismissed,
                origin=LearnedOrigin.SCOPE_MEMORY,
            )
        )

    return items


def pending_learned_preferences(items: Iterable[LearnedPreference]) -> list[LearnedPreference]:
    return [item for item in items if item.is_pending]


def find_learned_preference(
    items: Iterable[LearnedPreference],
    scope: str,
    key: str,
    value: str | None = None,
) -> LearnedPreference | None:
    """First matching item, preferring a pending one over a processed one."""
    matches = [item for item in items if _matches(item.scope, item.key, item.value, scope, key, value)]
    for item in matches:
        if item.is_pending:
            return item
    return matches[0] if matches else None


def group_by_scope(items: Iterable[LearnedPreference]) -> dict[str, list[LearnedPreference]]:
    grouped: dict[str, list[LearnedPreference]] = {}
    for item in items:
        grouped.setdefault(item.scope, []).append(item)
    return grouped


# ---------------------------------------------------------------------------
# Applying and stamping
# ---------------------------------------------------------------------------


def apply_learned_preference(preferences: UserPreferences, item: LearnedPreference) -> tuple[UserPreferences, str]:
    """Add the item's value to ``preferences``; returns the new document and the field written.

    Constraint-shaped items become a chatbot-sourced UnifiedConstraint.
    Everything else becomes a chatbot-sourced PreferenceValue in the routed
    canonical slot, or in ``custom_categories[scope]`` when the scope has no
    canonical home.
    """
    if item.is_constraint:
        constraint = create_unified_constraint(
            rule_to_target_type(item.constraint_rule),
            item.value,
            scope=scope_to_constraint_scope(item.scope),
            intent=intent_from_raw(item.constraint_intent),
            source=ConstraintSource.CHATBOT,
        )
        updated = add_unified_constraint(preferences.unified_constraints, constraint)
        return preferences.with_constraints(updated), UNIFIED_CONSTRAINTS_TARGET

    field = _target_field(item.scope)
    value = create_preference_value(
        item.value,
        PreferenceSource.CHATBOT,
        Sentiment.LIKE,
        item.confidence,
        item.evidence,
    )
    category = add_value_to_category(preferences.get_category(field), value)
    return preferences.with_category(field, category), field


def _stamp(entry: dict[str, Any], approved_at: datetime | None, dismissed_at: datetime | None) -> dict[str, Any]:
    stamped = dict(entry)
    if approved_at is not None:
        stamped["approvedAt"] = approved_at.isoformat()
    if dismissed_at is not None:
        stamped["dismissed"] = True
        stamped["dismissedAt"] = dismissed_at.isoformat()
    return stamped


def _scope_reviews_patch(
    raw: Mapping[str, Any],
    item: LearnedPreference,
    approved_at: datetime | None,
    dismissed_at: datetime | None,
) -> dict[str, Any]:
    reviews = [r for r in raw.get("scope_reviews") or [] if isinstance(r, Mapping)]
    kept = [
        dict(r)
        for r in reviews
        if not _matches(
            str(r.get("scope", "")), str(r.get("key", "")), str(r.get("value", "")),
            item.scope, item.key, item.value,
        )
    ]
    review = {"scope": item.scope, "key": item.key, "value": item.value}
    return {"scope_reviews": [*kept, _stamp(review, approved_at, dismissed_at)]}


def stamp_learned_preference(
    raw: Mapping[str, Any] | None,
    item: LearnedPreference,
    *,
    approved_at: datetime | None = None,
    dismissed_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the partial metadata update recording a review outcome.

    Detected items are stamped in place; entries keep every key they had and
    only the stamp keys are added. Scope memory items, and items with no raw
    entry of their own (ad-hoc approvals), are recorded in ``scope_reviews``.
    """
    raw = raw or {}

    if item.origin == LearnedOrigin.SCOPE_MEMORY:
        return _scope_reviews_patch(raw, item, approved_at, dismissed_at)

    field = "detected_constraints" if item.origin == LearnedOrigin.DETECTED_CONSTRAINT else "detected_preferences"
    entries = raw.get(field)
    if not isinstance(entries, list):
        entries = []

    matched = False
    patched: list[Any] = []
    for entry in entries:
        if isinstance(entry, Mapping) and _entry_matches(entry, item):
            matched = True
            patched.append(_stamp(dict(entry), approved_at, dismissed_at))
        else:
            patched.append(entry)
    if not matched:
        return _scope_reviews_patch(raw, item, approved_at, dismissed_at)
    return {field: patched}


def _entry_matches(entry: Mapping[str, Any], item: LearnedPreference) -> bool:
    if normalize(str(entry.get("category", ""))) != normalize(item.scope):
        return False
    if normalize(str(entry.get("value", ""))) != item.normalized_value:
        return False
    if item.origin == LearnedOrigin.DETECTED_PREFERENCE:
        return normalize(str(entry.get("key", ""))) == normalize(item.key)
    return True


class ReviewQueue:
    """In-memory queue of learned items for one session."""

    def __init__(self, items: Iterable[LearnedPreference] = ()) -> None:
        self._items = list(items)

    @property
    def items(self) -> list[LearnedPreference]:
        return list(self._items)

    @property
    def pending(self) -> list[LearnedPreference]:
        return pending_learned_preferences(self._items)

    def find(self, scope: str, key: str, value: str | None = None) -> LearnedPreference | None:
        return find_learned_preference(self._items, scope, key, value)

    def find_pending(self, scope: str, key: str, value: str | None = None) -> list[LearnedPreference]:
        return [i for i in self.pending if _matches(i.scope, i.key, i.value, scope, key, value)]

    def _locate(self, item: LearnedPreference) -> int | None:
        for idx, existing in enumerate(self._items):
            if existing is item or (
                existing.origin == item.origin
                and _matches(existing.scope, existing.key, existing.value, item.scope, item.key, item.value)
            ):
                return idx
        return None

    def _transition(self, item: LearnedPreference, update: dict[str, Any]) -> bool:
        idx = self._locate(item)
        current = self._items[idx] if idx is not None else item
        if not current.is_pending:
            return False
        updated = current.model_copy(update=update)
        if idx is None:
            self._items.append(updated)
        else:
            self._items[idx] = updated
        return True

    def mark_approved(self, item: LearnedPreference, at: datetime) -> bool:
        """Move ``item`` to approved; False when it was already processed."""
        return self._transition(item, {"approved_at": at})

    def mark_dismissed(self, item: LearnedPreference) -> bool:
        return self._transition(item, {"dismissed": True})

    def __len__(self) -> int:
        return len(self.pending)
