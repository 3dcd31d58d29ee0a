"""Pydantic models for the canonical preference document and the review queue.

Records that are persisted (preference values, constraints, learned items) use
camelCase keys on the wire and accept either key style on input. The
document itself keeps its historical snake_case slot names.
"""

from collections.abc import Iterator
from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from reconciler.constants import CANONICAL_CATEGORIES, CONSTRAINT_KEY_PREFIX, DEFAULT_CONFIDENCE
from reconciler.enums import (
    Budget,
    ConstraintIntent,
    ConstraintScope,
    ConstraintSource,
    ConstraintTargetType,
    LearnedOrigin,
    PreferenceSource,
    ReviewStatus,
    Sentiment,
)
from reconciler.utils import clamp_confidence, normalize, utc_now


class CamelModel(BaseModel):
    """Base for records stored with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def intent_from_raw(raw: object) -> ConstraintIntent:
    """Map any legacy/extracted intent onto the two unified intents.

    ``strictly_avoid`` is kept; ``avoid``, ``limit``, ``prefer`` and missing
    values all become ``avoid``.
    """
    if isinstance(raw, str) and raw.strip().lower() == ConstraintIntent.STRICTLY_AVOID:
        return ConstraintIntent.STRICTLY_AVOID
    return ConstraintIntent.AVOID


def _text(value: object) -> object:
    # Extraction output sometimes carries numbers where text is expected.
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class PreferenceValue(CamelModel):
    """A single preference entry; ``normalized_value`` is its dedup key."""

    value: str
    normalized_value: str
    source: PreferenceSource = PreferenceSource.FORM
    sentiment: Sentiment = Sentiment.LIKE
    confidence: float = DEFAULT_CONFIDENCE
    evidence: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def _accept_stored_variants(cls, data: Any) -> Any:
        """Accept the older ``intent``/``addedAt`` keys and fill a missing normalized value."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "sentiment" not in data and "intent" in data:
            data["sentiment"] = data.pop("intent")
        if "addedAt" in data and "createdAt" not in data and "created_at" not in data:
            data["createdAt"] = data.pop("addedAt")
        for key in ("createdAt", "created_at"):
            if key in data and data[key] is None:
                del data[key]
        value = _text(data.get("value"))
        data["value"] = value
        if isinstance(value, str) and not (data.get("normalizedValue") or data.get("normalized_value")):
            data["normalizedValue"] = normalize(value)
        return data

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return clamp_confidence(v)


class PreferenceCategory(BaseModel):
    """Ordered list of values; normalized values are unique, first entry wins."""

    values: list[PreferenceValue] = Field(default_factory=list)

    @model_validator(mode="after")
    def _dedupe(self) -> Self:
        seen: set[str] = set()
        unique: list[PreferenceValue] = []
        for entry in self.values:
            if not entry.normalized_value or entry.normalized_value in seen:
                continue
            seen.add(entry.normalized_value)
            unique.append(entry)
        if len(unique) != len(self.values):
            self.values = unique
        return self

    @property
    def normalized_values(self) -> set[str]:
        return {v.normalized_value for v in self.values}


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------


class UnifiedConstraint(CamelModel):
    """A value the user wants excluded from recommendations."""

    id: str
    target_type: ConstraintTargetType
    target_value: str
    normalized_value: str
    scope: ConstraintScope = ConstraintScope.GLOBAL
    applies_to: list[str] | None = None
    intent: ConstraintIntent = ConstraintIntent.AVOID
    source: ConstraintSource = ConstraintSource.MANUAL
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def _fill_normalized(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        target = _text(data.get("targetValue", data.get("target_value")))
        if isinstance(target, str) and not (data.get("normalizedValue") or data.get("normalized_value")):
            data["normalizedValue"] = normalize(target)
        if data.get("createdAt", "") is None:
            del data["createdAt"]
        return data

    @field_validator("intent", mode="before")
    @classmethod
    def _coerce_intent(cls, v: Any) -> ConstraintIntent:
        return intent_from_raw(v)


class UnifiedConstraintsType(CamelModel):
    """Constraint list plus the budget bracket."""

    items: list[UnifiedConstraint] = Field(default_factory=list)
    budget: Budget = Budget.NO_PREFERENCE


class CustomConstraint(CamelModel):
    """Free-form constraint of the legacy ``ConstraintsType.custom`` list."""

    id: str | None = None
    category: str = ""
    rule: str = ""
    value: str
    intent: str = ConstraintIntent.AVOID.value
    source: ConstraintSource = ConstraintSource.MANUAL
    confidence: float = DEFAULT_CONFIDENCE
    created_at: datetime | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return clamp_confidence(v)


class LegacyConstraints(CamelModel):
    """Flat-array constraint shape written by older clients."""

    avoid_ingredients: list[str] = Field(default_factory=list)
    avoid_brands: list[str] = Field(default_factory=list)
    avoid_product_forms: list[str] = Field(default_factory=list)
    budget: Budget = Budget.NO_PREFERENCE
    custom: list[CustomConstraint] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class UserPreferences(BaseModel):
    """The single preference document persisted per user.

    Empty categories are dropped on validation so that "no preference" and
    "never touched" look the same.
    """

    model_config = ConfigDict(populate_by_name=True)

    skin_type: PreferenceCategory | None = None
    hair_type: PreferenceCategory | None = None
    food_preferences: PreferenceCategory | None = None
    lifestyle: PreferenceCategory | None = None
    genre_preferences: PreferenceCategory | None = None
    goals: PreferenceCategory | None = None
    custom_categories: dict[str, PreferenceCategory] = Field(default_factory=dict)
    unified_constraints: UnifiedConstraintsType = Field(
        default_factory=UnifiedConstraintsType, alias="unifiedConstraints"
    )
    onboarding_completed: bool = False
    last_updated: datetime | None = None

    @model_validator(mode="after")
    def _drop_empty_categories(self) -> Self:
        for field in CANONICAL_CATEGORIES:
            category = getattr(self, str(field))
            if category is not None and not category.values:
                setattr(self, str(field), None)
        if any(not c.values for c in self.custom_categories.values()):
            self.custom_categories = {k: c for k, c in self.custom_categories.items() if c.values}
        return self

    def get_category(self, field: str) -> PreferenceCategory | None:
        """Return a canonical slot or custom category by name."""
        if field in CANONICAL_CATEGORIES:
            category: PreferenceCategory | None = getattr(self, str(field))
            return category
        return self.custom_categories.get(field)

    def with_category(self, field: str, category: PreferenceCategory | None) -> "UserPreferences":
        """Return a copy with ``field`` replaced; an empty category is stored as absent."""
        updated = self.model_copy(deep=True)
        if category is not None and not category.values:
            category = None
        if field in CANONICAL_CATEGORIES:
            setattr(updated, str(field), category)
        elif category is None:
            updated.custom_categories.pop(field, None)
        else:
            updated.custom_categories[field] = category
        return updated

    def with_constraints(self, constraints: UnifiedConstraintsType) -> "UserPreferences":
        updated = self.model_copy(deep=True)
        updated.unified_constraints = constraints.model_copy(deep=True)
        return updated

    def iter_categories(self) -> Iterator[tuple[str, PreferenceCategory]]:
        """Yield ``(name, category)`` for every present canonical and custom category."""
        for field in CANONICAL_CATEGORIES:
            category = getattr(self, str(field))
            if category is not None:
                yield field.value, category
        yield from self.custom_categories.items()

    def to_document(self) -> dict[str, Any]:
        """Serialize to the canonical JSON shape written to the store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Conversation metadata (raw external records, validated at the boundary)
# ---------------------------------------------------------------------------


class _ReviewStamps(CamelModel):
    approved_at: datetime | None = None
    dismissed: bool = False
    dismissed_at: datetime | None = None

    @field_validator("dismissed", mode="before")
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        return bool(v)


class DetectedConstraintRecord(_ReviewStamps):
    """Entry of ``metadata.detected_constraints``."""

    category: str
    rule: str = ""
    value: str
    intent: str | None = None
    confidence: float = DEFAULT_CONFIDENCE
    evidence: str | None = None
    extracted_at: datetime | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _value_text(cls, v: Any) -> Any:
        return _text(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return clamp_confidence(v)


class DetectedPreferenceRecord(_ReviewStamps):
    """Entry of ``metadata.detected_preferences``."""

    category: str
    key: str
    value: str
    confidence: float = DEFAULT_CONFIDENCE
    evidence: str | None = None
    extracted_at: datetime | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _value_text(cls, v: Any) -> Any:
        return _text(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return clamp_confidence(v)


class ScopeReview(_ReviewStamps):
    """Review stamp for a value found in ``metadata.scopes`` (which has no room for one)."""

    scope: str
    key: str
    value: str


class DismissedInlineItem(CamelModel):
    """A value the user waved off directly in the chat, suppressing it from review."""

    value: str
    scope: str | None = None
    reason: str | None = None
    dismissed_at: datetime | None = None
    dismissed_via: str | None = None


class ConversationMetadata(BaseModel):
    """Typed view of the conversation-memory metadata document."""

    scopes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    detected_constraints: list[DetectedConstraintRecord] = Field(default_factory=list)
    detected_preferences: list[DetectedPreferenceRecord] = Field(default_factory=list)
    scope_reviews: list[ScopeReview] = Field(default_factory=list)
    dismissed_inline: list[DismissedInlineItem] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Output of one extraction pass over a conversation."""

    scopes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    detected_constraints: list[DetectedConstraintRecord] = Field(default_factory=list)
    detected_preferences: list[DetectedPreferenceRecord] = Field(default_factory=list)


class LearnedPreference(CamelModel):
    """Externally-sourced candidate awaiting approval or dismissal."""

    scope: str
    key: str
    value: str
    confidence: float = DEFAULT_CONFIDENCE
    evidence: str | None = None
    extracted_at: datetime | None = None
    approved_at: datetime | None = None
    dismissed: bool = False
    constraint_rule: str | None = None
    constraint_intent: str | None = None
    origin: LearnedOrigin = LearnedOrigin.DETECTED_PREFERENCE

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return clamp_confidence(v)

    @property
    def normalized_value(self) -> str:
        return normalize(self.value)

    @property
    def is_pending(self) -> bool:
        return self.approved_at is None and not self.dismissed

    @property
    def is_constraint(self) -> bool:
        """Constraint-shaped: ``constraint:`` key plus rule or intent metadata."""
        return self.key.startswith(CONSTRAINT_KEY_PREFIX) and (
            self.constraint_rule is not None or self.constraint_intent is not None
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ConstraintDetection(CamelModel):
    """Advisory classification of free-text constraint input."""

    target_type: ConstraintTargetType
    scope: ConstraintScope
    confidence: float


class PreferenceDiff(BaseModel):
    """Normalized values added to / removed from a draft relative to committed state."""

    added: int = 0
    removed: int = 0


class OperationResult(BaseModel):
    """Success flag plus an error message for failures surfaced to the caller."""

    success: bool
    error: str | None = None


class ReviewResult(OperationResult):
    """Outcome of approving or dismissing a learned preference."""

    status: ReviewStatus
    low_confidence: bool = False
    target: str | None = None


class LearnedPreferencesResult(OperationResult):
    """Pending review items, or the last known ones when a fresh read failed."""

    items: list[LearnedPreference] = []
