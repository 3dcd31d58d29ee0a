"""Enums for the preference document, constraints, and review queue."""

import enum


class CanonicalCategory(enum.StrEnum):
    """The six fixed preference slots of a UserPreferences document."""

    SKIN_TYPE = "skin_type"
    HAIR_TYPE = "hair_type"
    FOOD_PREFERENCES = "food_preferences"
    LIFESTYLE = "lifestyle"
    GENRE_PREFERENCES = "genre_preferences"
    GOALS = "goals"


class PreferenceSource(enum.StrEnum):
    """Where a preference value came from."""

    FORM = "form"
    CHATBOT = "chatbot"
    MANUAL = "manual"


class Sentiment(enum.StrEnum):
    """Whether the user likes or dislikes a value."""

    LIKE = "like"
    DISLIKE = "dislike"


class ConstraintTargetType(enum.StrEnum):
    """What kind of thing a constraint excludes."""

    INGREDIENT = "ingredient"
    BRAND = "brand"
    GENRE = "genre"
    FOOD_TYPE = "food_type"
    FORMAT = "format"
    RULE = "rule"


class ConstraintScope(enum.StrEnum):
    """Life domain a constraint applies to."""

    GLOBAL = "global"
    SKINCARE = "skincare"
    HAIRCARE = "haircare"
    FOOD = "food"
    ENTERTAINMENT = "entertainment"
    SUPPLEMENTS = "supplements"


class ConstraintIntent(enum.StrEnum):
    """Soft avoid vs. strict exclusion."""

    AVOID = "avoid"
    STRICTLY_AVOID = "strictly_avoid"


class ConstraintSource(enum.StrEnum):
    """Who created a constraint."""

    MANUAL = "manual"
    CHATBOT = "chatbot"


class Budget(enum.StrEnum):
    """Budget bracket stored alongside constraints."""

    NO_PREFERENCE = "no_preference"
    AFFORDABLE = "affordable"
    MID_RANGE = "mid-range"
    PREMIUM = "premium"


class LearnedOrigin(enum.StrEnum):
    """Which metadata list a learned preference was derived from."""

    DETECTED_CONSTRAINT = "detected_constraint"
    DETECTED_PREFERENCE = "detected_preference"
    SCOPE_MEMORY = "scope_memory"


class ReviewStatus(enum.StrEnum):
    """Outcome of an approve/dismiss call."""

    APPROVED = "approved"
    DISMISSED = "dismissed"
    ALREADY_PROCESSED = "already_processed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class ConfidenceLevel(enum.StrEnum):
    """Coarse confidence bucket shown next to learned items."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
