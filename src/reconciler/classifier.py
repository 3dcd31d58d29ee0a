"""Heuristic classification of free-text constraint input.

The result is advisory: callers may override the target type or scope before
building a UnifiedConstraint, and low confidence never blocks construction.
"""

from reconciler.constants import (
    BRAND_KEYWORDS,
    EXTRA_KEYWORD_BONUS,
    FOOD_KEYWORDS,
    FORMAT_KEYWORDS,
    GENRE_KEYWORDS,
    INGREDIENT_KEYWORDS,
    MAX_CLASSIFIER_CONFIDENCE,
    UNMATCHED_CONSTRAINT_CONFIDENCE,
)
from reconciler.enums import ConstraintScope, ConstraintTargetType
from reconciler.models import ConstraintDetection

# Checked in order. "oil" sits in both the format and ingredient lexicons;
# format is checked first.
_LEXICONS: tuple[tuple[tuple[str, ...], ConstraintTargetType, ConstraintScope, float], ...] = (
    (GENRE_KEYWORDS, ConstraintTargetType.GENRE, ConstraintScope.ENTERTAINMENT, 0.9),
    (FOOD_KEYWORDS, ConstraintTargetType.FOOD_TYPE, ConstraintScope.FOOD, 0.85),
    (FORMAT_KEYWORDS, ConstraintTargetType.FORMAT, ConstraintScope.GLOBAL, 0.8),
    (INGREDIENT_KEYWORDS, ConstraintTargetType.INGREDIENT, ConstraintScope.GLOBAL, 0.85),
    (BRAND_KEYWORDS, ConstraintTargetType.BRAND, ConstraintScope.GLOBAL, 0.8),
)


def detect_constraint_type(text: str) -> ConstraintDetection:
    """Guess target type and scope for "what do you want to avoid?" input.

    Each additional distinct keyword from the winning lexicon raises the
    confidence slightly, capped below certainty.
    """
    text_lc = text.lower()
    for keywords, target_type, scope, base_confidence in _LEXICONS:
        hits = sum(1 for keyword in keywords if keyword in text_lc)
        if hits:
            confidence = min(base_confidence + EXTRA_KEYWORD_BONUS * (hits - 1), MAX_CLASSIFIER_CONFIDENCE)
            return ConstraintDetection(target_type=target_type, scope=scope, confidence=round(confidence, 2))

    return ConstraintDetection(
        target_type=ConstraintTargetType.RULE,
        scope=ConstraintScope.GLOBAL,
        confidence=UNMATCHED_CONSTRAINT_CONFIDENCE,
    )
