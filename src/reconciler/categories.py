"""Add/remove/merge operations over a category's value list.

All operations are pure and keyed by ``normalized_value``. Duplicate
normalized values resolve first-write-wins: a later add with the same key,
whatever its casing or source, is a no-op.
"""

from collections.abc import Iterable

from reconciler.constants import PLACEHOLDER_VALUES
from reconciler.enums import PreferenceSource
from reconciler.models import PreferenceCategory, PreferenceValue, UserPreferences
from reconciler.utils import normalize


def value_exists_in_category(category: PreferenceCategory | None, normalized_value: str) -> bool:
    if category is None:
        return False
    return any(v.normalized_value == normalized_value for v in category.values)


def add_value_to_category(
    category: PreferenceCategory | None,
    value: PreferenceValue | None,
) -> PreferenceCategory:
    """Append ``value`` unless its normalized key is already present.

    A ``None`` or blank value (see ``create_preference_value``) leaves the
    category as it was.
    """
    existing = list(category.values) if category is not None else []
    if value is None or not value.normalized_value.strip():
        return PreferenceCategory(values=existing)
    if any(v.normalized_value == value.normalized_value for v in existing):
        return PreferenceCategory(values=existing)
    return PreferenceCategory(values=[*existing, value])


def remove_from_category(category: PreferenceCategory | None, normalized_value: str) -> PreferenceCategory:
    """Remove every entry with ``normalized_value``; an absent key returns the category unchanged."""
    if category is None:
        return PreferenceCategory()
    key = normalize(normalized_value)
    if not value_exists_in_category(category, key):
        return category
    return PreferenceCategory(values=[v for v in category.values if v.normalized_value != key])


def merge_values_into_category(
    new_category: PreferenceCategory | None,
    preserve_values: Iterable[PreferenceValue],
) -> PreferenceCategory:
    """Union a resubmitted category with values that must survive the resubmission.

    Entries already in ``new_category`` win over ``preserve_values`` on
    conflicting normalized keys.
    """
    merged = PreferenceCategory(values=list(new_category.values)) if new_category is not None else PreferenceCategory()
    for value in preserve_values:
        merged = add_value_to_category(merged, value)
    return merged


def chatbot_values(category: PreferenceCategory | None) -> list[PreferenceValue]:
    """Values learned from conversations, which a form resubmission must keep."""
    if category is None:
        return []
    return [v for v in category.values if v.source == PreferenceSource.CHATBOT]


def count_total_preferences(preferences: UserPreferences) -> int:
    """Count stored values across all categories, ignoring form placeholders."""
    return sum(
        1
        for _, category in preferences.iter_categories()
        for v in category.values
        if v.normalized_value not in PLACEHOLDER_VALUES
    )
