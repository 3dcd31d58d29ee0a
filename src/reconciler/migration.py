"""Legacy-to-canonical migration for preference documents and constraints.

Legacy documents stored each canonical slot as a flat string array (plus an
``other_<slot>`` free-text string), AI-learned values in a
``custom_preferences`` list, and constraints as flat ``avoid*`` arrays. The
migrator rewrites them into the canonical record shape without dropping any
non-blank value. Canonical input passes through unchanged, so it is safe to
run on every load.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from reconciler.categories import add_value_to_category
from reconciler.constants import (
    CANONICAL_CATEGORIES,
    LEGACY_CONSTRAINT_LIST_FIELDS,
    LEGACY_CUSTOM_PREFERENCES_FIELD,
    LEGACY_OTHER_FIELDS,
)
from reconciler.constraints import add_unified_constraint, create_unified_constraint
from reconciler.enums import (
    Budget,
    CanonicalCategory,
    ConstraintScope,
    ConstraintSource,
    ConstraintTargetType,
    PreferenceSource,
    Sentiment,
)
from reconciler.exceptions import MigrationError
from reconciler.models import (
    CustomConstraint,
    LegacyConstraints,
    PreferenceCategory,
    UnifiedConstraint,
    UnifiedConstraintsType,
    UserPreferences,
    intent_from_raw,
)
from reconciler.normalizer import create_preference_value, is_placeholder
from reconciler.routing import route_preference

logger = logging.getLogger(__name__)

_LIST_FIELD_TARGETS: dict[str, ConstraintTargetType] = {
    "avoidIngredients": ConstraintTargetType.INGREDIENT,
    "avoidBrands": ConstraintTargetType.BRAND,
    "avoidProductForms": ConstraintTargetType.FORMAT,
}

_CONSTRAINT_KEYS = ("constraints", "unifiedConstraints", "unified_constraints")


# ---------------------------------------------------------------------------
# Structural predicates
# ---------------------------------------------------------------------------


def _is_canonical_category(value: object) -> bool:
    return isinstance(value, Mapping) and isinstance(value.get("values"), list)


def is_legacy_format(prefs: object) -> bool:
    """True when any preference slot is not in the ``{values: [...]}`` shape."""
    if not isinstance(prefs, Mapping):
        return False

    for field in CANONICAL_CATEGORIES:
        value = prefs.get(field.value)
        if value is not None and not _is_canonical_category(value):
            return True

    if any(isinstance(prefs.get(other), str) and prefs[other].strip() for other in LEGACY_OTHER_FIELDS.values()):
        return True

    legacy_custom = prefs.get(LEGACY_CUSTOM_PREFERENCES_FIELD)
    return isinstance(legacy_custom, list) and len(legacy_custom) > 0


def is_legacy_constraint_format(constraints: object) -> bool:
    """True for a bare string, a bare list, or a mapping without an ``items`` list."""
    if constraints is None:
        return False
    if isinstance(constraints, str | list):
        return True
    if isinstance(constraints, Mapping):
        return not isinstance(constraints.get("items"), list)
    return False


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


def _split_legacy_string(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _legacy_entries(field: str, raw: object) -> list[str]:
    """Flatten a legacy slot value into candidate strings."""
    if raw is None:
        return []
    if isinstance(raw, str):
        return _split_legacy_string(raw)
    if isinstance(raw, list):
        entries: list[str] = []
        for item in raw:
            if isinstance(item, str):
                entries.append(item)
            elif isinstance(item, Mapping) and isinstance(item.get("value"), str):
                entries.append(item["value"])
            else:
                logger.warning("Skipping non-text entry in legacy field %s: %r", field, item)
        return entries
    raise MigrationError(field, f"unexpected {type(raw).__name__}")


def _migrate_field(legacy: Mapping[str, Any], field: CanonicalCategory) -> PreferenceCategory | None:
    raw = legacy.get(field.value)
    category = PreferenceCategory()

    if _is_canonical_category(raw):
        try:
            category = PreferenceCategory.model_validate(raw)
        except ValidationError as exc:
            raise MigrationError(field.value, str(exc)) from exc
    else:
        for entry in _legacy_entries(field.value, raw):
            if not is_placeholder(entry):
                value = create_preference_value(entry, PreferenceSource.FORM, Sentiment.LIKE, 1.0)
                category = add_value_to_category(category, value)

    other_field = LEGACY_OTHER_FIELDS.get(field)
    other_raw = legacy.get(other_field) if other_field else None
    if isinstance(other_raw, str | list):
        for entry in _legacy_entries(other_field or field.value, other_raw):
            if not is_placeholder(entry):
                value = create_preference_value(entry, PreferenceSource.FORM, Sentiment.LIKE, 1.0)
                category = add_value_to_category(category, value)

    return category if category.values else None


def _migrate_custom_categories(
    legacy: Mapping[str, Any],
    canonical: dict[str, PreferenceCategory | None],
) -> dict[str, PreferenceCategory]:
    custom: dict[str, PreferenceCategory] = {}

    existing = legacy.get("custom_categories")
    if isinstance(existing, Mapping):
        for name, raw in existing.items():
            try:
                category = PreferenceCategory.model_validate(raw)
            except ValidationError:
                logger.warning("Dropping unreadable custom category %s", name)
                continue
            if category.values:
                custom[str(name)] = category

    legacy_custom = legacy.get(LEGACY_CUSTOM_PREFERENCES_FIELD)
    if not isinstance(legacy_custom, list):
        return custom

    for entry in legacy_custom:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("value"), str):
            logger.warning("Skipping malformed custom preference: %r", entry)
            continue
        category_key = str(entry.get("category") or "other")
        try:
            source = PreferenceSource(entry.get("source") or PreferenceSource.CHATBOT)
        except ValueError:
            source = PreferenceSource.CHATBOT
        value = create_preference_value(entry["value"], source, Sentiment.LIKE, entry.get("confidence"))
        if value is None:
            continue

        target = route_preference(category_key)
        # Only fold into a canonical slot the user already has; otherwise keep the AI's own bucket.
        if target is not None and canonical.get(target.value) is not None:
            canonical[target.value] = add_value_to_category(canonical[target.value], value)
        else:
            custom[category_key] = add_value_to_category(custom.get(category_key), value)

    return custom


def migrate_preferences_to_canonical(legacy: Mapping[str, Any] | None) -> UserPreferences:
    """Rewrite a legacy document into canonical shape.

    A field that cannot be interpreted falls back to empty; the rest of the
    document still migrates. Canonical input is returned as-is.
    """
    if not legacy:
        return UserPreferences()
    if not is_legacy_format(legacy):
        return _validate_canonical(legacy)

    canonical: dict[str, PreferenceCategory | None] = {}
    for field in CANONICAL_CATEGORIES:
        try:
            canonical[field.value] = _migrate_field(legacy, field)
        except MigrationError as exc:
            logger.warning("Legacy preference migration fell back to empty: %s", exc)
            canonical[field.value] = None

    custom = _migrate_custom_categories(legacy, canonical)

    migrated = UserPreferences(
        **canonical,
        custom_categories=custom,
        unified_constraints=document_constraints(legacy),
        onboarding_completed=bool(legacy.get("onboarding_completed", False)),
        last_updated=_timestamp(legacy.get("last_updated")),
    )
    logger.info("Migrated legacy preference document (%d categories)", sum(1 for _ in migrated.iter_categories()))
    return migrated


def _timestamp(raw: object) -> datetime | None:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Ignoring unparseable last_updated %r", raw)
        return None


def _validate_canonical(raw: Mapping[str, Any]) -> UserPreferences:
    data = {k: v for k, v in raw.items() if k not in _CONSTRAINT_KEYS}
    try:
        prefs = UserPreferences.model_validate(data)
    except ValidationError:
        logger.warning("Canonical preference document failed validation; migrating field by field")
        prefs = UserPreferences(
            **{f.value: _safe_field(raw, f) for f in CANONICAL_CATEGORIES},
            custom_categories=_migrate_custom_categories(raw, {}),
            onboarding_completed=bool(raw.get("onboarding_completed", False)),
        )
    return prefs.with_constraints(document_constraints(raw))


def _safe_field(raw: Mapping[str, Any], field: CanonicalCategory) -> PreferenceCategory | None:
    try:
        return _migrate_field(raw, field)
    except MigrationError as exc:
        logger.warning("Preference field fell back to empty: %s", exc)
        return None


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------


def _budget(raw: object) -> Budget:
    try:
        return Budget(raw) if raw else Budget.NO_PREFERENCE
    except ValueError:
        logger.warning("Unknown budget %r, using no_preference", raw)
        return Budget.NO_PREFERENCE


def _migrate_list_field(
    result: UnifiedConstraintsType,
    field: str,
    raw: object,
) -> UnifiedConstraintsType:
    if raw is None:
        return result
    if not isinstance(raw, list):
        raise MigrationError(field, f"expected a list, got {type(raw).__name__}")
    target_type = _LIST_FIELD_TARGETS[field]
    for entry in raw:
        if not isinstance(entry, str):
            logger.warning("Skipping non-text entry in %s: %r", field, entry)
            continue
        result = add_unified_constraint(
            result,
            create_unified_constraint(
                target_type,
                entry,
                scope=ConstraintScope.GLOBAL,
                source=ConstraintSource.MANUAL,
            ),
        )
    return result


def _migrate_custom_constraint(result: UnifiedConstraintsType, entry: object) -> UnifiedConstraintsType:
    if isinstance(entry, str):
        entry = {"value": entry}
    if isinstance(entry, Mapping) and entry.get("source") not in (None, *ConstraintSource):
        entry = {**entry, "source": ConstraintSource.MANUAL}
    try:
        custom = CustomConstraint.model_validate(entry)
    except ValidationError as exc:
        raise MigrationError("custom", str(exc)) from exc

    constraint = create_unified_constraint(
        ConstraintTargetType.RULE,
        custom.value,
        scope=ConstraintScope.GLOBAL,
        intent=intent_from_raw(custom.intent),
        source=custom.source,
        constraint_id=custom.id,
        created_at=custom.created_at,
    )
    return add_unified_constraint(result, constraint)


def migrate_to_unified_constraints(legacy: object) -> UnifiedConstraintsType:
    """Map legacy constraints onto unified items, all with global scope.

    avoidIngredients → ingredient, avoidBrands → brand,
    avoidProductForms → format, custom[] → rule. Intent comes from the
    legacy item (default avoid); the budget is copied. Canonical input is
    returned unchanged.
    """
    if legacy is None:
        return UnifiedConstraintsType()
    if isinstance(legacy, UnifiedConstraintsType):
        return legacy
    if isinstance(legacy, LegacyConstraints):
        legacy = legacy.model_dump(mode="json", by_alias=True)
    if not is_legacy_constraint_format(legacy):
        try:
            return UnifiedConstraintsType.model_validate(legacy)
        except ValidationError as exc:
            logger.warning("Unreadable unified constraints, keeping readable items: %s", exc)
            return _salvage_unified(legacy)

    # Bare strings/lists are free-form rules.
    if isinstance(legacy, str):
        legacy = {"custom": _split_legacy_string(legacy)}
    elif isinstance(legacy, list):
        legacy = {"custom": legacy}
    if not isinstance(legacy, Mapping):
        return UnifiedConstraintsType()

    result = UnifiedConstraintsType(budget=_budget(legacy.get("budget")))
    for field in LEGACY_CONSTRAINT_LIST_FIELDS:
        try:
            result = _migrate_list_field(result, field, legacy.get(field))
        except MigrationError as exc:
            logger.warning("Legacy constraint field fell back to empty: %s", exc)

    custom = legacy.get("custom")
    if isinstance(custom, list):
        for entry in custom:
            try:
                result = _migrate_custom_constraint(result, entry)
            except MigrationError as exc:
                logger.warning("Skipping unreadable custom constraint: %s", exc)
    elif custom is not None:
        logger.warning("Legacy constraint field 'custom' is not a list; ignoring")

    return result


def _salvage_unified(raw: Mapping[str, Any]) -> UnifiedConstraintsType:
    result = UnifiedConstraintsType(budget=_budget(raw.get("budget")))
    for item in raw.get("items", []):
        try:
            result = add_unified_constraint(result, UnifiedConstraint.model_validate(item))
        except ValidationError:
            logger.warning("Dropping unreadable constraint item: %r", item)
    return result


def document_constraints(raw: Mapping[str, Any]) -> UnifiedConstraintsType:
    """Fold every constraint key of a stored document into one UnifiedConstraintsType.

    Older documents carry ``constraints`` (legacy or unified shape), newer ones
    ``unifiedConstraints``; items are de-duplicated and a non-default budget
    from the unified key wins.
    """
    merged = UnifiedConstraintsType()
    for key in _CONSTRAINT_KEYS:
        if raw.get(key) is None:
            continue
        part = migrate_to_unified_constraints(raw[key])
        for item in part.items:
            merged = add_unified_constraint(merged, item)
        if part.budget != Budget.NO_PREFERENCE:
            merged = merged.model_copy(update={"budget": part.budget})
    return merged


def load_preferences_document(raw: Mapping[str, Any] | None) -> UserPreferences:
    """Turn whatever the store returned (legacy, canonical, or nothing) into a canonical document."""
    if raw is None:
        return UserPreferences()
    return migrate_preferences_to_canonical(raw)


def convert_to_legacy_format(unified: UnifiedConstraintsType) -> LegacyConstraints:
    """Down-convert for readers that still expect the flat-array shape."""
    legacy = LegacyConstraints(budget=unified.budget)
    for constraint in unified.items:
        if constraint.target_type == ConstraintTargetType.INGREDIENT:
            legacy.avoid_ingredients.append(constraint.target_value)
        elif constraint.target_type == ConstraintTargetType.BRAND:
            legacy.avoid_brands.append(constraint.target_value)
        elif constraint.target_type == ConstraintTargetType.FORMAT:
            legacy.avoid_product_forms.append(constraint.target_value)
        else:
            legacy.custom.append(
                CustomConstraint(
                    id=constraint.id,
                    category=constraint.scope.value,
                    rule=f"Avoid {constraint.target_type.value}",
                    value=constraint.target_value,
                    intent=constraint.intent.value,
                    source=constraint.source,
                    confidence=1.0,
                    created_at=constraint.created_at,
                )
            )
    return legacy
