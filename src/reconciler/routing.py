"""Deterministic routing of extracted scopes and rules onto the canonical schema."""

import re

from reconciler.constants import (
    CATEGORY_ROUTING_MAP,
    CONSTRAINT_SCOPE_MAP,
    DEFAULT_SCOPE_BY_TARGET,
    RULE_TARGET_HINTS,
)
from reconciler.enums import CanonicalCategory, ConstraintScope, ConstraintTargetType

_NON_KEY_CHARS = re.compile(r"[^a-z_]")
_CONSTRAINT_SCOPES = frozenset(s.value for s in ConstraintScope)


def _scope_key(scope: str) -> str:
    return _NON_KEY_CHARS.sub("", scope.strip().lower())


def route_preference(scope: str) -> CanonicalCategory | None:
    """Map an extracted scope onto a canonical slot.

    Returns None when the scope has no canonical home; the caller then stores
    the value under ``custom_categories[scope]``.
    """
    return CATEGORY_ROUTING_MAP.get(_scope_key(scope))


def is_canonical_category(scope: str) -> bool:
    return route_preference(scope) is not None


def scope_to_constraint_scope(scope: str) -> ConstraintScope:
    """Map an extracted scope onto a constraint scope, defaulting to global."""
    key = _scope_key(scope)
    if key in _CONSTRAINT_SCOPES:
        return ConstraintScope(key)
    return CONSTRAINT_SCOPE_MAP.get(key, ConstraintScope.GLOBAL)


def rule_to_target_type(rule: str | None) -> ConstraintTargetType:
    """Infer a constraint target type from a rule hint like "Avoid ingredient"."""
    if not rule:
        return ConstraintTargetType.RULE
    rule_lc = rule.lower()
    for hints, target_type in RULE_TARGET_HINTS:
        if any(hint in rule_lc for hint in hints):
            return target_type
    return ConstraintTargetType.RULE


def default_scope_for(target_type: ConstraintTargetType) -> ConstraintScope:
    """Scope used when a constraint is created without one."""
    return DEFAULT_SCOPE_BY_TARGET.get(target_type, ConstraintScope.GLOBAL)
