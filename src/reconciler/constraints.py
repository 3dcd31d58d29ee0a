"""Unified constraint construction, list operations, and display grouping.

All constraint mutations go through these functions; each returns a new
UnifiedConstraintsType and leaves its input untouched.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from reconciler.enums import ConstraintIntent, ConstraintScope, ConstraintSource, ConstraintTargetType
from reconciler.models import UnifiedConstraint, UnifiedConstraintsType
from reconciler.routing import default_scope_for
from reconciler.utils import normalize, utc_now

logger = logging.getLogger(__name__)


def derive_constraint_id(
    target_type: ConstraintTargetType,
    scope: ConstraintScope,
    target_value: str,
) -> str:
    """Deterministic id: uc_<sha1(target_type|scope|normalized value)>.

    Running a migration twice therefore yields the same ids.
    """
    components = f"{target_type}|{scope}|{normalize(target_value)}"
    digest = hashlib.sha1(components.encode("utf-8")).hexdigest()
    return f"uc_{digest[:24]}"


def create_unified_constraint(
    target_type: ConstraintTargetType,
    target_value: str,
    *,
    scope: ConstraintScope | None = None,
    applies_to: list[str] | None = None,
    intent: ConstraintIntent = ConstraintIntent.AVOID,
    source: ConstraintSource = ConstraintSource.MANUAL,
    constraint_id: str | None = None,
    created_at: datetime | None = None,
) -> UnifiedConstraint | None:
    """Build a constraint; returns None for a blank target value."""
    display = target_value.strip()
    if not display:
        logger.debug("Dropping blank %s constraint", target_type)
        return None

    resolved_scope = scope if scope is not None else default_scope_for(target_type)
    return UnifiedConstraint(
        id=constraint_id or derive_constraint_id(target_type, resolved_scope, display),
        target_type=target_type,
        target_value=display,
        normalized_value=normalize(display),
        scope=resolved_scope,
        applies_to=applies_to or None,
        intent=intent,
        source=source,
        created_at=created_at or utc_now(),
    )


def is_duplicate_constraint(current: UnifiedConstraintsType, constraint: UnifiedConstraint) -> bool:
    """Same normalized value, target type and scope as an existing item."""
    return any(
        c.normalized_value == constraint.normalized_value
        and c.target_type == constraint.target_type
        and c.scope == constraint.scope
        for c in current.items
    )


def add_unified_constraint(
    current: UnifiedConstraintsType,
    constraint: UnifiedConstraint | None,
) -> UnifiedConstraintsType:
    """Append ``constraint`` unless an equivalent item already exists."""
    if constraint is None or is_duplicate_constraint(current, constraint):
        return current
    return current.model_copy(update={"items": [*current.items, constraint]})


def remove_unified_constraint(current: UnifiedConstraintsType, constraint_id: str) -> UnifiedConstraintsType:
    """Drop the item with ``constraint_id``; an unknown id returns an equal document."""
    return current.model_copy(update={"items": [c for c in current.items if c.id != constraint_id]})


def update_unified_constraint(
    current: UnifiedConstraintsType,
    constraint_id: str,
    updates: dict[str, Any],
) -> UnifiedConstraintsType:
    """Apply field updates to one item; ``id`` and ``created_at`` are never changed."""
    updates = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
    if "target_value" in updates:
        updates["normalized_value"] = normalize(updates["target_value"])

    items: list[UnifiedConstraint] = []
    for item in current.items:
        if item.id == constraint_id:
            item = UnifiedConstraint.model_validate({**item.model_dump(), **updates})
        items.append(item)
    return current.model_copy(update={"items": items})


def count_constraints(constraints: UnifiedConstraintsType) -> int:
    """Number of constraint items; the budget is not a constraint."""
    return len(constraints.items)


# ---------------------------------------------------------------------------
# Display grouping (never used for enforcement)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConstraintCategory:
    """A display bucket for constraints."""

    id: str
    name: str
    target_types: tuple[ConstraintTargetType, ...]
    scopes: tuple[str, ...]


CONSTRAINT_CATEGORIES: tuple[ConstraintCategory, ...] = (
    ConstraintCategory(
        "skincare",
        "Skincare",
        (ConstraintTargetType.INGREDIENT, ConstraintTargetType.BRAND, ConstraintTargetType.FORMAT),
        ("global", "skincare"),
    ),
    ConstraintCategory(
        "haircare",
        "Haircare",
        (ConstraintTargetType.INGREDIENT, ConstraintTargetType.BRAND, ConstraintTargetType.FORMAT),
        ("global", "haircare"),
    ),
    ConstraintCategory(
        "food",
        "Food",
        (ConstraintTargetType.INGREDIENT, ConstraintTargetType.BRAND, ConstraintTargetType.FOOD_TYPE),
        ("global", "food"),
    ),
    ConstraintCategory(
        "entertainment",
        "Entertainment",
        (ConstraintTargetType.GENRE, ConstraintTargetType.RULE),
        ("global", "entertainment"),
    ),
    ConstraintCategory(
        "supplements",
        "Supplements",
        (ConstraintTargetType.INGREDIENT, ConstraintTargetType.BRAND),
        ("global", "supplements"),
    ),
    ConstraintCategory("brands", "Brands", (ConstraintTargetType.BRAND,), ("global",)),
    ConstraintCategory("formats", "Formats", (ConstraintTargetType.FORMAT,), ("global", "skincare", "haircare")),
    ConstraintCategory("other", "General", (ConstraintTargetType.RULE,), ("global",)),
)

_PRIMARY_BY_TARGET: dict[ConstraintTargetType, str] = {
    ConstraintTargetType.INGREDIENT: "skincare",
    ConstraintTargetType.BRAND: "brands",
    ConstraintTargetType.FORMAT: "formats",
    ConstraintTargetType.GENRE: "entertainment",
    ConstraintTargetType.FOOD_TYPE: "food",
    ConstraintTargetType.RULE: "other",
}


def primary_category(constraint: UnifiedConstraint) -> str:
    """The single display bucket for a constraint.

    Resolution order: a single explicit ``applies_to`` domain, then a
    non-global scope, then a fixed mapping by target type.
    """
    if constraint.applies_to and len(constraint.applies_to) == 1:
        return constraint.applies_to[0]
    if constraint.scope != ConstraintScope.GLOBAL:
        return constraint.scope.value
    return _PRIMARY_BY_TARGET.get(constraint.target_type, "other")


def constraints_for_category(constraints: UnifiedConstraintsType, category_id: str) -> list[UnifiedConstraint]:
    return [c for c in constraints.items if primary_category(c) == category_id]


def categories_with_constraints(constraints: UnifiedConstraintsType) -> list[ConstraintCategory]:
    return [cat for cat in CONSTRAINT_CATEGORIES if constraints_for_category(constraints, cat.id)]
