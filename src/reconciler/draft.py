"""Draft-versus-committed reconciliation for save/cancel editing."""

import logging
from collections.abc import Awaitable, Callable

from reconciler.constants import CANONICAL_CATEGORIES
from reconciler.exceptions import PersistenceError
from reconciler.models import OperationResult, PreferenceCategory, PreferenceDiff, UserPreferences
from reconciler.utils import utc_now

logger = logging.getLogger(__name__)

_BUSY = "A save is already in progress"


# ---------------------------------------------------------------------------
# Equality
# ---------------------------------------------------------------------------


def are_categories_equal(a: PreferenceCategory | None, b: PreferenceCategory | None) -> bool:
    """Order-insensitive comparison by normalized value; absent equals empty."""
    a_values = a.normalized_values if a is not None else set()
    b_values = b.normalized_values if b is not None else set()
    return a_values == b_values


def _all_category_names(a: UserPreferences, b: UserPreferences) -> list[str]:
    custom = sorted(set(a.custom_categories) | set(b.custom_categories))
    return [field.value for field in CANONICAL_CATEGORIES] + custom


def _constraint_keys(prefs: UserPreferences) -> set[tuple[str, str, str, str]]:
    return {
        (c.target_type.value, c.scope.value, c.normalized_value, c.intent.value)
        for c in prefs.unified_constraints.items
    }


def are_preferences_equal(a: UserPreferences, b: UserPreferences) -> bool:
    """Structural equality ignoring order, covering categories, constraints and budget."""
    for name in _all_category_names(a, b):
        if not are_categories_equal(a.get_category(name), b.get_category(name)):
            return False
    if a.unified_constraints.budget != b.unified_constraints.budget:
        return False
    return _constraint_keys(a) == _constraint_keys(b)


# ---------------------------------------------------------------------------
# Differences
# ---------------------------------------------------------------------------


def count_category_differences(live: PreferenceCategory | None, draft: PreferenceCategory | None) -> PreferenceDiff:
    live_values = live.normalized_values if live is not None else set()
    draft_values = draft.normalized_values if draft is not None else set()
    return PreferenceDiff(added=len(draft_values - live_values), removed=len(live_values - draft_values))


def count_preference_differences(committed: UserPreferences, draft: UserPreferences) -> PreferenceDiff:
    """Sum of added/removed normalized values across canonical and custom categories."""
    added = removed = 0
    for name in _all_category_names(committed, draft):
        diff = count_category_differences(committed.get_category(name), draft.get_category(name))
        added += diff.added
        removed += diff.removed
    return PreferenceDiff(added=added, removed=removed)


def is_pending_removal(committed: UserPreferences, draft: UserPreferences, field: str, normalized_value: str) -> bool:
    """True when the value is saved but the draft no longer has it."""
    live = committed.get_category(field)
    pending = draft.get_category(field)
    return (live is not None and normalized_value in live.normalized_values) and not (
        pending is not None and normalized_value in pending.normalized_values
    )


def change_summary(added: int, removed: int) -> str:
    if added > 0 and removed > 0:
        return f"{added} added, {removed} removed"
    if removed > 0:
        return f"{removed} preference{'s' if removed > 1 else ''} will be removed"
    if added > 0:
        return f"{added} preference{'s' if added > 1 else ''} will be added"
    return ""


# ---------------------------------------------------------------------------
# Draft buffer
# ---------------------------------------------------------------------------


class DraftBuffer:
    """Two-phase holder: ``committed`` mirrors the store, ``draft`` holds unsaved edits.

    ``commit()`` and ``discard()`` move state between them; ``save_through()``
    writes an immediate change to both.
    """

    def __init__(self, committed: UserPreferences | None = None) -> None:
        self._committed = committed if committed is not None else UserPreferences()
        self._draft = self._committed.model_copy(deep=True)
        self._write_in_flight = False

    @property
    def committed(self) -> UserPreferences:
        return self._committed

    @property
    def draft(self) -> UserPreferences:
        return self._draft

    @property
    def is_dirty(self) -> bool:
        return not are_preferences_equal(self._committed, self._draft)

    @property
    def write_in_flight(self) -> bool:
        return self._write_in_flight

    def differences(self) -> PreferenceDiff:
        return count_preference_differences(self._committed, self._draft)

    def reset(self, committed: UserPreferences) -> None:
        """Replace both sides, e.g. after a fresh load."""
        self._committed = committed
        self._draft = committed.model_copy(deep=True)

    def edit(self, change: Callable[[UserPreferences], UserPreferences]) -> UserPreferences:
        """Apply ``change`` to the draft only."""
        self._draft = change(self._draft)
        return self._draft

    async def save_through(
        self,
        change: Callable[[UserPreferences], UserPreferences],
        save: Callable[[UserPreferences], Awaitable[None]],
    ) -> OperationResult:
        """Apply ``change`` to committed state, persist it, then mirror it into the draft.

        Used for approvals, which are saved immediately and must survive a
        later discard. Nothing changes in memory when the save fails.
        """
        if self._write_in_flight:
            return OperationResult(success=False, error=_BUSY)

        updated = change(self._committed)
        self._write_in_flight = True
        try:
            await save(updated)
        except PersistenceError as exc:
            logger.error("Immediate save failed: %s", exc)
            return OperationResult(success=False, error=str(exc))
        finally:
            self._write_in_flight = False

        self._committed = updated
        self._draft = change(self._draft)
        return OperationResult(success=True)

    async def commit(self, save: Callable[[UserPreferences], Awaitable[None]]) -> OperationResult:
        """Persist the draft with a single ``save`` call.

        On failure the draft is kept for a retry. A second write while one is
        in flight is rejected.
        """
        if self._write_in_flight:
            return OperationResult(success=False, error=_BUSY)

        snapshot = self._draft.model_copy(update={"last_updated": utc_now()}, deep=True)
        self._write_in_flight = True
        try:
            await save(snapshot)
        except PersistenceError as exc:
            logger.error("Commit failed: %s", exc)
            return OperationResult(success=False, error=str(exc))
        finally:
            self._write_in_flight = False

        self._committed = snapshot
        # Edits made while the save was pending stay in the draft.
        if are_preferences_equal(self._draft, snapshot):
            self._draft = snapshot.model_copy(deep=True)
        return OperationResult(success=True)

    def discard(self) -> None:
        """Drop unsaved edits; no persistence call."""
        self._draft = self._committed.model_copy(deep=True)
