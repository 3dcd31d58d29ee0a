"""Tests for draft/committed equality, differences and the DraftBuffer."""

import asyncio

import pytest

from reconciler.categories import add_value_to_category, remove_from_category
from reconciler.constraints import add_unified_constraint, create_unified_constraint
from reconciler.draft import (
    DraftBuffer,
    are_categories_equal,
    are_preferences_equal,
    change_summary,
    count_preference_differences,
    is_pending_removal,
)
from reconciler.enums import Budget, ConstraintIntent, ConstraintTargetType, PreferenceSource
from reconciler.exceptions import PersistenceError
from reconciler.models import PreferenceCategory, PreferenceDiff, UnifiedConstraintsType, UserPreferences
from reconciler.normalizer import create_preference_values


def _category(*texts: str) -> PreferenceCategory:
    return PreferenceCategory(values=create_preference_values(texts, PreferenceSource.FORM))


def _prefs(**categories: tuple[str, ...]) -> UserPreferences:
    return UserPreferences(**{name: _category(*texts) for name, texts in categories.items()})


class _RecordingSave:
    def __init__(self) -> None:
        self.saved: list[UserPreferences] = []

    async def __call__(self, preferences: UserPreferences) -> None:
        self.saved.append(preferences)


async def _failing_save(preferences: UserPreferences) -> None:
    raise PersistenceError("save", "user-1", "disk full")


class TestEquality:
    def test_order_insensitive(self) -> None:
        assert are_categories_equal(_category("Oily", "Dry"), _category("dry", "OILY"))

    def test_absent_equals_empty(self) -> None:
        assert are_categories_equal(None, PreferenceCategory())

    def test_different_values(self) -> None:
        assert not are_categories_equal(_category("Oily"), _category("Dry"))

    def test_custom_categories_compared(self) -> None:
        a = UserPreferences(custom_categories={"movies": _category("Noir")})
        assert not are_preferences_equal(a, UserPreferences())

    def test_budget_compared(self) -> None:
        a = UserPreferences(unified_constraints=UnifiedConstraintsType(budget=Budget.PREMIUM))
        assert not are_preferences_equal(a, UserPreferences())

    def test_constraint_intent_compared(self) -> None:
        base = UserPreferences()
        soft = create_unified_constraint(ConstraintTargetType.INGREDIENT, "Retinol")
        strict = create_unified_constraint(
            ConstraintTargetType.INGREDIENT, "Retinol", intent=ConstraintIntent.STRICTLY_AVOID
        )
        a = base.with_constraints(add_unified_constraint(base.unified_constraints, soft))
        b = base.with_constraints(add_unified_constraint(base.unified_constraints, strict))
        assert not are_preferences_equal(a, b)
        assert are_preferences_equal(a, a.model_copy(deep=True))


class TestDifferences:
    def test_one_added_one_removed(self) -> None:
        diff = count_preference_differences(
            _prefs(skin_type=("Oily", "Dry")),
            _prefs(skin_type=("Oily", "Sensitive")),
        )
        assert diff == PreferenceDiff(added=1, removed=1)

    def test_across_categories(self) -> None:
        diff = count_preference_differences(
            _prefs(skin_type=("Oily",)),
            _prefs(hair_type=("Curly", "Thick")),
        )
        assert diff == PreferenceDiff(added=2, removed=1)

    def test_pending_removal(self) -> None:
        committed = _prefs(skin_type=("Oily", "Dry"))
        draft = committed.with_category("skin_type", remove_from_category(committed.skin_type, "dry"))
        assert is_pending_removal(committed, draft, "skin_type", "dry")
        assert not is_pending_removal(committed, draft, "skin_type", "oily")
        assert not is_pending_removal(committed, draft, "hair_type", "dry")

    @pytest.mark.parametrize(
        ("added", "removed", "expected"),
        [
            (1, 1, "1 added, 1 removed"),
            (0, 2, "2 preferences will be removed"),
            (0, 1, "1 preference will be removed"),
            (1, 0, "1 preference will be added"),
            (3, 0, "3 preferences will be added"),
            (0, 0, ""),
        ],
    )
    def test_change_summary(self, added: int, removed: int, expected: str) -> None:
        assert change_summary(added, removed) == expected


class TestDraftBuffer:
    def test_starts_clean(self) -> None:
        buffer = DraftBuffer(_prefs(skin_type=("Oily",)))
        assert not buffer.is_dirty
        assert buffer.differences() == PreferenceDiff()

    def test_edit_touches_draft_only(self) -> None:
        buffer = DraftBuffer(_prefs(skin_type=("Oily",)))
        buffer.edit(lambda p: p.with_category("skin_type", None))
        assert buffer.is_dirty
        assert buffer.committed.skin_type is not None
        assert buffer.draft.skin_type is None

    def test_discard(self) -> None:
        buffer = DraftBuffer(_prefs(skin_type=("Oily",)))
        buffer.edit(lambda p: p.with_category("skin_type", None))
        buffer.discard()
        assert not buffer.is_dirty
        assert buffer.draft.skin_type is not None

    async def test_commit_saves_once(self) -> None:
        save = _RecordingSave()
        buffer = DraftBuffer(_prefs(skin_type=("Oily",)))
        buffer.edit(lambda p: p.with_category("hair_type", _category("Curly")))

        result = await buffer.commit(save)

        assert result.success
        assert len(save.saved) == 1
        assert save.saved[0].last_updated is not None
        assert buffer.committed == save.saved[0]
        assert not buffer.is_dirty

    async def test_commit_failure_keeps_draft(self) -> None:
        buffer = DraftBuffer(_prefs(skin_type=("Oily",)))
        buffer.edit(lambda p: p.with_category("hair_type", _category("Curly")))

        result = await buffer.commit(_failing_save)

        assert not result.success
        assert result.error is not None and "disk full" in result.error
        assert buffer.is_dirty
        assert buffer.draft.hair_type is not None
        assert buffer.committed.hair_type is None
        assert not buffer.write_in_flight

    async def test_second_commit_rejected_while_in_flight(self) -> None:
        release = asyncio.Event()
        saved: list[UserPreferences] = []

        async def slow_save(preferences: UserPreferences) -> None:
            await release.wait()
            saved.append(preferences)

        buffer = DraftBuffer()
        buffer.edit(lambda p: p.with_category("goals", _category("Hydration")))
        first = asyncio.create_task(buffer.commit(slow_save))
        await asyncio.sleep(0)
        assert buffer.write_in_flight

        second = await buffer.commit(slow_save)
        assert not second.success

        release.set()
        assert (await first).success
        assert len(saved) == 1

    async def test_edits_during_commit_survive(self) -> None:
        release = asyncio.Event()

        async def slow_save(preferences: UserPreferences) -> None:
            await release.wait()

        buffer = DraftBuffer()
        buffer.edit(lambda p: p.with_category("goals", _category("Hydration")))
        task = asyncio.create_task(buffer.commit(slow_save))
        await asyncio.sleep(0)
        buffer.edit(lambda p: p.with_category("lifestyle", _category("Vegan")))
        release.set()
        await task

        assert buffer.committed.lifestyle is None
        assert buffer.draft.lifestyle is not None
        assert buffer.is_dirty

    async def test_save_through_updates_both_sides(self) -> None:
        save = _RecordingSave()
        buffer = DraftBuffer(_prefs(skin_type=("Oily",)))
        buffer.edit(lambda p: p.with_category("hair_type", _category("Curly")))

        def add_dry(p: UserPreferences) -> UserPreferences:
            values = create_preference_values(["Dry"], PreferenceSource.CHATBOT)
            return p.with_category("skin_type", add_value_to_category(p.skin_type, values[0]))

        result = await buffer.save_through(add_dry, save)

        assert result.success
        assert save.saved[0].hair_type is None
        assert buffer.committed.skin_type is not None
        assert "dry" in buffer.committed.skin_type.normalized_values
        assert buffer.draft.skin_type is not None
        assert "dry" in buffer.draft.skin_type.normalized_values
        # The unsaved draft edit is still pending.
        assert buffer.draft.hair_type is not None
        assert buffer.differences() == PreferenceDiff(added=1, removed=0)

    async def test_save_through_failure_changes_nothing(self) -> None:
        buffer = DraftBuffer(_prefs(skin_type=("Oily",)))
        before = buffer.committed

        result = await buffer.save_through(lambda p: p.with_category("skin_type", None), _failing_save)

        assert not result.success
        assert buffer.committed is before
        assert buffer.draft.skin_type is not None
