"""Tests for the SQLAlchemy-backed stores (SQLite via aiosqlite)."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from sqlalchemy import select

from reconciler.config.database import DatabaseSettings
from reconciler.db import ConversationMemory, DatabaseManager, SqlConversationMemoryStore, SqlPreferenceStore
from reconciler.enums import PreferenceSource
from reconciler.migration import load_preferences_document
from reconciler.models import PreferenceCategory, UserPreferences
from reconciler.normalizer import create_preference_values
from reconciler.session import PreferenceSession

USER = "user-1"


@pytest.fixture
async def db(tmp_path: Path) -> AsyncGenerator[DatabaseManager]:
    manager = DatabaseManager(DatabaseSettings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'prefs.db'}"))
    await manager.create_schema()
    yield manager
    await manager.dispose()


def _prefs(*skin_types: str) -> UserPreferences:
    return UserPreferences(
        skin_type=PreferenceCategory(values=create_preference_values(skin_types, PreferenceSource.FORM))
    )


class TestSqlPreferenceStore:
    async def test_missing_document(self, db: DatabaseManager) -> None:
        store = SqlPreferenceStore(db)
        assert await store.load(USER) is None
        assert await store.version(USER) == 0

    async def test_save_and_load(self, db: DatabaseManager) -> None:
        store = SqlPreferenceStore(db)
        await store.save(USER, _prefs("Oily", "Sensitive"))

        raw = await store.load(USER)

        assert raw is not None
        loaded = load_preferences_document(raw)
        assert loaded.skin_type is not None
        assert [v.value for v in loaded.skin_type.values] == ["Oily", "Sensitive"]
        assert await store.version(USER) == 1

    async def test_save_replaces_whole_document(self, db: DatabaseManager) -> None:
        store = SqlPreferenceStore(db)
        await store.save(USER, _prefs("Oily"))
        await store.save(USER, UserPreferences(onboarding_completed=True))

        raw = await store.load(USER)

        assert raw is not None
        assert "skin_type" not in raw
        assert raw["onboarding_completed"] is True
        assert await store.version(USER) == 2

    async def test_users_are_isolated(self, db: DatabaseManager) -> None:
        store = SqlPreferenceStore(db)
        await store.save(USER, _prefs("Oily"))
        assert await store.load("someone-else") is None


class TestSqlConversationMemoryStore:
    async def test_empty(self, db: DatabaseManager) -> None:
        assert await SqlConversationMemoryStore(db).read_metadata(USER) == {}

    async def test_patch_is_shallow_merge(self, db: DatabaseManager) -> None:
        store = SqlConversationMemoryStore(db)
        await store.patch_metadata(USER, {"scopes": {"food": {"spice": "hot"}}, "summary": "x"})
        await store.patch_metadata(USER, {"scopes": {"movies": {"genre": "noir"}}})

        metadata = await store.read_metadata(USER)

        assert metadata == {"scopes": {"movies": {"genre": "noir"}}, "summary": "x"}

    async def test_single_row_per_user(self, db: DatabaseManager) -> None:
        store = SqlConversationMemoryStore(db)
        await store.patch_metadata(USER, {"a": 1})
        await store.patch_metadata(USER, {"b": 2})

        async with db.session() as session:
            rows = (await session.execute(select(ConversationMemory))).scalars().all()
        assert len(rows) == 1


class TestDatabaseManager:
    async def test_in_memory_database_keeps_schema(self) -> None:
        manager = DatabaseManager(DatabaseSettings(database_url="sqlite+aiosqlite:///:memory:"))
        assert manager.in_memory
        await manager.create_schema()
        try:
            store = SqlPreferenceStore(manager)
            await store.save(USER, _prefs("Oily"))
            assert await store.version(USER) == 1
        finally:
            await manager.dispose()

    async def test_file_database_is_not_in_memory(self, db: DatabaseManager) -> None:
        assert not db.in_memory

    async def test_failed_unit_of_work_rolls_back(self, db: DatabaseManager) -> None:
        with pytest.raises(RuntimeError):
            async with db.session() as session:
                session.add(ConversationMemory(user_id=USER, metadata_json={"a": 1}))
                await session.flush()
                raise RuntimeError("abort")

        assert await SqlConversationMemoryStore(db).read_metadata(USER) == {}


class TestSessionOverSql:
    async def test_approval_round_trip(self, db: DatabaseManager) -> None:
        preference_store = SqlPreferenceStore(db)
        memory_store = SqlConversationMemoryStore(db)
        await memory_store.patch_metadata(
            USER,
            {"detected_preferences": [{"category": "food", "key": "spice_level", "value": "mild", "confidence": 0.8}]},
        )

        session = PreferenceSession(USER, preference_store, memory_store)
        await session.load()
        result = await session.approve_learned_preference("food", "spice_level", "mild")
        assert result.success

        reloaded = PreferenceSession(USER, preference_store, memory_store)
        await reloaded.load()
        assert reloaded.committed.food_preferences is not None
        assert [v.value for v in reloaded.committed.food_preferences.values] == ["mild"]
        fetched = await reloaded.fetch_learned_preferences()
        assert fetched.success
        assert fetched.items == []

        metadata = await memory_store.read_metadata(USER)
        assert "approvedAt" in metadata["detected_preferences"][0]
