"""Shared fixtures for reconciler tests."""

from typing import Any

import pytest

from reconciler.config.settings import ReconcilerSettings
from reconciler.exceptions import PersistenceError
from reconciler.models import UserPreferences
from reconciler.session import PreferenceSession
from reconciler.stores import InMemoryConversationMemoryStore, InMemoryPreferenceStore

USER_ID = "user-1"


class FailingPreferenceStore(InMemoryPreferenceStore):
    """In-memory store whose saves fail while ``fail_saves`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_saves = True

    async def save(self, user_id: str, preferences: UserPreferences) -> None:
        if self.fail_saves:
            raise PersistenceError("save", user_id, "connection reset")
        await super().save(user_id, preferences)


class FailingMemoryStore(InMemoryConversationMemoryStore):
    """In-memory metadata store whose patches fail."""

    async def patch_metadata(self, user_id: str, partial: dict[str, Any]) -> None:
        raise PersistenceError("patch_metadata", user_id, "timeout")


@pytest.fixture
def settings() -> ReconcilerSettings:
    return ReconcilerSettings(MIN_AUTO_ROUTE_CONFIDENCE=0.6, SCOPE_MEMORY_CONFIDENCE=0.7, LOG_JSON=False)


@pytest.fixture
def preference_store() -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore()


@pytest.fixture
def memory_store() -> InMemoryConversationMemoryStore:
    return InMemoryConversationMemoryStore()


@pytest.fixture
def failing_preference_store() -> FailingPreferenceStore:
    return FailingPreferenceStore()


@pytest.fixture
def failing_memory_store() -> FailingMemoryStore:
    return FailingMemoryStore()


@pytest.fixture
def session(
    preference_store: InMemoryPreferenceStore,
    memory_store: InMemoryConversationMemoryStore,
    settings: ReconcilerSettings,
) -> PreferenceSession:
    return PreferenceSession(USER_ID, preference_store, memory_store, settings=settings)
