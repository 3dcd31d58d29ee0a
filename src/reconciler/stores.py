"""Collaborator interfaces for persistence, plus in-memory implementations.

The in-memory stores back tests and the CLI; ``reconciler.db.stores`` provides
the SQLAlchemy versions.
"""

import copy
from typing import Any, Protocol

from reconciler.models import UserPreferences


class PreferenceStore(Protocol):
    """Whole-document persistence for ``UserPreferences``.

    ``load`` returns the raw stored JSON (legacy or canonical) or None.
    Failures raise ``PersistenceError``.
    """

    async def load(self, user_id: str) -> dict[str, Any] | None: ...

    async def save(self, user_id: str, preferences: UserPreferences) -> None: ...


class ConversationMemoryStore(Protocol):
    """Access to the metadata document written by the extraction process."""

    async def read_metadata(self, user_id: str) -> dict[str, Any]: ...

    async def patch_metadata(self, user_id: str, partial: dict[str, Any]) -> None:
        """Shallow-merge ``partial`` into the stored metadata (top-level keys overwrite)."""
        ...


class InMemoryPreferenceStore:
    """Dict-backed PreferenceStore. Documents are stored as canonical JSON."""

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None) -> None:
        self.documents: dict[str, dict[str, Any]] = documents if documents is not None else {}
        self.save_count = 0

    async def load(self, user_id: str) -> dict[str, Any] | None:
        document = self.documents.get(user_id)
        return copy.deepcopy(document) if document is not None else None

    async def save(self, user_id: str, preferences: UserPreferences) -> None:
        self.documents[user_id] = preferences.to_document()
        self.save_count += 1


class InMemoryConversationMemoryStore:
    """Dict-backed ConversationMemoryStore."""

    def __init__(self, metadata: dict[str, dict[str, Any]] | None = None) -> None:
        self.metadata: dict[str, dict[str, Any]] = metadata if metadata is not None else {}
        self.patch_count = 0

    async def read_metadata(self, user_id: str) -> dict[str, Any]:
        return copy.deepcopy(self.metadata.get(user_id, {}))

    async def patch_metadata(self, user_id: str, partial: dict[str, Any]) -> None:
        self.metadata[user_id] = {**self.metadata.get(user_id, {}), **copy.deepcopy(partial)}
        self.patch_count += 1
