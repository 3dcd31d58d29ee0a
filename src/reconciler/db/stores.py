"""SQLAlchemy-backed PreferenceStore and ConversationMemoryStore."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from reconciler.db.models import ConversationMemory, PreferenceDocument
from reconciler.db.session import DatabaseManager
from reconciler.exceptions import PersistenceError
from reconciler.models import UserPreferences

logger = logging.getLogger(__name__)


class SqlPreferenceStore:
    """Stores one preference document per user; every save bumps ``version``."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def load(self, user_id: str) -> dict[str, Any] | None:
        try:
            async with self._db.session() as session:
                document = await session.get(PreferenceDocument, user_id)
                return dict(document.preferences_json) if document is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError("load", user_id, str(exc)) from exc

    async def save(self, user_id: str, preferences: UserPreferences) -> None:
        payload = preferences.to_document()
        try:
            async with self._db.session() as session:
                stmt = select(PreferenceDocument).where(PreferenceDocument.user_id == user_id).with_for_update()
                result = await session.execute(stmt)
                document = result.scalar_one_or_none()
                if document is None:
                    session.add(PreferenceDocument(user_id=user_id, preferences_json=payload, version=1))
                else:
                    # Whole-document replace; last writer wins
                    document.preferences_json = payload
                    document.version += 1
                await session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError("save", user_id, str(exc)) from exc
        logger.debug("Saved preference document", extra={"user_id": user_id})

    async def version(self, user_id: str) -> int:
        """Current document version, 0 when nothing is stored."""
        try:
            async with self._db.session() as session:
                document = await session.get(PreferenceDocument, user_id)
                return document.version if document is not None else 0
        except SQLAlchemyError as exc:
            raise PersistenceError("version", user_id, str(exc)) from exc


class SqlConversationMemoryStore:
    """Metadata document per user; patches shallow-merge top-level keys."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def read_metadata(self, user_id: str) -> dict[str, Any]:
        try:
            async with self._db.session() as session:
                memory = await session.get(ConversationMemory, user_id)
                return dict(memory.metadata_json) if memory is not None else {}
        except SQLAlchemyError as exc:
            raise PersistenceError("read_metadata", user_id, str(exc)) from exc

    async def patch_metadata(self, user_id: str, partial: dict[str, Any]) -> None:
        try:
            async with self._db.session() as session:
                stmt = select(ConversationMemory).where(ConversationMemory.user_id == user_id).with_for_update()
                result = await session.execute(stmt)
                memory = result.scalar_one_or_none()
                if memory is None:
                    session.add(ConversationMemory(user_id=user_id, metadata_json=dict(partial)))
                else:
                    memory.metadata_json = {**memory.metadata_json, **partial}
                await session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError("patch_metadata", user_id, str(exc)) from exc
