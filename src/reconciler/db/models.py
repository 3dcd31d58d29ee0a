"""Stored documents: the per-user preference document and conversation memory."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from reconciler.db.base import Base
from reconciler.utils import utc_now

# JSONB on PostgreSQL, plain JSON on SQLite (tests)
_JsonB = JSONB().with_variant(JSON(), "sqlite")


class PreferenceDocument(Base):
    """Per-user preference document, stored whole and versioned.

    ``preferences_json`` may still hold a legacy-shaped document written by an
    older client; it is migrated on read and rewritten canonically on save.
    """

    __tablename__ = "preference_documents"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    preferences_json: Mapped[dict[str, object]] = mapped_column(_JsonB, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class ConversationMemory(Base):
    """Metadata written by the extraction process, one row per user."""

    __tablename__ = "conversation_memories"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    metadata_json: Mapped[dict[str, object]] = mapped_column(_JsonB, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
