"""Database package -- convenience re-exports.

Importing this module registers all models with Base.metadata.
"""

from reconciler.db.base import Base
from reconciler.db.models import ConversationMemory, PreferenceDocument
from reconciler.db.session import DatabaseManager
from reconciler.db.stores import SqlConversationMemoryStore, SqlPreferenceStore

__all__ = [
    # Base
    "Base",
    # Models
    "ConversationMemory",
    "PreferenceDocument",
    # Session
    "DatabaseManager",
    # Stores
    "SqlConversationMemoryStore",
    "SqlPreferenceStore",
]
