"""Preference & constraint reconciliation engine."""

from reconciler.exceptions import MigrationError, PersistenceError, ReconcilerError, SessionClosedError
from reconciler.models import (
    LearnedPreference,
    PreferenceCategory,
    PreferenceValue,
    UnifiedConstraint,
    UnifiedConstraintsType,
    UserPreferences,
)
from reconciler.session import PreferenceSession

__all__ = [
    "LearnedPreference",
    "MigrationError",
    "PersistenceError",
    "PreferenceCategory",
    "PreferenceSession",
    "PreferenceValue",
    "ReconcilerError",
    "SessionClosedError",
    "UnifiedConstraint",
    "UnifiedConstraintsType",
    "UserPreferences",
]
