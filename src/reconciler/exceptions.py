"""Reconciliation engine exceptions."""


class ReconcilerError(Exception):
    """Base exception for reconciliation engine errors."""


class MigrationError(ReconcilerError):
    """A legacy field could not be interpreted.

    Raised per field inside the migrator and handled there: the field falls
    back to an empty category and migration continues.
    """

    def __init__(self, field: str, detail: str = "") -> None:
        self.field = field
        self.detail = detail
        super().__init__(f"Cannot migrate field {field!r}" + (f": {detail}" if detail else ""))


class PersistenceError(ReconcilerError):
    """A store collaborator failed to load, save, read, or patch a document."""

    def __init__(self, operation: str, user_id: str, detail: str = "") -> None:
        self.operation = operation
        self.user_id = user_id
        self.detail = detail
        super().__init__(f"{operation} failed for user {user_id}" + (f": {detail}" if detail else ""))


class SessionClosedError(ReconcilerError):
    """A PreferenceSession was used after close()."""
