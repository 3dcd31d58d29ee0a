"""JSON log formatter for structured logging output."""

import json
import logging
from datetime import UTC, datetime


class JSONLogFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects.

    Output format::

        {"timestamp": "...", "level": "INFO", "service": "reconciler",
         "logger": "reconciler.session", "message": "...", "user_id": "...", ...}
    """

    def __init__(self, service: str = "reconciler") -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Passed via extra={"user_id": ...} by the session
        user_id = getattr(record, "user_id", None)
        if user_id:
            entry["user_id"] = user_id

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)
