"""Tests for the JSON log formatter and logging setup."""

import io
import sys
import json
import logging
from collections.abc import Iterator

import pytest

from reconciler.logging import JSONLogFormatter, configure_logging


def _record(message: str, level: int = logging.INFO, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("reconciler.session", level, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONLogFormatter:
    def test_fields(self) -> None:
        entry = json.loads(JSONLogFormatter(service="reconciler").format(_record("Committed preferences")))
        assert entry["level"] == "INFO"
        assert entry["service"] == "reconciler"
        assert entry["logger"] == "reconciler.session"
        assert entry["message"] == "Committed preferences"
        assert "timestamp" in entry
        assert "user_id" not in entry

    def test_user_id(self) -> None:
        entry = json.loads(JSONLogFormatter().format(_record("Approved", user_id="user-1")))
        assert entry["user_id"] == "user-1"

    def test_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        entry = json.loads(JSONLogFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


@pytest.mark.usefixtures("restore_root_logger")
class TestConfigureLogging:
    def test_json_output(self) -> None:
        stream = io.StringIO()
        configure_logging("reconciler-test", "INFO", json_output=True, stream=stream)

        logging.getLogger("reconciler.test").info("hello", extra={"user_id": "u1"})

        entry = json.loads(stream.getvalue().strip())
        assert entry["service"] == "reconciler-test"
        assert entry["message"] == "hello"
        assert entry["user_id"] == "u1"

    def test_single_handler(self) -> None:
        configure_logging(stream=io.StringIO())
        configure_logging(stream=io.StringIO())
        assert len(logging.getLogger().handlers) == 1

    def test_level(self) -> None:
        stream = io.StringIO()
        configure_logging(level="WARNING", json_output=False, stream=stream)

        logging.getLogger("reconciler.test").info("hidden")
        logging.getLogger("reconciler.test").warning("shown")

        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()
