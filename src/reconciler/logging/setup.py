"""Logging configuration for the engine and its CLI."""

import logging
import sys
from typing import TextIO

from reconciler.config.constants import DEFAULT_SERVICE_NAME
from reconciler.logging.formatter import JSONLogFormatter

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    service: str = DEFAULT_SERVICE_NAME,
    level: str | int = logging.INFO,
    json_output: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Install a single handler on the root logger (stdout unless ``stream`` is given)."""
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(JSONLogFormatter(service=service) if json_output else logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)
