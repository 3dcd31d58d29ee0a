"""Structured logging: JSON formatter and setup."""

from reconciler.logging.formatter import JSONLogFormatter
from reconciler.logging.setup import configure_logging

__all__ = ["JSONLogFormatter", "configure_logging"]
