"""
Structured Logging Utilities

Catalog components log through module-level ``logging.getLogger(__name__)``
loggers using short event names (``ingest-commit``, ``sweep-reclaimed``) and
an ``extra={"event": {...}}`` payload.  This module installs the console
handler for the ``Otame`` logger tree and provides :class:`JSONFormatter` so
that payload ends up in machine-readable log lines.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, TextIO

from .settings import LoggingConfig

ROOT_LOGGER_NAME = "Otame"


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        """Serialize a logging record into a JSON line."""
        now = datetime.now(timezone.utc)
        log_obj = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if isinstance(event, dict):
            log_obj["event"] = event
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


class EventFormatter(logging.Formatter):
    """Plain-text formatter that appends the ``event`` payload, if any."""

    def __init__(self) -> None:
        super().__init__("%(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        event = getattr(record, "event", None)
        if isinstance(event, dict) and event:
            fields = " ".join(f"{key}={value}" for key, value in event.items())
            text = f"{text} [{fields}]"
        return text


def setup_logging(config: LoggingConfig, stream: Optional[TextIO] = None) -> logging.Logger:
    """Configure the console handler of the ``Otame`` logger.

    Handlers installed by an earlier call are replaced, so calling this twice
    does not duplicate output.

    Args:
        config: Logging configuration with level and output format.
        stream: Destination stream; defaults to ``sys.stderr``.

    Returns:
        The configured ``Otame`` logger.

    Examples:
        >>> logger = setup_logging(LoggingConfig(level="INFO"))
        >>> logger.name
        'Otame'
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_otame_managed", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if config.json_output else EventFormatter())
    handler._otame_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = True
    return logger


__all__ = ["JSONFormatter", "EventFormatter", "setup_logging", "ROOT_LOGGER_NAME"]
