"""
Logging helpers for bowlise.

Modules log through the standard ``logging`` package under the ``bowlise``
namespace. Cache events carry ``cache``, ``subject_id`` and ``target_id``
through ``extra``; ``StructuredJsonFormatter`` turns them into JSON fields:

    {"timestamp": "...", "level": "DEBUG", "logger": "bowlise.facade",
     "message": "Cache miss", "cache": "subject_roles",
     "subject_id": "user-1", "target_id": "doc-9"}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

# Fields every cache event may carry, emitted right after the fixed ones
CONTEXT_FIELDS = ("cache", "subject_id", "target_id")

# Anything a bare LogRecord already has did not come from ``extra``
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if field in record.__dict__:
                payload[field] = _jsonable(record.__dict__[field])

        for key, value in record.__dict__.items():
            if key in _RESERVED or key in payload or key.startswith("_"):
                continue
            payload[key] = _jsonable(value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "bowlise",
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Send a logger's records to a stream as JSON lines.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the bowlise package logger,
            None for the root logger)
        stream: Destination (default: stdout)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Calling twice must not duplicate output
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_bowlise_logger(name: str) -> logging.Logger:
    """Logger named ``bowlise.<name>``, e.g. ``bowlise.facade``."""
    return logging.getLogger(f"bowlise.{name}")
