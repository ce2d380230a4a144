"""Structured JSON logger for notionmap.

Every log record is emitted as a single-line JSON object.  Asset URLs show
up in many records (rewrites, refreshes, proxy fetches), so the formatter
masks presigned query values in the message and in every string field
before serialising; a log line never carries a replayable signed URL.

Typical structured output::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "WARNING",
     "logger": "notionmap.fetcher", "message": "Subtree abandoned",
     "op": "list_children", "block_id": "abc123", "attempts": 3}

Usage::

    from notionmap.observability import get_logger

    log = get_logger("notionmap.fetcher")
    log.info("document fetched", extra={"extra_fields": {"root_id": "abc"}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from notionmap.utils.redact import mask_presigned_urls_in_text


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return mask_presigned_urls_in_text(value)
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys: ``ts`` (ISO-8601 UTC), ``level``, ``logger`` and
    ``message``.  Fields passed as ``extra={"extra_fields": {...}}`` are
    merged into the top-level object.  ``exception`` and ``stack_info`` are
    added when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_presigned_urls_in_text(record.getMessage()),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(_scrub(extra_fields))

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = mask_presigned_urls_in_text(
                self.formatException(record.exc_info)
            )

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str)


# One handler per logger name so that ``get_logger`` is idempotent.
_configured_loggers: set[str] = set()


def get_logger(
    name: str = "notionmap",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name, e.g. ``"notionmap.fetcher"``.
    level:
        Minimum log level, as an ``int`` or a case-insensitive name.
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        A logger with a :class:`StructuredFormatter` handler attached.
        Repeated calls with the same *name* do not add handlers.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        resolved_level = (
            logging.getLevelName(level.upper())
            if isinstance(level, str)
            else level
        )
        logger.setLevel(resolved_level)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        _configured_loggers.add(name)

    return logger
