"""
Structured logging configuration.

``LOG_FORMAT`` picks the formatter ("json" or "readable"); unset, JSON is
used unless the app runs in debug or testing mode. ``LOG_LEVEL`` sets the
level. Context passed as ``extra={...}`` is rendered by both formatters.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

HANDLER_NAME = "testhub"

# Fields repository code passes through ``extra={...}``
_EXTRA_FIELDS = (
    "operation", "error", "backend",
    "test_case_id", "version", "actor_id", "step_count", "steps_replaced",
    "run_id", "result_id", "status", "duration",
    "folder_id", "failed_stage", "completed",
    "user_id", "action", "entity_type", "entity_id",
)


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in _EXTRA_FIELDS
        if getattr(record, key, None) is not None
    }


def _created(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _created(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
            **_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [k=v ...]``"""

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{_created(record).astimezone():%H:%M:%S} {record.levelname:<8} "
            f"{record.name}: {record.getMessage()}"
        )
        context = _context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the testhub stream handler on the root logger.

    Calling it again (one call per app) swaps the handler instead of
    stacking a second one. Handlers installed by others are left alone.
    """
    verbose = app.config.get("DEBUG", False) or app.config.get("TESTING", False)
    level_name = os.getenv("LOG_LEVEL", "DEBUG" if verbose else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = app.config.get("LOG_FORMAT") or ("readable" if verbose else "json")

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if log_format == "json" else ReadableFormatter())

    root = logging.getLogger()
    for old in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    app.logger.setLevel(level)
    app.logger.debug("Logging configured: level=%s format=%s", level_name, log_format)
