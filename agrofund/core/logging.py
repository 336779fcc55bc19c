"""
Logging setup for the marketplace service.

Three handlers hang off the root logger:

- ``agrofund.log``: every record as one JSON object per line, rotated by size.
- ``agrofund-error.log``: ERROR and above only, same format.
- stdout: a short coloured line per record for local runs.

Context passed with ``extra=`` (the table a realtime event touched, the user
or project an operation acted on) lands in the JSON payload and, abbreviated,
on the console line.  ``setup_logging()`` runs once, from ``main.py`` or the
seed script.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from agrofund.core.config import settings
from agrofund.middleware import RequestIDLogFilter

LOG_DIR = settings.LOG_DIR or os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs"
)
APP_LOG = "agrofund.log"
ERROR_LOG = "agrofund-error.log"

# Request fields set by the timing middleware.
_REQUEST_FIELDS = ("method", "path", "status_code", "elapsed_ms", "client_ip")
# Domain fields callers attach to their records.
_CONTEXT_FIELDS = ("table", "event_type", "user_id", "project_id")


def _context(record: logging.LogRecord, fields: tuple) -> Dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in fields
        if getattr(record, key, None) is not None
    }


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record::

        {"timestamp": "2025-03-05T08:45:00+00:00", "level": "INFO",
         "logger": "agrofund.services.investment_service",
         "message": "Investment ... committed", "request_id": "…",
         "user_id": "…", "project_id": "…"}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        payload.update(_context(record, _REQUEST_FIELDS))
        payload.update(_context(record, _CONTEXT_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger [rid] message (table=… user=…)``"""

    COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.COLOURS.get(record.levelname, self.RESET)
        request_id = getattr(record, "request_id", None)
        rid = f" [{request_id[:8]}]" if request_id else ""
        context = _context(record, _CONTEXT_FIELDS)
        suffix = ""
        if context:
            # ids are long; the first block is enough to correlate by eye
            suffix = " (" + " ".join(
                f"{key.replace('_id', '')}={str(value)[:8]}" for key, value in context.items()
            ) + ")"

        line = (
            f"{_timestamp(record):%H:%M:%S} {colour}{record.levelname:<7}{self.RESET} "
            f"{record.name}{rid} {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _handler(
    handler: logging.Handler, formatter: logging.Formatter, level: int
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIDLogFilter())
    return handler


def _rotating(filename: str) -> RotatingFileHandler:
    return RotatingFileHandler(
        filename=os.path.join(LOG_DIR, filename),
        maxBytes=settings.LOG_FILE_MAX_BYTES,
        backupCount=settings.LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )


def setup_logging(level: Optional[int] = None) -> None:
    """
    Attach the console, JSON and error-file handlers to the root logger.

    Does nothing when the root logger already has handlers, so pytest's
    capture (or a second call) is left alone.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    if level is None:
        level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root.setLevel(level)

    os.makedirs(LOG_DIR, exist_ok=True)
    root.addHandler(_handler(logging.StreamHandler(sys.stdout), ConsoleFormatter(), level))
    root.addHandler(_handler(_rotating(APP_LOG), JSONFormatter(), level))
    root.addHandler(_handler(_rotating(ERROR_LOG), JSONFormatter(), logging.ERROR))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.DEBUG if settings.DEBUG else logging.WARNING)

    root.info("Logging ready (level=%s, dir=%s)", logging.getLevelName(level), LOG_DIR)
