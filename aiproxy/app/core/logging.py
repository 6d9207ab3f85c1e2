"""Logging setup for the proxy.

Records go through the standard ``logging`` package. ``LOG_FORMAT`` picks
plain text, text with request context appended, or one JSON object per line
for log collectors.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from aiproxy.app.core.config import settings

# Per-request attributes callers attach through ``extra``
CONTEXT_FIELDS = (
    "request_id",
    "client_id",     # always masked, see mask_identity
    "tier",          # tier that denied the request
    "path",
    "method",
    "status_code",
    "duration_ms",
)

# Attributes every LogRecord carries; anything else came from ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONTEXT_TEXT_FORMAT = TEXT_FORMAT + " - request_id=%(request_id)s - client_id=%(client_id)s"


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line.

    Known context fields sit at the top level; any other ``extra`` values
    are grouped under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra: Dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in CONTEXT_FIELDS:
                if value is not None:
                    entry[key] = value
            elif key not in _RECORD_ATTRS:
                extra[key] = value
        if extra:
            entry["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Give every record the context attributes, defaulting to None.

    The context text format interpolates them, so they must exist even when
    the caller passed no ``extra``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Build the ``dictConfig`` mapping for the current settings."""
    level = settings.log_level.upper()
    formatter = {
        "json": "json",
        "structured": "structured",
    }.get(settings.log_format.lower(), "standard")

    def stream_handler(stream, handler_level: str) -> Dict[str, Any]:
        return {
            "class": "logging.StreamHandler",
            "level": handler_level,
            "formatter": formatter,
            "stream": stream,
            "filters": ["context"],
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": TEXT_FORMAT},
            "structured": {"format": CONTEXT_TEXT_FORMAT},
            "json": {"()": JSONFormatter},
        },
        "filters": {"context": {"()": ContextFilter}},
        "handlers": {
            "console": stream_handler(sys.stdout, level),
            "error_console": stream_handler(sys.stderr, "ERROR"),
        },
        "loggers": {
            "aiproxy": {
                "level": level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
            "uvicorn": {"level": level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging() -> None:
    """Apply the logging configuration and quiet chatty libraries."""
    logging.config.dictConfig(get_logging_config())
    for noisy in ("uvicorn.access", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = "aiproxy") -> logging.Logger:
    return logging.getLogger(name)


def mask_identity(identity: Optional[str]) -> str:
    """Keep the first 8 characters of a client identity for logs."""
    if not identity:
        return "unknown"
    return identity[:8] + "..."


def get_log_context(
    request_id: Optional[str] = None,
    client_id: Optional[str] = None,
    **extra
) -> Dict[str, Any]:
    """Collect non-None context values for a logger's ``extra`` argument.

    Example:
        >>> logger.info("Rate limit exceeded",
        ...             extra=get_log_context(client_id="1.2.3.4...", tier="minute"))
    """
    context = {"request_id": request_id, "client_id": client_id, **extra}
    return {key: value for key, value in context.items() if value is not None}
