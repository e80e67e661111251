"""Process logging for the AI service.

Environment variables:
    LOG_FORMAT        "json" for one JSON object per line, anything else for text (default "text")
    LOG_LEVEL         level for the service loggers (default "INFO")
    LOG_HTTP_LEVEL    level for urllib3/httpx transport chatter (default "WARNING")
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Fields capability code attaches with `extra=`; secrets never travel this way.
CONTEXT_FIELDS = ("operation", "credential", "provider")

_TRANSPORT_LOGGERS = ("urllib3", "httpx", "httpcore")

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                entry[name] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _level(name: str, default: int) -> int:
    value = logging.getLevelName(str(name or "").strip().upper())
    return value if isinstance(value, int) else default


def configure_logging() -> None:
    """Install a single stderr handler on the root logger; safe to call again on reload."""
    root = logging.getLogger()
    root.setLevel(_level(os.getenv("LOG_LEVEL", "INFO"), logging.INFO))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    if os.getenv("LOG_FORMAT", "text").strip().lower() == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)

    transport_level = _level(os.getenv("LOG_HTTP_LEVEL", "WARNING"), logging.WARNING)
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
