"""Logging setup for the console.

Development gets a short human-readable line per record. Every other
environment gets one JSON object per line, carrying the entity context that
the engines attach through ``extra=``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# Attributes the engines pass via ``extra=`` and that are copied into JSON lines
CONTEXT_FIELDS = ("entity", "record_id", "generation")

_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")

_DEV_FORMAT = "%(asctime)s %(levelname)-8s %(name)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line (non-ASCII kept as is)."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_logging(environment: str = "development", level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger.

    Handlers already attached to the root (by a host application or a previous
    call) are replaced. Unknown level names fall back to INFO.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    if environment == "development":
        handler.setFormatter(logging.Formatter(_DEV_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
