"""
Logging configuration

JSON (default) or plain-text output on stderr, optional rotating log file.
Context is attached through ``extra={...}`` and rendered by the JSON formatter.
"""
import json
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from storefront.core.config import settings

# Attributes every LogRecord has; anything else came from ``extra``
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.utcfromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure the root logger once (safe to call repeatedly)."""
    global _configured
    if _configured:
        return

    level_name = (level or settings.LOG_LEVEL).upper()
    formatter: logging.Formatter
    if (fmt or settings.LOG_FORMAT).lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    root = logging.getLogger()
    root.setLevel(level_name)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if settings.LOG_FILE:
        file_handler = RotatingFileHandler(
            settings.LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Quiet noisy libraries
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
