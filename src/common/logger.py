"""
UCASA — Structured JSON Logger

Every log entry is a JSON object with:
  - timestamp (ISO 8601)
  - level
  - module
  - message
  - optional context fields (tracker_id, pair_key, etc.)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredJsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        # Merge any extra context attached to the record
        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        # Include traceback on ERROR / CRITICAL
        if record.exc_info and record.exc_info[1]:
            log_entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "INFO") -> None:
    """
    Install the JSON formatter on the root logger. Called once at startup;
    modules keep using ``logging.getLogger(__name__)``.

    Usage:
        logger.info("Alert sent", extra={"context": {"tracker_id": "+911234"}})
    """
    root = logging.getLogger()
    if not any(isinstance(h.formatter, StructuredJsonFormatter) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredJsonFormatter())
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
