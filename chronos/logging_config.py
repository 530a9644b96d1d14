"""Log output for Chronos: one JSON object per line, or plain text for local runs."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from chronos.utils.time import utc_now

HANDLER_NAME = "chronos"

# Per-request fields the middleware and the request log pass through ``extra``.
CONTEXT_KEYS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "user_id",
    "error_name",
)


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in CONTEXT_KEYS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """Renders a record as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": utc_now().isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[1]:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``LEVEL logger: message key=value ...`` for a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:<7} {record.name}: {record.getMessage()}"
        context = _context(record)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_formatter(fmt: str) -> logging.Formatter:
    return ConsoleFormatter() if (fmt or "").strip().lower() == "text" else JSONFormatter()


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Install (or reconfigure) the Chronos stdout handler on the root logger."""
    root_logger = logging.getLogger()

    handler = next((h for h in root_logger.handlers if h.get_name() == HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(HANDLER_NAME)
        root_logger.addHandler(handler)
    handler.setFormatter(build_formatter(fmt))
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "pymongo", "redis"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return handler
