"""Structured Logging — JSON formatter and setup for the run's diagnostic stream.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (step, error_code, severity, user_name, row_count) surfaced when present
    - Logs go to stderr; stdout is reserved for the progress lines

Design Decisions:
    - Each error is logged once, where it is mapped, with TxDemoError.log_extra()
    - setup_logging called once by the entry routine
"""

import logging
import json
import sys
from datetime import datetime, timezone

from txdemo.core.errors import TxDemoError

EXTRA_FIELDS = ("step", "error_code", "severity", "user_name", "row_count")


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "text") -> logging.Handler:
    """Configure root logging; returns the installed handler."""
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler


def log_error(logger: logging.Logger, err: TxDemoError) -> TxDemoError:
    """Log err once with its code, severity and step; return it for raising."""
    logger.error(err.message, extra=err.log_extra())
    return err
