from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from leakrelay.core.redaction import redact_text


class RedactingFilter(logging.Filter):
    """Scrub credential patterns from every record before it is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        record.msg = redact_text(message)
        record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for CI log ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("stage", "run_id", "attempts"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exception"] = redact_text(self.formatException(record.exc_info))
        return json.dumps(payload)


def configure_logging(level: str = "INFO", fmt: str = "text") -> logging.Logger:
    """Install a single stderr handler on the package logger.

    Notes:
        stdout is left for the run summary so CI steps can capture it.
    """
    logger = logging.getLogger("leakrelay")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    handler.addFilter(RedactingFilter())
    logger.addHandler(handler)
    return logger
