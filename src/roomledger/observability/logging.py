"""JSON log lines for the booking engine.

Each line carries the record timestamp (UTC), level, logger, message, the
request correlation id when one is bound, and whatever the caller passed
as extra={"extra_fields": {...}}. Callers put occupant data through
observability.redaction before it lands in extra_fields.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

SERVICE_NAME = "roomledger"

# Keys owned by the formatter; extra_fields cannot overwrite them
_RESERVED = frozenset({"timestamp", "level", "logger", "message", "service", "correlationId"})


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
        }

        cid = get_correlation_id()
        if cid:
            line["correlationId"] = cid

        extra_fields = getattr(record, "extra_fields", None) or {}
        line.update({k: v for k, v in extra_fields.items() if k not in _RESERVED})

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        return json.dumps(line, default=str)


def _configured_level() -> int:
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return a stdout JSON logger at LOG_LEVEL (default INFO).

    Configured once per name; later calls return the same logger untouched.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(_configured_level())
    logger.propagate = False
    return logger
