"""Custom logging handlers for fluent_transcoder.

Provides JSONFormatter for structured log output.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

# LogRecord attributes that are not caller-supplied context
_STANDARD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line.

    Keys: timestamp (ISO-8601 UTC), level, message, logger (unless root),
    context (values passed through ``extra=``) and exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        record_time = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: dict[str, Any] = {
            "timestamp": record_time.isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }

        if record.name and record.name != "root":
            log_entry["logger"] = record.name

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if context:
            log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)
