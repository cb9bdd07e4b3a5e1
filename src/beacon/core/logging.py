from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

# extra fields copied onto the JSON line when present on the record
EXTRA_KEYS: tuple[str, ...] = (
    "project_id",
    "feature",
    "event_type",
    "event_name",
    "event_id",
    "session_id",
    "funnel_name",
    "reason",
    "provider",
    "num_events",
    "num_batches",
    "retries",
    "delay_s",
    "dropped",
    "duration_ms",
    "error",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_utc": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)


def get_logger(name: str, level: str = "ERROR") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level.upper())
    if logger.handlers:
        return logger  # avoid double handlers in tests

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
