"""Structured logging: JSON formatter and one-time setup.

Structured fields passed through ``extra=`` (relationship_id, quest_template_id,
...) are surfaced as top-level keys when present.
"""

import json
import logging
from datetime import datetime, timezone

STRUCTURED_FIELDS = (
    "relationship_id",
    "quest_template_id",
    "cadence",
    "event_type",
    "actor_id",
    "started_at",
    "completed_at",
    "completed_by_actor_id",
    "time_to_completion_ms",
    "recipient_id",
    "attempt",
    "error_code",
    "expired_count",
    "path",
)


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in STRUCTURED_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


_handler: logging.Handler | None = None


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the service log handler on the root logger (replacing a previous one)."""
    global _handler
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    if _handler is not None:
        logging.root.removeHandler(_handler)
    _handler = handler
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
