"""Structured Logging — one JSON object per log line, store context attached.

Invariants:
    - Every line carries timestamp (from the record, UTC), level, logger and message
    - Store context fields listed in EXTRA_FIELDS appear only when a call passes them
    - setup_logging is idempotent: reconfiguring replaces the previous handler

Design Decisions:
    - Plain logging.Formatter subclass; callers keep using logging.getLogger(__name__)
      with extra={...}
    - "text" format for local runs, "json" for anything shipped to a collector
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "entity_kind", "entity_id", "command", "error_code",
    "snapshot_key", "cascade_count", "attempt", "path",
    "input_tokens", "output_tokens",
)

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_handler: logging.Handler | None = None


class JSONFormatter(logging.Formatter):
    """LogRecord -> single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the root handler (replacing any previous one) and set the level."""
    global _handler
    if _handler is not None:
        logging.root.removeHandler(_handler)
    _handler = logging.StreamHandler()
    _handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    logging.root.addHandler(_handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
