import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

# Structured fields copied from ``extra={...}`` onto each JSON line
LOG_FIELDS = (
    "request_id",
    "project_id",
    "session_id",
    "user_id",
    "collection",
    "status",
    "duration_ms",
)

# Client libraries that log every HTTP round trip at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "botocore", "urllib3")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({
            field: getattr(record, field)
            for field in LOG_FIELDS
            if getattr(record, field, None) is not None
        })
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: int = logging.INFO, stream: Optional[object] = None) -> None:
    """Send every log record to one JSON handler on the root logger."""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
