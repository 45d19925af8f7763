"""Structured logging configuration.

Monitoring log lines carry call and alert context through ``extra=``; the JSON
formatter lifts those fields to the top level so log pipelines can index them.
"""

import json
import logging
from datetime import UTC, datetime

from apimon.middleware import TraceIDFilter

# ``extra=`` keys promoted into JSON output when present on a record.
CONTEXT_FIELDS = (
    "trace_id",
    "method",
    "endpoint",
    "status_code",
    "duration_ms",
    "alert_id",
    "alert_type",
)

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(trace_id)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line with the monitoring context fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["error"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "stacktrace": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class _TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "trace_id", None) is None:
            record.trace_id = "-"  # type: ignore[attr-defined]
        return super().format(record)


def configure_logging(*, log_format: str = "text", debug: bool = False) -> None:
    """Install a single stream handler on the root logger.

    Calling it again replaces the handler instead of stacking another one.
    """
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(TraceIDFilter())
    handler.setFormatter(JSONFormatter() if log_format == "json" else _TextFormatter(TEXT_FORMAT))
    root.addHandler(handler)

    # The middleware already records every request.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
