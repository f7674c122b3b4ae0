"""Logging configuration for coursetrack.

Two output shapes share one root handler:

  _ContainerFormatter: single human-readable line per record, for a
    terminal or `docker logs`.  WARNING and above carry the source
    location so a failed sync can be traced to the call site.

  _JsonFormatter: one JSON object per line (JSON Lines) for log
    aggregation.  Enabled with LOG_JSON=true.

PROGRESS CONTEXT
-----------------
The orchestrator, the repos and the API attach `user_id`, `course_id`
and `lesson_id` through `extra=`.  In JSON mode these become top-level
keys, so a single learner's completion sequence can be filtered out of
the stream:

    user_id == "u-42" AND course_id == "python-basics"

The request middleware adds `request_id`, `method`, `path`,
`status_code` and `duration_ms` the same way.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter for container stdout.

    - Always: ISO-8601 timestamp with milliseconds, level, logger, message
    - WARNING+: appends [filename:lineno]
    - Exceptions: stack trace when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # .NNN goes before the +0000 offset
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Context fields attached via `extra=` (or by the request-context
    filter) are emitted as top-level keys when present.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "user_id",
        "course_id",
        "lesson_id",
        "certificate_id",
        "session_state",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger.

    Args:
        level_name: debug/info/warning/error; unknown names fall back to INFO.
        json_format: emit JSON lines instead of the single-line text format.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
