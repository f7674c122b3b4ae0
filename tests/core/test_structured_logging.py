"""JSON log output and the progress context fields."""

from __future__ import annotations

import json
import logging
import sys

from coursetrack.core.logging import _ContainerFormatter, _JsonFormatter


def _record(
    msg: str = "Lesson completed", level: int = logging.INFO
) -> logging.LogRecord:
    return logging.LogRecord(
        name="coursetrack.services.orchestrator",
        level=level,
        pathname="orchestrator.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_produces_valid_json() -> None:
    record = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="test.py",
        lineno=42,
        msg="Hello %s",
        args=("world",),
        exc_info=None,
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test.logger"
    assert parsed["message"] == "Hello world"
    assert "timestamp" in parsed


def test_json_formatter_includes_progress_context() -> None:
    record = _record()
    record.user_id = "u-42"  # type: ignore[attr-defined]
    record.course_id = "python-basics"  # type: ignore[attr-defined]
    record.lesson_id = "python-basics-m1-l1"  # type: ignore[attr-defined]
    record.session_state = "active"  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["user_id"] == "u-42"
    assert parsed["course_id"] == "python-basics"
    assert parsed["lesson_id"] == "python-basics-m1-l1"
    assert parsed["session_state"] == "active"


def test_json_formatter_includes_request_context() -> None:
    record = _record("GET /health -> 200")
    record.request_id = "abc-123"  # type: ignore[attr-defined]
    record.method = "GET"  # type: ignore[attr-defined]
    record.path = "/health"  # type: ignore[attr-defined]
    record.status_code = 200  # type: ignore[attr-defined]
    record.duration_ms = 12.5  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["status_code"] == 200
    assert parsed["duration_ms"] == 12.5


def test_json_formatter_omits_placeholder_request_id() -> None:
    record = _record()
    record.request_id = "-"  # type: ignore[attr-defined]
    parsed = json.loads(_JsonFormatter().format(record))
    assert "request_id" not in parsed
    assert "user_id" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    formatter = _JsonFormatter()
    try:
        raise ValueError("test error")
    except ValueError:
        record = _record("Task failed", logging.ERROR)
        record.exc_info = sys.exc_info()
        output = formatter.format(record)

    parsed = json.loads(output)
    assert "ValueError: test error" in parsed["exception"]


def test_container_formatter_is_plain_text() -> None:
    output = _ContainerFormatter().format(_record("server started"))
    assert "INFO" in output
    assert "coursetrack.services.orchestrator" in output
    assert "server started" in output
    assert not output.startswith("{")
