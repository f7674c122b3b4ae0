"""Request id propagation and the per-request log line."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from coursetrack.middleware.request_context import request_id_var


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/enrollments")  # no token
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_request_is_logged_with_context(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="coursetrack.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "req-1"})

    records = [r for r in caplog.records if getattr(r, "path", None) == "/health"]
    assert records
    record = records[-1]
    assert record.request_id == "req-1"  # type: ignore[attr-defined]
    assert record.status_code == 200  # type: ignore[attr-defined]
    assert "GET /health -> 200" in record.getMessage()


def test_request_id_does_not_leak_after_request(client: TestClient) -> None:
    client.get("/health", headers={"X-Request-ID": "req-2"})
    assert request_id_var.get() == "-"
