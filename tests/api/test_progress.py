"""Per-lesson progress endpoints and the backfill request."""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from coursetrack.services.backfill import BACKFILL_QUEUE
from coursetrack.services.task_queue import task_queue
from tests.conftest import auth_headers

COURSE = "python-basics"
LESSON = f"{COURSE}-m1-l1"


def test_progress_rejects_missing_token(client: TestClient) -> None:
    assert client.get(f"/v1/progress/{COURSE}").status_code == 401
    assert client.post("/v1/progress/sync").status_code == 401


def test_save_and_read_progress(client: TestClient) -> None:
    headers = auth_headers("viewer")
    resp = client.put(
        f"/v1/progress/{COURSE}/lessons/{LESSON}",
        json={"position_seconds": 95, "duration_percent": 100, "completed": True},
        headers=headers,
    )
    assert resp.status_code == 204

    records = client.get(f"/v1/progress/{COURSE}", headers=headers).json()
    assert len(records) == 1
    assert records[0]["lesson_id"] == LESSON
    assert records[0]["completed"] is True
    assert records[0]["position_seconds"] == 95


def test_completed_is_sticky(client: TestClient) -> None:
    headers = auth_headers("viewer")
    url = f"/v1/progress/{COURSE}/lessons/{LESSON}"
    client.put(url, json={"completed": True, "duration_percent": 100}, headers=headers)
    client.put(url, json={"position_seconds": 10, "duration_percent": 5}, headers=headers)

    record = client.get(f"/v1/progress/{COURSE}", headers=headers).json()[0]
    assert record["completed"] is True
    assert record["position_seconds"] == 10


def test_progress_is_per_user(client: TestClient) -> None:
    client.put(
        f"/v1/progress/{COURSE}/lessons/{LESSON}",
        json={"completed": True},
        headers=auth_headers("viewer"),
    )
    other = client.get(f"/v1/progress/{COURSE}", headers=auth_headers("someone-else"))
    assert other.json() == []


def test_save_progress_validates_percent(client: TestClient) -> None:
    resp = client.put(
        f"/v1/progress/{COURSE}/lessons/{LESSON}",
        json={"duration_percent": 150},
        headers=auth_headers("viewer"),
    )
    assert resp.status_code == 422


# ---- 202: backfill request ----


def test_sync_request_returns_202(client: TestClient) -> None:
    resp = client.post("/v1/progress/sync", headers=auth_headers("sync-user"))
    assert resp.status_code == 202
    body = resp.json()
    assert "task_id" in body
    assert body["queue"] == BACKFILL_QUEUE


def test_sync_request_is_queued_for_caller(client: TestClient) -> None:
    client.post("/v1/progress/sync", headers=auth_headers("sync-user"))
    task = asyncio.run(task_queue.dequeue(BACKFILL_QUEUE))
    assert task is not None
    assert task.payload == {"user_id": "sync-user"}
