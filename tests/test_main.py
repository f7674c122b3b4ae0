from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from coursetrack.api import progress as progress_api
from coursetrack.main import app
from coursetrack.services.errors import TransientSyncError
from tests.conftest import auth_headers

client = TestClient(app)


class _DownProgressSource:
    async def get_course_progress(self, user_id, course_id):
        raise TransientSyncError("get_course_progress", "connection refused")

    async def save_progress(self, *args, **kwargs):
        raise TransientSyncError("save_progress", "connection refused")


def test_openapi_schema_is_served() -> None:
    assert client.get("/openapi.json").status_code == 200


def test_routers_are_mounted() -> None:
    paths = {getattr(route, "path", None) for route in app.routes}
    assert "/health" in paths
    assert "/metrics" in paths
    assert "/v1/courses" in paths
    assert "/v1/enrollments/{enrollment_id}" in paths
    assert "/v1/progress/{course_id}/lessons/{lesson_id}" in paths
    assert "/v1/certificates/{certificate_id}/verify" in paths


def test_storage_outage_maps_to_503(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(progress_api, "progress_source", _DownProgressSource())
    resp = client.get("/v1/progress/python-basics", headers=auth_headers())
    assert resp.status_code == 503
    assert resp.json() == {
        "detail": "storage temporarily unavailable",
        "code": "transient_sync",
    }


def test_full_course_through_the_api() -> None:
    headers = auth_headers("finisher", name="Fin Isher")
    course = client.get("/v1/courses/python-basics", headers=headers).json()
    enrollment = client.post("/v1/courses/python-basics/enroll", headers=headers).json()

    for lesson_id in course["lesson_ids"]:
        client.put(
            f"/v1/progress/python-basics/lessons/{lesson_id}",
            json={"completed": True, "duration_percent": 100},
            headers=headers,
        )
        client.post(
            f"/v1/enrollments/{enrollment['id']}/lessons/{lesson_id}",
            headers=headers,
        )
    client.patch(
        f"/v1/enrollments/{enrollment['id']}/progress",
        json={"progress_percent": 100},
        headers=headers,
    )
    done = client.post(
        "/v1/enrollments/course/python-basics/complete", headers=headers
    ).json()
    assert done["status"] == "completed"

    cert_id = client.post(
        "/v1/certificates/course/python-basics/completion", headers=headers
    ).json()["certificate_id"]
    cert = client.get(f"/v1/certificates/{cert_id}", headers=headers).json()
    assert cert["student_name"] == "Fin Isher"
    assert cert["achievements"] == ["Course Completed", "All Lessons Finished"]
