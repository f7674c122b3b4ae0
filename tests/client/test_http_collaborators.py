"""The httpx collaborators against the ASGI app, and their error mapping."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from coursetrack.client.http_collaborators import (
    HttpCertificateIssuer,
    HttpEnrollmentStore,
    HttpProgressSource,
    build_client,
)
from coursetrack.main import app
from coursetrack.models.certificate import CertificateParams
from coursetrack.models.session_events import CompletionDetected
from coursetrack.services import stores
from coursetrack.services.errors import (
    AlreadyEnrolledError,
    CertificateGenerationError,
    CourseNotFoundError,
    TransientSyncError,
)
from coursetrack.services.local_cache import InMemoryLocalStore, LocalProgressCache
from coursetrack.services.orchestrator import SessionState, open_session
from tests.conftest import mint_token

COURSE = "python-basics"
USER = "http-learner"


def _asgi_client(username: str = USER, **kwargs) -> httpx.AsyncClient:
    return build_client(
        mint_token(username, **kwargs),
        base_url="http://test",
        transport=httpx.ASGITransport(app=app),
    )


def _mock_client(handler) -> httpx.AsyncClient:
    return build_client(
        mint_token(USER),
        base_url="http://test",
        transport=httpx.MockTransport(handler),
    )


# ---- against the API ----


def test_enroll_and_lookup_over_http() -> None:
    async def scenario():
        async with _asgi_client() as client:
            store = HttpEnrollmentStore(client)
            assert await store.get_user_enrollment(USER, COURSE) is None
            assert await store.has_access_to_course(USER, COURSE) is False
            enrollment = await store.enroll(USER, COURSE)
            with pytest.raises(AlreadyEnrolledError):
                await store.enroll(USER, COURSE)
            with pytest.raises(CourseNotFoundError):
                await store.enroll(USER, "nope")
            fetched = await store.get_user_enrollment(USER, COURSE)
            return enrollment, fetched, await store.has_access_to_course(USER, COURSE)

    enrollment, fetched, has_access = asyncio.run(scenario())
    assert fetched.id == enrollment.id
    assert has_access is True


def test_progress_round_trip_over_http() -> None:
    async def scenario():
        async with _asgi_client() as client:
            source = HttpProgressSource(client)
            await source.save_progress(USER, COURSE, f"{COURSE}-m1-l1", 30, 100, True)
            return await source.get_course_progress(USER, COURSE)

    records = asyncio.run(scenario())
    assert [(r.lesson_id, r.completed, r.user_id) for r in records] == [
        (f"{COURSE}-m1-l1", True, USER)
    ]


def test_session_completes_course_over_http() -> None:
    events = []

    async def scenario():
        async with _asgi_client(name="Remote Learner") as client:
            enrollments = HttpEnrollmentStore(client)
            certificates = HttpCertificateIssuer(client)
            await enrollments.enroll(USER, COURSE)
            session = await open_session(
                user_id=USER,
                course_id=COURSE,
                catalog=stores.course_catalog,
                local=LocalProgressCache(InMemoryLocalStore()),
                progress=HttpProgressSource(client),
                enrollments=enrollments,
                certificates=certificates,
                listener=events.append,
            )
            await session.on_course_entered()
            for lesson_id in session.all_lessons:
                await session.on_lesson_completed(lesson_id)
            verification = await certificates.verify_certificate(
                session.certificate.id, session.certificate.verification_code
            )
            return session, verification

    session, verification = asyncio.run(scenario())
    assert session.state is SessionState.CERTIFICATE_ISSUED
    assert session.progress_percent == 100
    assert session.certificate.student_name == "Remote Learner"
    assert verification.is_valid is True
    final = [e for e in events if isinstance(e, CompletionDetected)][-1]
    assert final.certificate is not None

    enrollment = asyncio.run(stores.enrollment_store.get_user_enrollment(USER, COURSE))
    assert enrollment.is_completed
    assert enrollment.progress_percent == 100


def test_manual_certificate_without_enrollment_fails_over_http() -> None:
    async def scenario():
        async with _asgi_client() as client:
            await HttpCertificateIssuer(client).generate_certificate(
                CertificateParams(
                    user_id=USER,
                    course_id=COURSE,
                    student_name="A",
                    course_name="Python Basics",
                    instructor_name="Ada Lovelace",
                )
            )

    with pytest.raises(CertificateGenerationError):
        asyncio.run(scenario())


# ---- error mapping ----


def test_server_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"detail": "storage temporarily unavailable"})

    async def scenario():
        async with _mock_client(handler) as client:
            await HttpProgressSource(client).get_course_progress(USER, COURSE)

    with pytest.raises(TransientSyncError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.operation == "get_course_progress"


def test_transport_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with _mock_client(handler) as client:
            await HttpEnrollmentStore(client).mark_lesson_completed("e-1", "l-1")

    with pytest.raises(TransientSyncError):
        asyncio.run(scenario())


def test_unexpected_client_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"detail": "bad"})

    async def scenario():
        async with _mock_client(handler) as client:
            await HttpProgressSource(client).save_progress(USER, COURSE, "l", 0, 0, True)

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(scenario())


def test_access_check_failure_denies() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    async def scenario():
        async with _mock_client(handler) as client:
            return await HttpEnrollmentStore(client).has_access_to_course(USER, COURSE)

    assert asyncio.run(scenario()) is False


def test_completion_issuance_outage_is_generation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async def scenario():
        async with _mock_client(handler) as client:
            await HttpCertificateIssuer(
                client
            ).generate_certificate_for_course_completion(USER, COURSE)

    with pytest.raises(CertificateGenerationError):
        asyncio.run(scenario())


def test_bearer_token_is_sent() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json=[])

    async def scenario():
        async with _mock_client(handler) as client:
            return await HttpProgressSource(client).get_course_progress(USER, COURSE)

    assert asyncio.run(scenario()) == []
    assert seen["auth"].startswith("Bearer ")


def test_revoked_lookup_sends_include_revoked() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params.get("include_revoked"))
        return httpx.Response(
            200, content=b"null", headers={"content-type": "application/json"}
        )

    async def scenario():
        async with _mock_client(handler) as client:
            issuer = HttpCertificateIssuer(client)
            await issuer.get_user_course_certificate(USER, COURSE)
            await issuer.get_user_course_certificate(
                USER, COURSE, include_revoked=True
            )

    asyncio.run(scenario())
    assert seen == [None, "true"]
