"""Demo: run one learner's course session against the API in-process.

Run with:
    python scripts/demo_course_session.py

The session talks to the app over httpx's ASGI transport, keeps its
local cache in a temporary directory, and prints every session event
until the certificate is verified.  Running the second pass shows the
load path adopting the existing certificate.
"""

from __future__ import annotations

import asyncio
import tempfile

import httpx

from coursetrack.client.http_collaborators import (
    HttpCertificateIssuer,
    HttpEnrollmentStore,
    HttpProgressSource,
    build_client,
)
from coursetrack.main import app
from coursetrack.models.session_events import SessionEvent
from coursetrack.services import stores, token_service
from coursetrack.services.local_cache import FileLocalStore, LocalProgressCache
from coursetrack.services.orchestrator import open_session

COURSE_ID = "python-basics"
USER_ID = "demo-learner"


def _print_event(event: SessionEvent) -> None:
    print(f"  event  {event}")


async def _run_session(client: httpx.AsyncClient, cache_dir: str) -> None:
    enrollments = HttpEnrollmentStore(client)
    certificates = HttpCertificateIssuer(client)
    session = await open_session(
        user_id=USER_ID,
        course_id=COURSE_ID,
        catalog=stores.course_catalog,
        local=LocalProgressCache(FileLocalStore(cache_dir, USER_ID)),
        progress=HttpProgressSource(client),
        enrollments=enrollments,
        certificates=certificates,
        listener=_print_event,
    )

    await session.on_course_entered()
    print(f"  loaded state={session.state.value} percent={session.progress_percent}")

    for lesson_id in session.all_lessons:
        if await session.on_lesson_completed(lesson_id):
            print(f"  lesson {lesson_id} -> {session.progress_percent}%")

    cert = session.certificate
    if cert is None:
        print(f"  no certificate, state={session.state.value}")
        return
    result = await certificates.verify_certificate(cert.id, cert.verification_code)
    print(f"  certificate {cert.certificate_number} for {cert.student_name}")
    print(f"  verify -> {result.message}")
    session.close()


async def main() -> None:
    token = token_service.create_access_token(sub=USER_ID, name="Demo Learner")
    transport = httpx.ASGITransport(app=app)

    with tempfile.TemporaryDirectory() as cache_dir:
        async with build_client(
            token, base_url="http://demo", transport=transport
        ) as client:
            await HttpEnrollmentStore(client).enroll(USER_ID, COURSE_ID)

            print("First visit:")
            await _run_session(client, cache_dir)
            print("Second visit:")
            await _run_session(client, cache_dir)


if __name__ == "__main__":
    asyncio.run(main())
