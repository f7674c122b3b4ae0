"""ProgressOrchestrator behaviour.

Covers the user-action path, the load path, the completion guard under
concurrent handlers and concurrent sessions, failure recovery on the
next load, the manual certificate path and teardown.
"""

from __future__ import annotations

import asyncio

import pytest

from coursetrack.models.certificate import CertificateParams
from coursetrack.models.enrollment import STATUS_ACTIVE, STATUS_COMPLETED
from coursetrack.models.session_events import CompletionDetected, ProgressUpdated
from coursetrack.services.errors import CertificateGenerationError
from coursetrack.services.local_cache import InMemoryLocalStore, LocalProgressCache
from coursetrack.services.orchestrator import SessionState
from tests.services.session_fakes import COURSE_ID, LESSONS, USER_ID, World


def _completions(world: World) -> list[CompletionDetected]:
    return [e for e in world.events if isinstance(e, CompletionDetected)]


# ---- user-action path ----


def test_lesson_completion_is_idempotent() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        first = await session.on_lesson_completed(LESSONS[0])
        second = await session.on_lesson_completed(LESSONS[0])
        return first, second

    first, second = asyncio.run(scenario())
    assert first is True
    assert second is False
    assert world.progress.count("save_progress") == 1
    assert world.enrollments.count("mark_lesson_completed") == 1


def test_two_of_five_lessons_is_forty_percent() -> None:
    world = World()

    async def scenario():
        enrollment = await world.enroll()
        session = world.session()
        await session.on_lesson_completed(LESSONS[0])
        await session.on_lesson_completed(LESSONS[1])
        return session, await world.enrollment_store.get_enrollment(enrollment.id)

    session, enrollment = asyncio.run(scenario())
    assert session.progress_percent == 40
    assert enrollment.progress_percent == 40
    assert enrollment.current_lesson_id == LESSONS[1]
    assert world.events[-1] == ProgressUpdated(percent=40)
    assert session.state is SessionState.ACTIVE


def test_completing_last_lesson_issues_one_certificate() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        for lesson_id in LESSONS:
            await session.on_lesson_completed(lesson_id)
        enrollment = await world.enrollment_store.get_user_enrollment(
            USER_ID, COURSE_ID
        )
        return session, enrollment

    session, enrollment = asyncio.run(scenario())
    assert session.state is SessionState.CERTIFICATE_ISSUED
    assert session.has_checked_completion is True
    assert enrollment.status == STATUS_COMPLETED
    assert enrollment.progress_percent == 100
    assert enrollment.completed_at is not None
    assert asyncio.run(world.certificates_for()) == 1

    issuing, issued = _completions(world)
    assert issuing.issuing is True and issuing.certificate is None
    assert issued.certificate == session.certificate
    assert issued.is_new_completion is True
    assert issued.certificate.grade == "Completed"
    assert issued.certificate.achievements == (
        "Course Completed",
        "All Lessons Finished",
    )


def test_concurrent_final_lessons_run_one_completion_sequence() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        for lesson_id in LESSONS[:3]:
            await session.on_lesson_completed(lesson_id)
        results = await asyncio.gather(
            session.on_lesson_completed(LESSONS[3]),
            session.on_lesson_completed(LESSONS[4]),
        )
        return session, results

    session, results = asyncio.run(scenario())
    assert results == [True, True]
    assert world.enrollments.count("complete_enrollment") == 1
    assert world.certificates.count("generate_certificate_for_course_completion") == 1
    assert asyncio.run(world.certificates_for()) == 1
    assert session.state is SessionState.CERTIFICATE_ISSUED


def test_same_lesson_clicked_twice_concurrently_is_recorded_once() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        return await asyncio.gather(
            session.on_lesson_completed(LESSONS[0]),
            session.on_lesson_completed(LESSONS[0]),
        )

    assert sorted(asyncio.run(scenario())) == [False, True]
    assert world.progress.count("save_progress") == 1


def test_two_sessions_completing_together_share_one_certificate() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        tab_a = world.session(local_store=InMemoryLocalStore())
        tab_b = world.session(local_store=InMemoryLocalStore())
        for lesson_id in LESSONS[:4]:
            await tab_a.on_lesson_completed(lesson_id)
        await tab_b.on_course_entered()
        await asyncio.gather(
            tab_a.on_lesson_completed(LESSONS[4]),
            tab_b.on_lesson_completed(LESSONS[4]),
        )
        return tab_a, tab_b

    tab_a, tab_b = asyncio.run(scenario())
    assert asyncio.run(world.certificates_for()) == 1
    assert tab_a.certificate is not None
    assert tab_a.certificate.id == tab_b.certificate.id
    assert tab_a.state is SessionState.CERTIFICATE_ISSUED
    assert tab_b.state is SessionState.CERTIFICATE_ISSUED


def test_not_enrolled_records_locally_without_completion() -> None:
    world = World()

    async def scenario():
        session = world.session()
        for lesson_id in LESSONS:
            await session.on_lesson_completed(lesson_id)
        return session

    session = asyncio.run(scenario())
    assert session.completed_lessons == frozenset(LESSONS)
    assert session.progress_percent == 100
    assert session.state is SessionState.ACTIVE
    assert world.enrollments.count("complete_enrollment") == 0
    assert asyncio.run(world.certificates_for()) == 0
    assert _completions(world) == []


# ---- load path ----


def test_load_merges_local_and_remote_into_every_view() -> None:
    world = World()

    async def scenario():
        enrollment = await world.enroll()
        LocalProgressCache(world.local_store).mark_complete(COURSE_ID, LESSONS[0])
        await world.progress_store.save_progress(
            USER_ID, COURSE_ID, LESSONS[1], 30, 100, True
        )
        session = world.session()
        await session.on_course_entered()
        remote = await world.progress_store.get_course_progress(USER_ID, COURSE_ID)
        return (
            session,
            {p.lesson_id for p in remote if p.completed},
            await world.enrollment_store.get_enrollment(enrollment.id),
        )

    session, remote_completed, enrollment = asyncio.run(scenario())
    both = frozenset(LESSONS[:2])
    assert session.completed_lessons == both
    assert remote_completed == both
    assert enrollment.completed_lessons == both
    assert enrollment.progress_percent == 40
    assert session.progress_percent == 40
    assert session.state is SessionState.ACTIVE


def test_load_never_removes_completed_lessons() -> None:
    world = World()

    async def scenario():
        enrollment = await world.enroll()
        await world.enrollment_store.mark_lesson_completed(enrollment.id, LESSONS[3])
        cache = LocalProgressCache(world.local_store)
        for lesson_id in LESSONS[:3]:
            cache.mark_complete(COURSE_ID, lesson_id)
        await world.progress_store.save_progress(
            USER_ID, COURSE_ID, LESSONS[0], 0, 100, True
        )
        await world.progress_store.save_progress(
            USER_ID, COURSE_ID, LESSONS[1], 10, 20, False
        )
        session = world.session()
        await session.on_course_entered()
        return session, await world.enrollment_store.get_enrollment(enrollment.id)

    session, enrollment = asyncio.run(scenario())
    assert session.completed_lessons == frozenset(LESSONS[:3])
    assert enrollment.completed_lessons == frozenset(LESSONS[:4])
    assert enrollment.progress_percent == 80


def test_existing_certificate_short_circuits_load() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        cert_id = await world.service.generate_certificate(
            CertificateParams(
                user_id=USER_ID,
                course_id=COURSE_ID,
                student_name="Ada",
                course_name="Five Lessons",
                instructor_name="Instructor",
            )
        )
        session = world.session()
        await session.on_course_entered()
        return session, cert_id

    session, cert_id = asyncio.run(scenario())
    assert session.state is SessionState.CERTIFICATE_ISSUED
    assert session.has_checked_completion is True
    assert session.certificate.id == cert_id
    assert world.progress.calls == []
    assert world.enrollments.calls == []
    assert world.certificates.calls == ["get_user_course_certificate"]


def test_load_completes_course_finished_elsewhere() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        for lesson_id in LESSONS:
            await world.progress_store.save_progress(
                USER_ID, COURSE_ID, lesson_id, 0, 100, True
            )
        session = world.session()
        await session.on_course_entered()
        enrollment = await world.enrollment_store.get_user_enrollment(
            USER_ID, COURSE_ID
        )
        return session, enrollment

    session, enrollment = asyncio.run(scenario())
    assert enrollment.status == STATUS_COMPLETED
    assert enrollment.progress_percent == 100
    assert session.state is SessionState.CERTIFICATE_ISSUED
    assert [e.is_new_completion for e in _completions(world)] == [False, False]
    assert asyncio.run(world.certificates_for()) == 1


def test_failed_save_is_recovered_on_next_load() -> None:
    world = World()

    async def first_visit():
        await world.enroll()
        session = world.session()
        for lesson_id in LESSONS[:4]:
            await session.on_lesson_completed(lesson_id)
        world.progress.fail("save_progress")
        await session.on_lesson_completed(LESSONS[4])
        session.close()
        return session

    session = asyncio.run(first_visit())
    assert session.state is SessionState.COMPLETION_PENDING
    enrollment = asyncio.run(
        world.enrollment_store.get_user_enrollment(USER_ID, COURSE_ID)
    )
    assert enrollment.status == STATUS_ACTIVE
    assert asyncio.run(world.certificates_for()) == 0

    async def second_visit():
        session = world.session()
        await session.on_course_entered()
        enrollment = await world.enrollment_store.get_user_enrollment(
            USER_ID, COURSE_ID
        )
        remote = await world.progress_store.get_course_progress(USER_ID, COURSE_ID)
        return session, enrollment, remote

    session, enrollment, remote = asyncio.run(second_visit())
    assert enrollment.progress_percent == 100
    assert enrollment.status == STATUS_COMPLETED
    assert {p.lesson_id for p in remote if p.completed} == set(LESSONS)
    assert session.state is SessionState.CERTIFICATE_ISSUED
    assert asyncio.run(world.certificates_for()) == 1


def test_failed_save_still_updates_enrollment() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        await session.on_course_entered()
        world.progress.fail("save_progress")
        await session.on_lesson_completed(LESSONS[0])
        enrollment = await world.enrollment_store.get_user_enrollment(
            USER_ID, COURSE_ID
        )
        return session, enrollment

    session, enrollment = asyncio.run(scenario())
    assert enrollment.completed_lessons == {LESSONS[0]}
    assert enrollment.progress_percent == 20
    assert world.enrollments.count("mark_lesson_completed") == 1
    assert session.state is SessionState.ACTIVE


def test_remote_read_failure_keeps_local_progress() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        LocalProgressCache(world.local_store).mark_complete(COURSE_ID, LESSONS[0])
        world.progress.fail("get_course_progress")
        session = world.session()
        await session.on_course_entered()
        return session

    session = asyncio.run(scenario())
    assert session.completed_lessons == frozenset(LESSONS[:1])
    assert session.progress_percent == 20
    assert world.progress.count("save_progress") == 0


def test_empty_course_is_never_complete() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session(lessons=())
        await session.on_course_entered()
        return session

    session = asyncio.run(scenario())
    assert session.progress_percent == 0
    assert session.state is SessionState.ACTIVE
    assert world.enrollments.count("complete_enrollment") == 0


# ---- certificate issuance ----


def test_issuance_failure_ends_in_certificate_failed() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        world.certificates.fail("generate_certificate_for_course_completion")
        session = world.session()
        for lesson_id in LESSONS:
            await session.on_lesson_completed(lesson_id)
        return session

    session = asyncio.run(scenario())
    assert session.state is SessionState.CERTIFICATE_FAILED
    assert session.certificate is None
    assert _completions(world)[-1].failed is True
    enrollment = asyncio.run(
        world.enrollment_store.get_user_enrollment(USER_ID, COURSE_ID)
    )
    assert enrollment.status == STATUS_COMPLETED


def test_revoked_certificate_is_terminal_on_reload() -> None:
    world = World()

    async def first_visit():
        await world.enroll()
        session = world.session()
        for lesson_id in LESSONS:
            await session.on_lesson_completed(lesson_id)
        session.close()
        await world.service.revoke_certificate(session.certificate.id)
        return session.certificate.id

    cert_id = asyncio.run(first_visit())
    completions = len(_completions(world))
    sequences = world.enrollments.count("complete_enrollment")

    async def revisit():
        session = world.session()
        await session.on_course_entered()
        return session

    for _ in range(2):
        session = asyncio.run(revisit())
        assert session.state is SessionState.CERTIFICATE_REVOKED
        assert session.has_checked_completion is True
        assert session.certificate.id == cert_id
        assert session.certificate.is_valid is False
    assert len(_completions(world)) == completions
    assert world.enrollments.count("complete_enrollment") == sequences
    assert world.certificates.count("generate_certificate_for_course_completion") == 1
    assert asyncio.run(world.certificates_for()) == 1


def test_completion_after_revocation_ends_in_certificate_revoked() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        cert = await session.on_certificate_requested(
            student_name="Ada",
            course_name="Five Lessons",
            instructor_name="Instructor",
        )
        await world.service.revoke_certificate(cert.id)
        for lesson_id in LESSONS:
            await session.on_lesson_completed(lesson_id)
        return session

    session = asyncio.run(scenario())
    assert session.state is SessionState.CERTIFICATE_REVOKED
    final = _completions(world)[-1]
    assert final.failed is True
    assert final.certificate is None
    assert asyncio.run(world.certificates_for()) == 1


def test_manual_request_for_revoked_certificate_raises() -> None:
    world = World()

    async def scenario():
        session = world.session()
        cert = await session.on_certificate_requested(
            student_name="Ada",
            course_name="Five Lessons",
            instructor_name="Instructor",
        )
        await world.service.revoke_certificate(cert.id)
        with pytest.raises(CertificateGenerationError):
            await session.on_certificate_requested(
                student_name="Ada",
                course_name="Five Lessons",
                instructor_name="Instructor",
            )
        return session

    session = asyncio.run(scenario())
    assert session.state is SessionState.CERTIFICATE_REVOKED


def test_manual_request_creates_then_returns_same_certificate() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        first = await session.on_certificate_requested(
            student_name="Ada Lovelace",
            course_name="Five Lessons",
            instructor_name="Grace Hopper",
            score=91,
        )
        second = await session.on_certificate_requested(
            student_name="Someone Else",
            course_name="Five Lessons",
            instructor_name="Grace Hopper",
            score=50,
        )
        return session, first, second

    session, first, second = asyncio.run(scenario())
    assert first.id == second.id
    assert first.grade == "A"
    assert first.student_name == "Ada Lovelace"
    assert session.state is SessionState.CERTIFICATE_ISSUED
    assert asyncio.run(world.certificates_for()) == 1


def test_manual_request_failure_raises_for_retry() -> None:
    world = World()
    world.certificates.fail("generate_certificate")
    session = world.session()

    with pytest.raises(CertificateGenerationError):
        asyncio.run(
            session.on_certificate_requested(
                student_name="Ada",
                course_name="Five Lessons",
                instructor_name="Instructor",
            )
        )
    assert session.state is SessionState.CERTIFICATE_FAILED


# ---- local-only and teardown ----


def test_save_code_stays_local() -> None:
    world = World()
    session = world.session()
    session.save_code("exercise-1", "print('hi')")
    session.save_code("exercise-1", "print('hello')")
    assert session.saved_code == {"exercise-1": "print('hello')"}
    assert world.progress.calls == []


def test_close_discards_results_of_in_flight_calls() -> None:
    world = World()

    async def scenario():
        await world.enroll()
        session = world.session()
        for lesson_id in LESSONS[:4]:
            await session.on_lesson_completed(lesson_id)
        events_before = len(world.events)
        state_before = session.state
        task = asyncio.create_task(session.on_lesson_completed(LESSONS[4]))
        await asyncio.sleep(0)
        session.close()
        await task
        return session, events_before, state_before

    session, events_before, state_before = asyncio.run(scenario())
    # The ProgressUpdated for the last lesson is emitted before the first await.
    assert len(world.events) == events_before + 1
    assert _completions(world) == []
    assert session.state is state_before
    assert session.certificate is None
