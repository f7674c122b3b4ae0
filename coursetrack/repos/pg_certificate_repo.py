"""PostgreSQL implementation of CertificateRepo.

Uniqueness of (user_id, course_id) is a table constraint.  Two
sessions racing to create the same certificate both issue
INSERT ... ON CONFLICT DO NOTHING; exactly one row lands and the loser
re-reads the winner.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.engine import session_scope
from coursetrack.db.tables import CertificateRow
from coursetrack.models.certificate import Certificate


class PgCertificateRepo:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_by_id(self, certificate_id: str) -> Certificate | None:
        async with session_scope(self._sessions, "get_certificate") as session:
            row = await session.get(CertificateRow, certificate_id)
        return _row_to_certificate(row) if row is not None else None

    async def get_for_user_course(
        self, user_id: str, course_id: str
    ) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.user_id == user_id, CertificateRow.course_id == course_id
        )
        async with session_scope(
            self._sessions, "get_user_course_certificate"
        ) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return _row_to_certificate(row) if row is not None else None

    async def insert_if_absent(
        self, certificate: Certificate
    ) -> tuple[Certificate, bool]:
        stmt = (
            insert(CertificateRow)
            .values(
                id=certificate.id,
                user_id=certificate.user_id,
                course_id=certificate.course_id,
                issued_at=certificate.issued_at,
                certificate_number=certificate.certificate_number,
                verification_code=certificate.verification_code,
                student_name=certificate.student_name,
                course_name=certificate.course_name,
                instructor_name=certificate.instructor_name,
                grade=certificate.grade,
                score=certificate.score,
                completion_time_hours=certificate.completion_time_hours,
                achievements=list(certificate.achievements),
                is_valid=certificate.is_valid,
            )
            .on_conflict_do_nothing(
                index_elements=[CertificateRow.user_id, CertificateRow.course_id]
            )
            .returning(CertificateRow.id)
        )
        async with session_scope(self._sessions, "insert_certificate") as session:
            inserted_id = (await session.execute(stmt)).scalar_one_or_none()
        if inserted_id is not None:
            return certificate, True

        existing = await self.get_for_user_course(
            certificate.user_id, certificate.course_id
        )
        if existing is None:
            raise LookupError(
                f"certificate for user={certificate.user_id} "
                f"course={certificate.course_id} vanished after insert conflict"
            )
        return existing, False

    async def set_valid(self, certificate_id: str, is_valid: bool) -> bool:
        stmt = (
            update(CertificateRow)
            .where(CertificateRow.id == certificate_id)
            .values(is_valid=is_valid)
        )
        async with session_scope(self._sessions, "set_certificate_valid") as session:
            result = await session.execute(stmt)
        return bool(result.rowcount)


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        issued_at=row.issued_at,
        certificate_number=row.certificate_number,
        verification_code=row.verification_code,
        student_name=row.student_name,
        course_name=row.course_name,
        instructor_name=row.instructor_name,
        grade=row.grade,
        score=row.score,
        completion_time_hours=row.completion_time_hours,
        achievements=tuple(row.achievements or ()),
        is_valid=row.is_valid,
    )
