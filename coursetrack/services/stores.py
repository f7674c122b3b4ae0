"""Module-level collaborator singletons shared by the API and the worker.

With DATABASE_URL set every store is PostgreSQL-backed; otherwise the
in-memory implementations are used (tests, local development).  The
course catalog is always in-memory and seeded with the sample courses.
"""

from __future__ import annotations

from coursetrack.core.config import SETTINGS
from coursetrack.db.engine import async_session_factory
from coursetrack.repos.certificate_repo import CertificateRepo, InMemoryCertificateRepo
from coursetrack.repos.course_repo import InMemoryCourseCatalog, seed_sample_courses
from coursetrack.repos.enrollment_repo import EnrollmentStore, InMemoryEnrollmentStore
from coursetrack.repos.pg_certificate_repo import PgCertificateRepo
from coursetrack.repos.pg_enrollment_repo import PgEnrollmentStore
from coursetrack.repos.pg_progress_repo import PgProgressSource
from coursetrack.repos.pg_user_repo import PgUserRepo
from coursetrack.repos.progress_repo import InMemoryProgressSource, RemoteProgressSource
from coursetrack.repos.user_repo import InMemoryUserRepo, UserRepo
from coursetrack.services.certificate_issuer import CertificateService

course_catalog = InMemoryCourseCatalog()
seed_sample_courses(course_catalog)

if async_session_factory is not None:
    progress_source: RemoteProgressSource = PgProgressSource(async_session_factory)
    enrollment_store: EnrollmentStore = PgEnrollmentStore(async_session_factory)
    certificate_repo: CertificateRepo = PgCertificateRepo(async_session_factory)
    user_repo: UserRepo = PgUserRepo(async_session_factory)
else:
    progress_source = InMemoryProgressSource()
    enrollment_store = InMemoryEnrollmentStore()
    certificate_repo = InMemoryCertificateRepo()
    user_repo = InMemoryUserRepo()

certificate_service = CertificateService(
    certificate_repo,
    enrollment_store,
    course_catalog,
    user_repo,
    secret=SETTINGS.certificate_secret,
)
