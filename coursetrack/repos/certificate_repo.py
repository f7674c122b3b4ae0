from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from coursetrack.models.certificate import Certificate


class CertificateRepo(Protocol):
    """Certificate storage with an atomic per-(user, course) create.

    insert_if_absent is the only way a certificate is created.  It
    returns (stored, created): when a certificate for the same
    (user_id, course_id) already exists, that one is returned with
    created=False and the candidate is discarded.
    """

    async def get_by_id(self, certificate_id: str) -> Certificate | None: ...
    async def get_for_user_course(
        self, user_id: str, course_id: str
    ) -> Certificate | None: ...
    async def insert_if_absent(
        self, certificate: Certificate
    ) -> tuple[Certificate, bool]: ...
    async def set_valid(self, certificate_id: str, is_valid: bool) -> bool: ...


class InMemoryCertificateRepo:
    """Dict-backed repo.

    insert_if_absent never awaits between the existence check and the
    write, so on a single event loop it is atomic with respect to every
    other coroutine.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, Certificate] = {}
        self._by_key: dict[tuple[str, str], str] = {}

    async def get_by_id(self, certificate_id: str) -> Certificate | None:
        return self._by_id.get(certificate_id)

    async def get_for_user_course(
        self, user_id: str, course_id: str
    ) -> Certificate | None:
        certificate_id = self._by_key.get((user_id, course_id))
        if certificate_id is None:
            return None
        return self._by_id[certificate_id]

    async def insert_if_absent(
        self, certificate: Certificate
    ) -> tuple[Certificate, bool]:
        key = (certificate.user_id, certificate.course_id)
        existing_id = self._by_key.get(key)
        if existing_id is not None:
            return self._by_id[existing_id], False
        self._by_key[key] = certificate.id
        self._by_id[certificate.id] = certificate
        return certificate, True

    async def set_valid(self, certificate_id: str, is_valid: bool) -> bool:
        cert = self._by_id.get(certificate_id)
        if cert is None:
            return False
        self._by_id[certificate_id] = replace(cert, is_valid=is_valid)
        return True
