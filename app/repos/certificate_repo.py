from __future__ import annotations

from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from app.core.errors import AlreadyIssued, CodeCollision, NotFound
from app.models.certificate import Certificate


class CertificateRepo(Protocol):
    async def get(self, certificate_id: UUID) -> Certificate | None: ...
    async def get_by_code(self, code: str) -> Certificate | None: ...
    async def find_active(
        self, learner_id: str, course_id: UUID
    ) -> Certificate | None: ...
    async def list_for_learner(
        self, learner_id: str, include_revoked: bool = False
    ) -> list[Certificate]: ...
    async def list_all(
        self,
        *,
        course_id: UUID | None = None,
        learner_id: str | None = None,
        is_revoked: bool | None = None,
    ) -> list[Certificate]: ...
    async def add(self, certificate: Certificate) -> Certificate: ...
    async def update(
        self, certificate_id: UUID, mutate: Callable[[Certificate], Certificate]
    ) -> Certificate: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Certificate] = {}
        self._by_code: dict[str, UUID] = {}

    async def get(self, certificate_id: UUID) -> Certificate | None:
        return self._by_id.get(certificate_id)

    async def get_by_code(self, code: str) -> Certificate | None:
        cert_id = self._by_code.get(code)
        return self._by_id.get(cert_id) if cert_id is not None else None

    async def find_active(self, learner_id: str, course_id: UUID) -> Certificate | None:
        return self._active(learner_id, course_id)

    async def list_for_learner(
        self, learner_id: str, include_revoked: bool = False
    ) -> list[Certificate]:
        return await self.list_all(
            learner_id=learner_id, is_revoked=None if include_revoked else False
        )

    async def list_all(
        self,
        *,
        course_id: UUID | None = None,
        learner_id: str | None = None,
        is_revoked: bool | None = None,
    ) -> list[Certificate]:
        return sorted(
            (
                c
                for c in self._by_id.values()
                if (course_id is None or c.course_id == course_id)
                and (learner_id is None or c.learner_id == learner_id)
                and (is_revoked is None or c.is_revoked == is_revoked)
            ),
            key=lambda c: c.issued_at,
            reverse=True,
        )

    async def add(self, certificate: Certificate) -> Certificate:
        # Guard and insert happen without yielding: one live certificate
        # per (learner, course), one record per code.
        existing = self._active(certificate.learner_id, certificate.course_id)
        if existing is not None:
            raise AlreadyIssued(existing.id, existing.code)
        if certificate.code in self._by_code:
            raise CodeCollision(certificate.code)
        self._by_id[certificate.id] = certificate
        self._by_code[certificate.code] = certificate.id
        return certificate

    async def update(
        self, certificate_id: UUID, mutate: Callable[[Certificate], Certificate]
    ) -> Certificate:
        current = self._by_id.get(certificate_id)
        if current is None:
            raise NotFound("certificate", certificate_id)
        updated = mutate(current)
        self._by_id[certificate_id] = updated
        return updated

    def _active(self, learner_id: str, course_id: UUID) -> Certificate | None:
        return next(
            (
                c
                for c in self._by_id.values()
                if c.learner_id == learner_id
                and c.course_id == course_id
                and not c.is_revoked
            ),
            None,
        )
