"""PostgreSQL implementation of CertificateRepo.

Issuance is insert-or-fail: the partial unique index on
(learner_id, course_id) WHERE NOT is_revoked and the unique code column
decide the race, and the violated constraint picks the domain error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import AlreadyIssued, CodeCollision, NotFound
from app.db.tables import CertificateRow
from app.models.certificate import Certificate, CertificateMetadata

logger = logging.getLogger(__name__)

_ADD_RETRIES = 3


class PgCertificateRepo:
    """Satisfies the CertificateRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, certificate_id: UUID) -> Certificate | None:
        async with self._sessions() as session:
            row = await session.get(CertificateRow, certificate_id)
            return _row_to_certificate(row) if row is not None else None

    async def get_by_code(self, code: str) -> Certificate | None:
        stmt = select(CertificateRow).where(CertificateRow.code == code)
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_certificate(row) if row is not None else None

    async def find_active(self, learner_id: str, course_id: UUID) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.learner_id == learner_id,
            CertificateRow.course_id == course_id,
            CertificateRow.is_revoked.is_(False),
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_certificate(row) if row is not None else None

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
        stmt = select(CertificateRow)
        if course_id is not None:
            stmt = stmt.where(CertificateRow.course_id == course_id)
        if learner_id is not None:
            stmt = stmt.where(CertificateRow.learner_id == learner_id)
        if is_revoked is not None:
            stmt = stmt.where(CertificateRow.is_revoked.is_(is_revoked))
        stmt = stmt.order_by(CertificateRow.issued_at.desc())
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_certificate(r) for r in rows]

    async def add(self, certificate: Certificate) -> Certificate:
        for attempt in range(_ADD_RETRIES):
            try:
                await self._insert(certificate)
                return certificate
            except IntegrityError as e:
                if "uq_certificates_active" not in str(e.orig):
                    raise CodeCollision(certificate.code) from None
                existing = await self.find_active(
                    certificate.learner_id, certificate.course_id
                )
                if existing is not None:
                    raise AlreadyIssued(existing.id, existing.code) from None
                if attempt == _ADD_RETRIES - 1:
                    raise
                # The certificate that blocked us was revoked in the meantime
                logger.info(
                    "Active certificate vanished for learner=%s course=%s, retrying",
                    certificate.learner_id,
                    certificate.course_id,
                )
        return certificate

    async def _insert(self, certificate: Certificate) -> None:
        async with self._sessions() as session, session.begin():
            session.add(
                CertificateRow(id=certificate.id, **_certificate_values(certificate))
            )

    async def update(
        self, certificate_id: UUID, mutate: Callable[[Certificate], Certificate]
    ) -> Certificate:
        async with self._sessions() as session, session.begin():
            row = await session.get(CertificateRow, certificate_id, with_for_update=True)
            if row is None:
                raise NotFound("certificate", certificate_id)
            updated = mutate(_row_to_certificate(row))
            for key, value in _certificate_values(updated).items():
                setattr(row, key, value)
            return updated


def _certificate_values(c: Certificate) -> dict:
    m = c.metadata
    return {
        "learner_id": c.learner_id,
        "course_id": c.course_id,
        "code": c.code,
        "holder_name": c.holder_name,
        "course_title": c.course_title,
        "issued_at": c.issued_at,
        "completed_at": c.completed_at,
        "final_score": c.final_score,
        "grade": c.grade,
        "snapshot": {
            "total_modules": m.total_modules,
            "completed_modules": m.completed_modules,
            "total_quizzes": m.total_quizzes,
            "average_quiz_score": m.average_quiz_score,
            "total_assignments": m.total_assignments,
            "average_assignment_score": m.average_assignment_score,
            "total_hours": m.total_hours,
        },
        "expires_at": c.expires_at,
        "is_revoked": c.is_revoked,
        "revoked_reason": c.revoked_reason,
        "revoked_at": c.revoked_at,
    }


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        id=row.id,
        learner_id=row.learner_id,
        course_id=row.course_id,
        code=row.code,
        holder_name=row.holder_name,
        course_title=row.course_title,
        issued_at=row.issued_at,
        completed_at=row.completed_at,
        final_score=row.final_score,
        grade=row.grade,
        metadata=CertificateMetadata(**(row.snapshot or {})),
        expires_at=row.expires_at,
        is_revoked=row.is_revoked,
        revoked_reason=row.revoked_reason,
        revoked_at=row.revoked_at,
    )
