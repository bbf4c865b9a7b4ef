"""Certificate issuance, verification, and revocation endpoints.

Verification is public: anyone holding a code can check it, and the
response carries only what a certificate shows on paper.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, ServicesDep, require_role
from app.models.certificate import Certificate
from app.models.principal import Principal

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])

Admin = Annotated[Principal, Depends(require_role("admin"))]


class CertificateMetadataOut(BaseModel):
    total_modules: int
    completed_modules: int
    total_quizzes: int
    average_quiz_score: int
    total_assignments: int
    average_assignment_score: int
    total_hours: int


class CertificateOut(BaseModel):
    id: UUID
    learner_id: str
    course_id: UUID
    code: str
    holder_name: str
    course_title: str
    issued_at: int
    completed_at: int
    expires_at: int | None
    final_score: int
    grade: str
    metadata: CertificateMetadataOut
    is_revoked: bool
    revoked_reason: str | None
    revoked_at: int | None


class VerifiedCertificateOut(BaseModel):
    code: str
    holder_name: str
    course_title: str
    issued_at: int
    completed_at: int
    expires_at: int | None
    final_score: int
    grade: str


class VerificationOut(BaseModel):
    valid: bool
    is_revoked: bool
    revoked_reason: str | None
    is_expired: bool
    certificate: VerifiedCertificateOut


class RevokeIn(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


def certificate_out(c: Certificate) -> CertificateOut:
    m = c.metadata
    return CertificateOut(
        id=c.id,
        learner_id=c.learner_id,
        course_id=c.course_id,
        code=c.code,
        holder_name=c.holder_name,
        course_title=c.course_title,
        issued_at=c.issued_at,
        completed_at=c.completed_at,
        expires_at=c.expires_at,
        final_score=c.final_score,
        grade=c.grade,
        metadata=CertificateMetadataOut(
            total_modules=m.total_modules,
            completed_modules=m.completed_modules,
            total_quizzes=m.total_quizzes,
            average_quiz_score=m.average_quiz_score,
            total_assignments=m.total_assignments,
            average_assignment_score=m.average_assignment_score,
            total_hours=m.total_hours,
        ),
        is_revoked=c.is_revoked,
        revoked_reason=c.revoked_reason,
        revoked_at=c.revoked_at,
    )


@router.post(
    "/courses/{course_id}",
    response_model=CertificateOut,
    status_code=status.HTTP_201_CREATED,
)
async def request_certificate(
    course_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> CertificateOut:
    certificate = await svc.certificates.request(
        principal.user_id, course_id, holder_name=principal.name
    )
    return certificate_out(certificate)


@router.get("/mine", response_model=list[CertificateOut])
async def list_my_certificates(principal: CurrentUser, svc: ServicesDep) -> list[CertificateOut]:
    return [certificate_out(c) for c in await svc.certificates.list_mine(principal.user_id)]


@router.get("/verify/{code}", response_model=VerificationOut)
async def verify_certificate(code: str, svc: ServicesDep) -> VerificationOut:
    v = await svc.certificates.verify(code)
    c = v.certificate
    return VerificationOut(
        valid=v.valid,
        is_revoked=v.is_revoked,
        revoked_reason=c.revoked_reason,
        is_expired=v.is_expired,
        certificate=VerifiedCertificateOut(
            code=c.code,
            holder_name=c.holder_name,
            course_title=c.course_title,
            issued_at=c.issued_at,
            completed_at=c.completed_at,
            expires_at=c.expires_at,
            final_score=c.final_score,
            grade=c.grade,
        ),
    )


@router.get("", response_model=list[CertificateOut])
async def list_certificates(
    _admin: Admin,
    svc: ServicesDep,
    course_id: UUID | None = None,
    learner_id: str | None = None,
    is_revoked: Annotated[bool | None, Query()] = None,
) -> list[CertificateOut]:
    certificates = await svc.certificates.list_all(
        course_id=course_id, learner_id=learner_id, is_revoked=is_revoked
    )
    return [certificate_out(c) for c in certificates]


@router.get("/{certificate_id}", response_model=CertificateOut)
async def get_certificate(
    certificate_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> CertificateOut:
    certificate = await svc.certificates.get(
        principal.user_id, certificate_id, is_admin=principal.is_admin()
    )
    return certificate_out(certificate)


@router.post("/{certificate_id}/revoke", response_model=CertificateOut)
async def revoke_certificate(
    certificate_id: UUID, payload: RevokeIn, admin: Admin, svc: ServicesDep
) -> CertificateOut:
    certificate = await svc.certificates.revoke(
        admin.user_id, certificate_id, payload.reason
    )
    return certificate_out(certificate)
