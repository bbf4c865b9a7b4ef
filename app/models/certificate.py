from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class CertificateMetadata:
    """Snapshot of the learner's record at issuance time."""

    total_modules: int = 0
    completed_modules: int = 0
    total_quizzes: int = 0
    average_quiz_score: int = 0
    total_assignments: int = 0
    average_assignment_score: int = 0
    total_hours: int = 0


@dataclass(frozen=True, slots=True)
class Certificate:
    id: UUID
    learner_id: str
    course_id: UUID
    code: str
    holder_name: str
    course_title: str
    issued_at: int
    completed_at: int
    final_score: int
    grade: str
    metadata: CertificateMetadata = CertificateMetadata()
    expires_at: int | None = None
    is_revoked: bool = False
    revoked_reason: str | None = None
    revoked_at: int | None = None

    @staticmethod
    def new(
        *,
        learner_id: str,
        course_id: UUID,
        code: str,
        holder_name: str,
        course_title: str,
        issued_at: int,
        completed_at: int,
        final_score: int,
        grade: str,
        metadata: CertificateMetadata,
        expires_at: int | None = None,
    ) -> Certificate:
        return Certificate(
            id=uuid4(),
            learner_id=learner_id,
            course_id=course_id,
            code=code,
            holder_name=holder_name,
            course_title=course_title,
            issued_at=issued_at,
            completed_at=completed_at,
            final_score=final_score,
            grade=grade,
            metadata=metadata,
            expires_at=expires_at,
        )

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and now > self.expires_at
