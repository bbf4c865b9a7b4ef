"""CertificateIssuer: exactly-once issuance, public verification, revocation.

Issuance reads already-aggregated state (the enrollment's completion, the
stored attempt percentages and graded final scores) instead of re-deriving
anything.  The one-live-certificate-per-(learner, course) rule is enforced
by the repository's guarded insert, so two concurrent requests produce one
certificate and one AlreadyIssued.

Certificate codes look like CERT-<base36 seconds>-<6 random base36 chars>.
A code collision is retried with a fresh suffix.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, replace
from uuid import UUID

from app.core.clock import SECONDS_PER_DAY, Clock
from app.core.errors import (
    AlreadyIssued,
    AlreadyRevoked,
    CodeCollision,
    Forbidden,
    NotCompleted,
    NotFound,
)
from app.core.metrics import CERTIFICATES
from app.models.certificate import Certificate, CertificateMetadata
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.repos.assignment_repo import SubmissionRepo
from app.repos.certificate_repo import CertificateRepo
from app.repos.course_repo import CourseRepo
from app.repos.enrollment_repo import EnrollmentRepo, TopicProgressRepo
from app.repos.quiz_repo import AttemptRepo
from app.services import scoring
from app.services.notifier import Notifier

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
_CODE_SUFFIX_LEN = 6
_CODE_RETRIES = 5


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_code(now: int) -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(_CODE_SUFFIX_LEN))
    return f"CERT-{to_base36(now)}-{suffix}"


@dataclass(frozen=True, slots=True)
class Verification:
    certificate: Certificate
    is_revoked: bool
    is_expired: bool

    @property
    def valid(self) -> bool:
        return not self.is_revoked and not self.is_expired


def build_metadata(
    course: Course,
    enrollment: Enrollment,
    quiz_percentages: list[float],
    assignment_scores: list[float],
    total_seconds: int,
) -> CertificateMetadata:
    done = set(enrollment.completed_topics)
    completed_modules = sum(
        1 for m in course.modules if m.topics and all(t in done for t in m.topic_ids)
    )
    return CertificateMetadata(
        total_modules=len(course.modules),
        completed_modules=completed_modules,
        total_quizzes=len(quiz_percentages),
        average_quiz_score=scoring.round_half_up(scoring.mean(quiz_percentages)),
        total_assignments=len(assignment_scores),
        average_assignment_score=scoring.round_half_up(scoring.mean(assignment_scores)),
        total_hours=scoring.round_half_up(total_seconds / 3600),
    )


class CertificateIssuer:
    def __init__(
        self,
        *,
        courses: CourseRepo,
        enrollments: EnrollmentRepo,
        topics: TopicProgressRepo,
        attempts: AttemptRepo,
        submissions: SubmissionRepo,
        certificates: CertificateRepo,
        clock: Clock,
        notifier: Notifier,
        weights: scoring.ScoreWeights = scoring.DEFAULT_WEIGHTS,
        validity_days: int = 0,
    ) -> None:
        self._courses = courses
        self._enrollments = enrollments
        self._topics = topics
        self._attempts = attempts
        self._submissions = submissions
        self._certificates = certificates
        self._clock = clock
        self._notifier = notifier
        self._weights = weights
        self._validity_days = validity_days

    async def request(
        self, learner_id: str, course_id: UUID, holder_name: str | None = None
    ) -> Certificate:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFound("course", course_id)
        enrollment = await self._enrollments.get(learner_id, course_id)
        if enrollment is None:
            raise Forbidden("Not enrolled in this course", course_id=str(course_id))
        if not enrollment.is_completed:
            raise NotCompleted(enrollment.progress)

        existing = await self._certificates.find_active(learner_id, course_id)
        if existing is not None:
            raise AlreadyIssued(existing.id, existing.code)

        attempts = await self._attempts.list_for_course(learner_id, course_id, "completed")
        graded = await self._submissions.list_for_course(learner_id, course_id, "graded")
        topics = await self._topics.list_for_course(learner_id, course_id)

        quiz_pcts = [a.percentage for a in attempts]
        assignment_scores = [s.final_score or 0.0 for s in graded]
        final = scoring.round_half_up(
            scoring.weighted_final_score(
                scoring.mean(quiz_pcts), scoring.mean(assignment_scores), self._weights
            )
        )
        now = self._clock.now()
        metadata = build_metadata(
            course,
            enrollment,
            quiz_pcts,
            assignment_scores,
            sum(t.time_spent for t in topics),
        )
        expires_at = (
            now + self._validity_days * SECONDS_PER_DAY if self._validity_days > 0 else None
        )

        certificate = None
        for _ in range(_CODE_RETRIES):
            candidate = Certificate.new(
                learner_id=learner_id,
                course_id=course_id,
                code=generate_code(now),
                holder_name=holder_name or learner_id,
                course_title=course.title,
                issued_at=now,
                completed_at=enrollment.completed_at or now,
                final_score=final,
                grade=scoring.letter_grade(final),
                metadata=metadata,
                expires_at=expires_at,
            )
            try:
                certificate = await self._certificates.add(candidate)
                break
            except CodeCollision:
                logger.warning("Certificate code collision on %s, regenerating", candidate.code)
        if certificate is None:
            raise RuntimeError("could not generate a unique certificate code")

        CERTIFICATES.labels(action="issued").inc()
        logger.info(
            "Certificate issued certificate=%s code=%s learner=%s course=%s score=%d grade=%s",
            certificate.id,
            certificate.code,
            learner_id,
            course_id,
            certificate.final_score,
            certificate.grade,
        )
        await self._notifier.notify(
            learner_id,
            "certificate_issued",
            "Certificate Issued!",
            f'Your certificate for "{course.title}" is ready',
            link=f"/certificates/verify/{certificate.code}",
        )
        return certificate

    async def verify(self, code: str) -> Verification:
        certificate = await self._certificates.get_by_code(code)
        if certificate is None:
            raise NotFound("certificate", code)
        return Verification(
            certificate=certificate,
            is_revoked=certificate.is_revoked,
            is_expired=certificate.is_expired(self._clock.now()),
        )

    async def get(
        self, viewer_id: str, certificate_id: UUID, *, is_admin: bool = False
    ) -> Certificate:
        certificate = await self._certificates.get(certificate_id)
        if certificate is None:
            raise NotFound("certificate", certificate_id)
        if certificate.learner_id != viewer_id and not is_admin:
            raise Forbidden("Not authorized to view this certificate")
        return certificate

    async def list_mine(self, learner_id: str) -> list[Certificate]:
        return await self._certificates.list_for_learner(learner_id)

    async def list_all(
        self,
        *,
        course_id: UUID | None = None,
        learner_id: str | None = None,
        is_revoked: bool | None = None,
    ) -> list[Certificate]:
        return await self._certificates.list_all(
            course_id=course_id, learner_id=learner_id, is_revoked=is_revoked
        )

    async def revoke(
        self, admin_id: str, certificate_id: UUID, reason: str
    ) -> Certificate:
        now = self._clock.now()

        def _revoke(current: Certificate) -> Certificate:
            if current.is_revoked:
                raise AlreadyRevoked(current.id)
            return replace(
                current, is_revoked=True, revoked_reason=reason, revoked_at=now
            )

        certificate = await self._certificates.update(certificate_id, _revoke)
        CERTIFICATES.labels(action="revoked").inc()
        logger.info(
            "Certificate revoked certificate=%s by admin=%s reason=%r",
            certificate_id,
            admin_id,
            reason,
        )
        await self._notifier.notify(
            certificate.learner_id,
            "certificate_revoked",
            "Certificate Revoked",
            f'Your certificate for "{certificate.course_title}" was revoked: {reason}',
        )
        return certificate
