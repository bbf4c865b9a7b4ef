"""Enrollment lifecycle and course ratings.

Also home to require_enrollment(), the "is this learner allowed to act on
this course" check that every engine runs first.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from uuid import UUID

from app.core.clock import Clock
from app.core.errors import Forbidden, NotFound, ValidationError
from app.models.course import Course
from app.models.enrollment import CourseRating, Enrollment
from app.repos.course_repo import CourseRepo
from app.repos.enrollment_repo import EnrollmentRepo
from app.services import scoring
from app.services.cache import CacheService, progress_cache_key

logger = logging.getLogger(__name__)

# Statuses a learner may set directly; "completed" is only ever reached
# through progress.
LEARNER_SETTABLE_STATUSES = ("active", "paused", "dropped")
RATING_MIN, RATING_MAX = 1, 5


async def require_enrollment(
    enrollments: EnrollmentRepo, learner_id: str, course_id: UUID
) -> Enrollment:
    """Return the learner's enrollment or raise Forbidden.

    A dropped enrollment grants no access until it is resumed.
    """
    enrollment = await enrollments.get(learner_id, course_id)
    if enrollment is None:
        raise Forbidden("Not enrolled in this course", course_id=str(course_id))
    if enrollment.status == "dropped":
        raise Forbidden("Enrollment has been dropped", course_id=str(course_id))
    return enrollment


class EnrollmentService:
    def __init__(
        self,
        *,
        courses: CourseRepo,
        enrollments: EnrollmentRepo,
        clock: Clock,
        cache: CacheService,
    ) -> None:
        self._courses = courses
        self._enrollments = enrollments
        self._clock = clock
        self._cache = cache

    async def list_courses(self) -> list[Course]:
        return await self._courses.list_published()

    async def get_course(self, course_id: UUID) -> Course:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFound("course", course_id)
        return course

    async def enroll(self, learner_id: str, course_id: UUID) -> Enrollment:
        course = await self.get_course(course_id)
        if not course.is_published:
            raise Forbidden("Course is not open for enrollment", course_id=str(course_id))

        enrollment = Enrollment.new(
            learner_id=learner_id, course_id=course_id, enrolled_at=self._clock.now()
        )
        await self._enrollments.add(enrollment)
        logger.info("Enrolled learner=%s in course=%s", learner_id, course_id)
        return enrollment

    async def get(self, learner_id: str, course_id: UUID) -> Enrollment:
        enrollment = await self._enrollments.get(learner_id, course_id)
        if enrollment is None:
            raise NotFound("enrollment", course_id)
        return enrollment

    async def set_status(
        self, learner_id: str, course_id: UUID, status: str
    ) -> Enrollment:
        """Pause, resume, or drop.  A completed enrollment stays completed."""
        if status not in LEARNER_SETTABLE_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(LEARNER_SETTABLE_STATUSES)}",
                status=status,
            )

        def _apply(e: Enrollment) -> Enrollment:
            if e.is_completed:
                raise ValidationError(
                    "A completed enrollment cannot change status", status=e.status
                )
            return replace(e, status=status)

        updated = await self._enrollments.update(learner_id, course_id, _apply)
        await self._cache.delete(progress_cache_key(learner_id, course_id))
        logger.info(
            "Enrollment status learner=%s course=%s -> %s",
            learner_id,
            course_id,
            status,
        )
        return updated

    async def unenroll(self, learner_id: str, course_id: UUID) -> None:
        removed = await self._enrollments.remove(learner_id, course_id)
        if not removed:
            raise NotFound("enrollment", course_id)
        await self._cache.delete(progress_cache_key(learner_id, course_id))
        logger.info("Unenrolled learner=%s from course=%s", learner_id, course_id)
        await self.recompute_course_rating(course_id)

    async def rate(
        self, learner_id: str, course_id: UUID, score: int, review: str | None = None
    ) -> Enrollment:
        if not RATING_MIN <= score <= RATING_MAX:
            raise ValidationError(
                f"Rating must be between {RATING_MIN} and {RATING_MAX}", score=score
            )
        await require_enrollment(self._enrollments, learner_id, course_id)

        rating = CourseRating(score=score, review=review, rated_at=self._clock.now())
        updated = await self._enrollments.update(
            learner_id, course_id, lambda e: replace(e, rating=rating)
        )
        logger.info(
            "Course rated learner=%s course=%s score=%d", learner_id, course_id, score
        )
        await self.recompute_course_rating(course_id)
        return updated

    async def recompute_course_rating(self, course_id: UUID) -> Course:
        """Derive the course's rating summary from every enrollment.

        Idempotent: always recomputed from scratch, never incremented.
        """
        enrollments = await self._enrollments.list_for_course(course_id)
        scores = [e.rating.score for e in enrollments if e.rating is not None]
        average = round(scoring.mean(scores), 2)
        return await self._courses.update(
            course_id,
            lambda c: replace(c, rating_average=average, rating_count=len(scores)),
        )
