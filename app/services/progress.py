"""ProgressTracker: per-topic records and the enrollment's course progress.

Course progress is always recomputed from the enrollment's completed-topic
set (counting only topics that still exist in the course outline), never
incremented, so marking the same topic twice cannot double-count.  The
recomputation runs inside the repository's atomic update, against the
freshest enrollment, so concurrent completions of different topics cannot
drop each other.

Progress never goes down: a course outline that grows after a learner
finished keeps their earlier percentage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from uuid import UUID

from app.core.clock import Clock
from app.core.errors import NotFound, ValidationError
from app.models.course import Course, CourseModule
from app.models.enrollment import Enrollment, TopicProgress
from app.repos.course_repo import CourseRepo
from app.repos.enrollment_repo import EnrollmentRepo, TopicProgressRepo
from app.services import scoring
from app.services.cache import CacheService, progress_cache_key
from app.services.enrollments import require_enrollment
from app.services.notifier import Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CourseProgress:
    course_id: UUID
    status: str
    progress: int
    completed_topics: int
    total_topics: int
    total_time_spent: int
    last_accessed_topic: str | None
    completed_at: int | None
    topics: tuple[TopicProgress, ...]


@dataclass(frozen=True, slots=True)
class ModuleTopicStatus:
    topic_id: str
    title: str
    status: str


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    module_id: str
    title: str
    progress: int
    completed_topics: int
    total_topics: int
    topics: tuple[ModuleTopicStatus, ...]


@dataclass(frozen=True, slots=True)
class LearnerStats:
    total_courses: int
    active_courses: int
    completed_courses: int
    paused_courses: int
    dropped_courses: int
    topics_completed: int
    total_time_spent: int
    average_progress: int


def apply_topic_completion(
    enrollment: Enrollment, course: Course, topic_id: str, now: int
) -> Enrollment:
    """Pure step: add a topic to the set and re-derive progress and status."""
    completed = enrollment.completed_topics
    if topic_id not in completed:
        completed = (*completed, topic_id)

    known = set(course.topic_ids)
    done = sum(1 for t in completed if t in known)
    progress = max(enrollment.progress, scoring.progress_percent(done, course.total_topics))

    status = enrollment.status
    completed_at = enrollment.completed_at
    if progress >= 100 and not enrollment.is_completed:
        status = "completed"
        completed_at = now

    return replace(
        enrollment,
        completed_topics=completed,
        progress=progress,
        status=status,
        completed_at=completed_at,
        last_accessed_topic=topic_id,
        last_accessed_at=now,
    )


class ProgressTracker:
    def __init__(
        self,
        *,
        courses: CourseRepo,
        enrollments: EnrollmentRepo,
        topics: TopicProgressRepo,
        clock: Clock,
        notifier: Notifier,
        cache: CacheService,
    ) -> None:
        self._courses = courses
        self._enrollments = enrollments
        self._topics = topics
        self._clock = clock
        self._notifier = notifier
        self._cache = cache

    async def complete_topic(
        self, learner_id: str, course_id: UUID, topic_id: str
    ) -> Enrollment:
        course = await self._course(course_id)
        module = self._module_for_topic(course, topic_id)
        await require_enrollment(self._enrollments, learner_id, course_id)
        now = self._clock.now()

        def _complete(tp: TopicProgress) -> TopicProgress:
            return replace(
                tp,
                status="completed",
                completed_at=tp.completed_at or now,
                last_accessed_at=now,
            )

        await self._topics.upsert(learner_id, course_id, topic_id, module.id, _complete)

        was_completed = False

        def _recompute(e: Enrollment) -> Enrollment:
            nonlocal was_completed
            was_completed = e.is_completed
            return apply_topic_completion(e, course, topic_id, now)

        enrollment = await self._enrollments.update(learner_id, course_id, _recompute)
        await self._cache.delete(progress_cache_key(learner_id, course_id))
        logger.info(
            "Topic completed learner=%s course=%s topic=%s progress=%d",
            learner_id,
            course_id,
            topic_id,
            enrollment.progress,
        )

        if enrollment.is_completed and not was_completed:
            logger.info("Enrollment completed learner=%s course=%s", learner_id, course_id)
            await self._notifier.notify(
                learner_id,
                "course_completed",
                "Course Completed!",
                f'Congratulations! You completed "{course.title}"',
                link=f"/courses/{course_id}",
            )
        return enrollment

    async def record_visit(
        self,
        learner_id: str,
        course_id: UUID,
        topic_id: str,
        *,
        time_spent: int = 0,
        notes: str | None = None,
    ) -> TopicProgress:
        """Upsert the topic record for a visit; accumulated time only grows."""
        if time_spent < 0:
            raise ValidationError("time_spent cannot be negative", time_spent=time_spent)
        course = await self._course(course_id)
        module = self._module_for_topic(course, topic_id)
        await require_enrollment(self._enrollments, learner_id, course_id)
        now = self._clock.now()

        def _visit(tp: TopicProgress) -> TopicProgress:
            return replace(
                tp,
                status="completed" if tp.status == "completed" else "in_progress",
                time_spent=tp.time_spent + time_spent,
                last_accessed_at=now,
                notes=tp.notes if notes is None else notes,
            )

        record = await self._topics.upsert(
            learner_id, course_id, topic_id, module.id, _visit
        )
        await self._enrollments.update(
            learner_id,
            course_id,
            lambda e: replace(e, last_accessed_topic=topic_id, last_accessed_at=now),
        )
        await self._cache.delete(progress_cache_key(learner_id, course_id))
        logger.debug(
            "Topic visited learner=%s course=%s topic=%s", learner_id, course_id, topic_id
        )
        return record

    async def course_progress(self, learner_id: str, course_id: UUID) -> CourseProgress:
        course = await self._course(course_id)
        enrollment = await require_enrollment(self._enrollments, learner_id, course_id)
        topics = await self._topics.list_for_course(learner_id, course_id)
        known = set(course.topic_ids)
        return CourseProgress(
            course_id=course_id,
            status=enrollment.status,
            progress=enrollment.progress,
            completed_topics=sum(1 for t in enrollment.completed_topics if t in known),
            total_topics=course.total_topics,
            total_time_spent=sum(t.time_spent for t in topics),
            last_accessed_topic=enrollment.last_accessed_topic,
            completed_at=enrollment.completed_at,
            topics=tuple(topics),
        )

    async def module_progress(
        self, learner_id: str, course_id: UUID, module_id: str
    ) -> ModuleProgress:
        course = await self._course(course_id)
        module = course.module(module_id)
        if module is None:
            raise NotFound("module", module_id)
        enrollment = await require_enrollment(self._enrollments, learner_id, course_id)

        done = set(enrollment.completed_topics)
        records = {
            t.topic_id: t
            for t in await self._topics.list_for_course(learner_id, course_id)
            if t.module_id == module_id
        }
        statuses = tuple(
            ModuleTopicStatus(
                topic_id=t.id,
                title=t.title,
                status="completed"
                if t.id in done
                else (records[t.id].status if t.id in records else "not_started"),
            )
            for t in module.topics
        )
        completed = sum(1 for s in statuses if s.status == "completed")
        return ModuleProgress(
            module_id=module.id,
            title=module.title,
            progress=scoring.progress_percent(completed, len(module.topics)),
            completed_topics=completed,
            total_topics=len(module.topics),
            topics=statuses,
        )

    async def learner_stats(self, learner_id: str) -> LearnerStats:
        enrollments = await self._enrollments.list_for_learner(learner_id)
        topics = await self._topics.list_for_learner(learner_id)

        def _count(status: str) -> int:
            return sum(1 for e in enrollments if e.status == status)

        return LearnerStats(
            total_courses=len(enrollments),
            active_courses=_count("active"),
            completed_courses=_count("completed"),
            paused_courses=_count("paused"),
            dropped_courses=_count("dropped"),
            topics_completed=sum(1 for t in topics if t.status == "completed"),
            total_time_spent=sum(t.time_spent for t in topics),
            average_progress=scoring.round_half_up(
                scoring.mean(e.progress for e in enrollments)
            ),
        )

    async def _course(self, course_id: UUID) -> Course:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFound("course", course_id)
        return course

    @staticmethod
    def _module_for_topic(course: Course, topic_id: str) -> CourseModule:
        module = course.module_for_topic(topic_id)
        if module is None:
            raise NotFound("topic", topic_id)
        return module
