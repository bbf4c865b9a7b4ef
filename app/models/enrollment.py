from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

ENROLLMENT_STATUSES = ("active", "completed", "paused", "dropped")
TOPIC_STATUSES = ("not_started", "in_progress", "completed")


@dataclass(frozen=True, slots=True)
class CourseRating:
    score: int  # 1..5
    review: str | None
    rated_at: int


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A learner's membership in a course and their aggregate progress.

    ``completed_topics`` is an ordered set: insertion order is kept and a
    topic id never appears twice.
    """

    id: UUID
    learner_id: str
    course_id: UUID
    enrolled_at: int
    status: str = "active"  # active|completed|paused|dropped
    progress: int = 0  # 0..100
    completed_topics: tuple[str, ...] = ()
    last_accessed_topic: str | None = None
    last_accessed_at: int | None = None
    completed_at: int | None = None
    rating: CourseRating | None = None

    @staticmethod
    def new(*, learner_id: str, course_id: UUID, enrolled_at: int) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            learner_id=learner_id,
            course_id=course_id,
            enrolled_at=enrolled_at,
            last_accessed_at=enrolled_at,
        )

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


@dataclass(frozen=True, slots=True)
class TopicProgress:
    """Per-topic progress record; one per (learner, course, topic)."""

    learner_id: str
    course_id: UUID
    topic_id: str
    module_id: str
    status: str = "not_started"  # not_started|in_progress|completed
    time_spent: int = 0  # seconds, only ever grows
    last_accessed_at: int | None = None
    completed_at: int | None = None
    notes: str = ""
