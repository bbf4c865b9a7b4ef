from __future__ import annotations

from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from app.core.errors import AlreadyEnrolled, NotFound
from app.models.enrollment import Enrollment, TopicProgress


class EnrollmentRepo(Protocol):
    async def get(self, learner_id: str, course_id: UUID) -> Enrollment | None: ...
    async def list_for_learner(self, learner_id: str) -> list[Enrollment]: ...
    async def list_for_course(self, course_id: UUID) -> list[Enrollment]: ...
    async def add(self, enrollment: Enrollment) -> None: ...
    async def update(
        self,
        learner_id: str,
        course_id: UUID,
        mutate: Callable[[Enrollment], Enrollment],
    ) -> Enrollment: ...
    async def remove(self, learner_id: str, course_id: UUID) -> bool: ...


class TopicProgressRepo(Protocol):
    async def get(
        self, learner_id: str, course_id: UUID, topic_id: str
    ) -> TopicProgress | None: ...
    async def list_for_course(
        self, learner_id: str, course_id: UUID
    ) -> list[TopicProgress]: ...
    async def list_for_learner(self, learner_id: str) -> list[TopicProgress]: ...
    async def upsert(
        self,
        learner_id: str,
        course_id: UUID,
        topic_id: str,
        module_id: str,
        mutate: Callable[[TopicProgress], TopicProgress],
    ) -> TopicProgress: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, UUID], Enrollment] = {}

    async def get(self, learner_id: str, course_id: UUID) -> Enrollment | None:
        return self._store.get((learner_id, course_id))

    async def list_for_learner(self, learner_id: str) -> list[Enrollment]:
        return [e for e in self._store.values() if e.learner_id == learner_id]

    async def list_for_course(self, course_id: UUID) -> list[Enrollment]:
        return [e for e in self._store.values() if e.course_id == course_id]

    async def add(self, enrollment: Enrollment) -> None:
        key = (enrollment.learner_id, enrollment.course_id)
        if key in self._store:
            raise AlreadyEnrolled(enrollment.course_id)
        self._store[key] = enrollment

    async def update(
        self,
        learner_id: str,
        course_id: UUID,
        mutate: Callable[[Enrollment], Enrollment],
    ) -> Enrollment:
        # mutate() sees the freshest record and runs without yielding,
        # so concurrent topic completions cannot lose each other's writes.
        key = (learner_id, course_id)
        current = self._store.get(key)
        if current is None:
            raise NotFound("enrollment", course_id)
        updated = mutate(current)
        self._store[key] = updated
        return updated

    async def remove(self, learner_id: str, course_id: UUID) -> bool:
        return self._store.pop((learner_id, course_id), None) is not None


class InMemoryTopicProgressRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, UUID, str], TopicProgress] = {}

    async def get(
        self, learner_id: str, course_id: UUID, topic_id: str
    ) -> TopicProgress | None:
        return self._store.get((learner_id, course_id, topic_id))

    async def list_for_course(
        self, learner_id: str, course_id: UUID
    ) -> list[TopicProgress]:
        return sorted(
            (
                p
                for p in self._store.values()
                if p.learner_id == learner_id and p.course_id == course_id
            ),
            key=lambda p: p.last_accessed_at or 0,
            reverse=True,
        )

    async def list_for_learner(self, learner_id: str) -> list[TopicProgress]:
        return [p for p in self._store.values() if p.learner_id == learner_id]

    async def upsert(
        self,
        learner_id: str,
        course_id: UUID,
        topic_id: str,
        module_id: str,
        mutate: Callable[[TopicProgress], TopicProgress],
    ) -> TopicProgress:
        key = (learner_id, course_id, topic_id)
        current = self._store.get(key) or TopicProgress(
            learner_id=learner_id,
            course_id=course_id,
            topic_id=topic_id,
            module_id=module_id,
        )
        updated = mutate(current)
        self._store[key] = updated
        return updated
