from __future__ import annotations

from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from app.core.errors import NotFound
from app.models.course import Course


class CourseRepo(Protocol):
    async def get(self, course_id: UUID) -> Course | None: ...
    async def list_published(self) -> list[Course]: ...
    async def add(self, course: Course) -> None: ...
    async def update(
        self, course_id: UUID, mutate: Callable[[Course], Course]
    ) -> Course: ...


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Course] = {}

    async def get(self, course_id: UUID) -> Course | None:
        return self._by_id.get(course_id)

    async def list_published(self) -> list[Course]:
        return [c for c in self._by_id.values() if c.is_published]

    async def add(self, course: Course) -> None:
        if any(c.slug == course.slug for c in self._by_id.values()):
            raise ValueError("slug already exists")
        self._by_id[course.id] = course

    async def update(
        self, course_id: UUID, mutate: Callable[[Course], Course]
    ) -> Course:
        current = self._by_id.get(course_id)
        if current is None:
            raise NotFound("course", course_id)
        updated = mutate(current)
        self._by_id[course_id] = updated
        return updated
