from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Topic:
    id: str
    title: str
    position: int


@dataclass(frozen=True, slots=True)
class CourseModule:
    id: str
    title: str
    position: int
    topics: tuple[Topic, ...] = ()

    @property
    def topic_ids(self) -> tuple[str, ...]:
        return tuple(t.id for t in self.topics)


@dataclass(frozen=True, slots=True)
class Course:
    """Authored course outline.  Read-only for the assessment engine,
    except for the derived rating summary."""

    id: UUID
    slug: str
    title: str
    status: str = "published"  # draft|published|retired
    modules: tuple[CourseModule, ...] = ()
    rating_average: float = 0.0
    rating_count: int = 0

    @staticmethod
    def new(
        *,
        slug: str,
        title: str,
        modules: tuple[CourseModule, ...] = (),
        status: str = "published",
    ) -> Course:
        return Course(id=uuid4(), slug=slug, title=title, status=status, modules=modules)

    @property
    def is_published(self) -> bool:
        return self.status == "published"

    @property
    def topic_ids(self) -> tuple[str, ...]:
        return tuple(tid for m in self.modules for tid in m.topic_ids)

    @property
    def total_topics(self) -> int:
        return sum(len(m.topics) for m in self.modules)

    def module(self, module_id: str) -> CourseModule | None:
        return next((m for m in self.modules if m.id == module_id), None)

    def module_for_topic(self, topic_id: str) -> CourseModule | None:
        return next((m for m in self.modules if topic_id in m.topic_ids), None)
