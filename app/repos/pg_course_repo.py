"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import NotFound
from app.db.tables import CourseRow
from app.models.course import Course, CourseModule, Topic


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, course_id: UUID) -> Course | None:
        async with self._sessions() as session:
            row = await session.get(CourseRow, course_id)
            return _row_to_course(row) if row is not None else None

    async def list_published(self) -> list[Course]:
        stmt = (
            select(CourseRow)
            .where(CourseRow.status == "published")
            .order_by(CourseRow.title)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_course(r) for r in rows]

    async def add(self, course: Course) -> None:
        try:
            async with self._sessions() as session, session.begin():
                session.add(CourseRow(id=course.id, **_course_values(course)))
        except IntegrityError:
            raise ValueError("slug already exists") from None

    async def update(
        self, course_id: UUID, mutate: Callable[[Course], Course]
    ) -> Course:
        async with self._sessions() as session, session.begin():
            row = await session.get(CourseRow, course_id, with_for_update=True)
            if row is None:
                raise NotFound("course", course_id)
            updated = mutate(_row_to_course(row))
            for key, value in _course_values(updated).items():
                setattr(row, key, value)
            return updated


def _course_values(course: Course) -> dict:
    return {
        "slug": course.slug,
        "title": course.title,
        "status": course.status,
        "modules": [
            {
                "id": m.id,
                "title": m.title,
                "position": m.position,
                "topics": [
                    {"id": t.id, "title": t.title, "position": t.position}
                    for t in m.topics
                ],
            }
            for m in course.modules
        ],
        "rating_average": course.rating_average,
        "rating_count": course.rating_count,
    }


def _row_to_course(row: CourseRow) -> Course:
    modules = tuple(
        CourseModule(
            id=m["id"],
            title=m["title"],
            position=m["position"],
            topics=tuple(
                Topic(id=t["id"], title=t["title"], position=t["position"])
                for t in m.get("topics", [])
            ),
        )
        for m in sorted(row.modules or [], key=lambda m: m["position"])
    )
    return Course(
        id=row.id,
        slug=row.slug,
        title=row.title,
        status=row.status,
        modules=modules,
        rating_average=row.rating_average,
        rating_count=row.rating_count,
    )
