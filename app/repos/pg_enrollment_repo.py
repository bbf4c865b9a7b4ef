"""PostgreSQL implementations of EnrollmentRepo and TopicProgressRepo.

Both update paths lock the row (SELECT ... FOR UPDATE) and hand the
freshest record to a pure mutation function inside one transaction, so
two concurrent "mark complete" calls on one enrollment serialize instead
of overwriting each other's completed-topic set.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import AlreadyEnrolled, NotFound
from app.db.tables import EnrollmentRow, TopicProgressRow
from app.models.enrollment import CourseRating, Enrollment, TopicProgress


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, learner_id: str, course_id: UUID) -> Enrollment | None:
        async with self._sessions() as session:
            row = await _select_one(session, learner_id, course_id)
            return _row_to_enrollment(row) if row is not None else None

    async def list_for_learner(self, learner_id: str) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.learner_id == learner_id)
            .order_by(EnrollmentRow.enrolled_at.desc())
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_enrollment(r) for r in rows]

    async def list_for_course(self, course_id: UUID) -> list[Enrollment]:
        stmt = select(EnrollmentRow).where(EnrollmentRow.course_id == course_id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_enrollment(r) for r in rows]

    async def add(self, enrollment: Enrollment) -> None:
        try:
            async with self._sessions() as session, session.begin():
                session.add(
                    EnrollmentRow(id=enrollment.id, **_enrollment_values(enrollment))
                )
        except IntegrityError:
            raise AlreadyEnrolled(enrollment.course_id) from None

    async def update(
        self,
        learner_id: str,
        course_id: UUID,
        mutate: Callable[[Enrollment], Enrollment],
    ) -> Enrollment:
        async with self._sessions() as session, session.begin():
            row = await _select_one(session, learner_id, course_id, for_update=True)
            if row is None:
                raise NotFound("enrollment", course_id)
            updated = mutate(_row_to_enrollment(row))
            for key, value in _enrollment_values(updated).items():
                setattr(row, key, value)
            return updated

    async def remove(self, learner_id: str, course_id: UUID) -> bool:
        stmt = delete(EnrollmentRow).where(
            EnrollmentRow.learner_id == learner_id,
            EnrollmentRow.course_id == course_id,
        )
        async with self._sessions() as session, session.begin():
            result = await session.execute(stmt)
            return result.rowcount > 0


class PgTopicProgressRepo:
    """Satisfies the TopicProgressRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(
        self, learner_id: str, course_id: UUID, topic_id: str
    ) -> TopicProgress | None:
        async with self._sessions() as session:
            row = await session.get(TopicProgressRow, (learner_id, course_id, topic_id))
            return _row_to_topic(row) if row is not None else None

    async def list_for_course(
        self, learner_id: str, course_id: UUID
    ) -> list[TopicProgress]:
        stmt = (
            select(TopicProgressRow)
            .where(
                TopicProgressRow.learner_id == learner_id,
                TopicProgressRow.course_id == course_id,
            )
            .order_by(TopicProgressRow.last_accessed_at.desc().nulls_last())
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_topic(r) for r in rows]

    async def list_for_learner(self, learner_id: str) -> list[TopicProgress]:
        stmt = select(TopicProgressRow).where(TopicProgressRow.learner_id == learner_id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_topic(r) for r in rows]

    async def upsert(
        self,
        learner_id: str,
        course_id: UUID,
        topic_id: str,
        module_id: str,
        mutate: Callable[[TopicProgress], TopicProgress],
    ) -> TopicProgress:
        key = (learner_id, course_id, topic_id)
        async with self._sessions() as session, session.begin():
            # Make sure a row exists to lock, then lock it.
            await session.execute(
                insert(TopicProgressRow)
                .values(
                    learner_id=learner_id,
                    course_id=course_id,
                    topic_id=topic_id,
                    module_id=module_id,
                    status="not_started",
                    time_spent=0,
                    notes="",
                )
                .on_conflict_do_nothing()
            )
            row = await session.get(TopicProgressRow, key, with_for_update=True)
            updated = mutate(_row_to_topic(row))
            row.module_id = updated.module_id
            row.status = updated.status
            row.time_spent = updated.time_spent
            row.last_accessed_at = updated.last_accessed_at
            row.completed_at = updated.completed_at
            row.notes = updated.notes
            return updated


async def _select_one(
    session: AsyncSession, learner_id: str, course_id: UUID, for_update: bool = False
) -> EnrollmentRow | None:
    stmt = select(EnrollmentRow).where(
        EnrollmentRow.learner_id == learner_id,
        EnrollmentRow.course_id == course_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()


def _enrollment_values(e: Enrollment) -> dict:
    rating = None
    if e.rating is not None:
        rating = {
            "score": e.rating.score,
            "review": e.rating.review,
            "rated_at": e.rating.rated_at,
        }
    return {
        "learner_id": e.learner_id,
        "course_id": e.course_id,
        "enrolled_at": e.enrolled_at,
        "status": e.status,
        "progress": e.progress,
        "completed_topics": list(e.completed_topics),
        "last_accessed_topic": e.last_accessed_topic,
        "last_accessed_at": e.last_accessed_at,
        "completed_at": e.completed_at,
        "rating": rating,
    }


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    rating = None
    if row.rating:
        rating = CourseRating(
            score=row.rating["score"],
            review=row.rating.get("review"),
            rated_at=row.rating["rated_at"],
        )
    return Enrollment(
        id=row.id,
        learner_id=row.learner_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        status=row.status,
        progress=row.progress,
        completed_topics=tuple(row.completed_topics or ()),
        last_accessed_topic=row.last_accessed_topic,
        last_accessed_at=row.last_accessed_at,
        completed_at=row.completed_at,
        rating=rating,
    )


def _row_to_topic(row: TopicProgressRow) -> TopicProgress:
    return TopicProgress(
        learner_id=row.learner_id,
        course_id=row.course_id,
        topic_id=row.topic_id,
        module_id=row.module_id,
        status=row.status,
        time_spent=row.time_spent,
        last_accessed_at=row.last_accessed_at,
        completed_at=row.completed_at,
        notes=row.notes or "",
    )
