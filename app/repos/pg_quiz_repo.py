"""PostgreSQL implementations of QuizRepo and AttemptRepo.

Attempt creation relies on two constraints instead of a read-then-write
check: the unique (learner_id, quiz_id, attempt_no) constraint and the
partial unique index allowing one in_progress row per (learner_id, quiz_id).
Whichever concurrent start loses the insert gets the matching domain error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import (
    AttemptAlreadyActive,
    AttemptConflict,
    AttemptLimitExceeded,
    NotFound,
)
from app.db.tables import QuizAttemptRow, QuizRow
from app.models.quiz import Question, QuestionOption, Quiz, QuizAnswer, QuizAttempt

logger = logging.getLogger(__name__)

_CREATE_RETRIES = 3


class PgQuizRepo:
    """Satisfies the QuizRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, quiz_id: UUID) -> Quiz | None:
        async with self._sessions() as session:
            row = await session.get(QuizRow, quiz_id)
            return _row_to_quiz(row) if row is not None else None

    async def list_for_course(self, course_id: UUID) -> list[Quiz]:
        stmt = select(QuizRow).where(
            QuizRow.course_id == course_id, QuizRow.is_active.is_(True)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_quiz(r) for r in rows]

    async def add(self, quiz: Quiz) -> None:
        async with self._sessions() as session, session.begin():
            session.add(
                QuizRow(
                    id=quiz.id,
                    course_id=quiz.course_id,
                    module_id=quiz.module_id,
                    topic_id=quiz.topic_id,
                    title=quiz.title,
                    questions=[_question_to_json(q) for q in quiz.questions],
                    duration_minutes=quiz.duration_minutes,
                    passing_score=quiz.passing_score,
                    max_attempts=quiz.max_attempts,
                    shuffle_questions=quiz.shuffle_questions,
                    shuffle_options=quiz.shuffle_options,
                    show_answers=quiz.show_answers,
                    available_from=quiz.available_from,
                    available_to=quiz.available_to,
                    is_active=quiz.is_active,
                )
            )


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, attempt_id: UUID) -> QuizAttempt | None:
        async with self._sessions() as session:
            row = await session.get(QuizAttemptRow, attempt_id)
            return _row_to_attempt(row) if row is not None else None

    async def find_active(self, learner_id: str, quiz_id: UUID) -> QuizAttempt | None:
        async with self._sessions() as session:
            return await self._find_active(session, learner_id, quiz_id)

    async def list_for_quiz(self, learner_id: str, quiz_id: UUID) -> list[QuizAttempt]:
        stmt = (
            select(QuizAttemptRow)
            .where(
                QuizAttemptRow.learner_id == learner_id,
                QuizAttemptRow.quiz_id == quiz_id,
            )
            .order_by(QuizAttemptRow.attempt_no)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_attempt(r) for r in rows]

    async def list_for_course(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[QuizAttempt]:
        stmt = select(QuizAttemptRow).where(
            QuizAttemptRow.learner_id == learner_id,
            QuizAttemptRow.course_id == course_id,
        )
        if status is not None:
            stmt = stmt.where(QuizAttemptRow.status == status)
        stmt = stmt.order_by(QuizAttemptRow.started_at.desc())
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_attempt(r) for r in rows]

    async def list_in_progress(self) -> list[QuizAttempt]:
        stmt = select(QuizAttemptRow).where(QuizAttemptRow.status == "in_progress")
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_attempt(r) for r in rows]

    async def create(self, attempt: QuizAttempt, max_attempts: int) -> QuizAttempt:
        for _ in range(_CREATE_RETRIES):
            try:
                return await self._try_create(attempt, max_attempts)
            except IntegrityError:
                # Lost a race with a concurrent start.  If that start left an
                # open attempt, report it; otherwise recount and try again.
                active = await self._active_for(attempt.learner_id, attempt.quiz_id)
                if active is not None:
                    raise AttemptAlreadyActive(active.id, active.attempt_no) from None
                logger.info(
                    "Attempt number collision for learner=%s quiz=%s, retrying",
                    attempt.learner_id,
                    attempt.quiz_id,
                )
        used = await self._count_for(attempt.learner_id, attempt.quiz_id)
        raise AttemptConflict(used)

    async def _active_for(self, learner_id: str, quiz_id: UUID) -> QuizAttempt | None:
        async with self._sessions() as session:
            return await self._find_active(session, learner_id, quiz_id)

    async def _count_for(self, learner_id: str, quiz_id: UUID) -> int:
        async with self._sessions() as session:
            return await self._count_attempts(session, learner_id, quiz_id)

    async def _try_create(self, attempt: QuizAttempt, max_attempts: int) -> QuizAttempt:
        async with self._sessions() as session, session.begin():
            active = await self._find_active(
                session, attempt.learner_id, attempt.quiz_id
            )
            if active is not None:
                raise AttemptAlreadyActive(active.id, active.attempt_no)

            used = await self._count_attempts(
                session, attempt.learner_id, attempt.quiz_id
            )
            if max_attempts > 0 and used >= max_attempts:
                raise AttemptLimitExceeded(used, max_attempts)

            created = replace(attempt, attempt_no=used + 1)
            session.add(QuizAttemptRow(id=created.id, **_attempt_values(created)))
            await session.flush()
            return created

    async def update(
        self, attempt_id: UUID, mutate: Callable[[QuizAttempt], QuizAttempt]
    ) -> QuizAttempt:
        async with self._sessions() as session, session.begin():
            row = await session.get(QuizAttemptRow, attempt_id, with_for_update=True)
            if row is None:
                raise NotFound("quiz attempt", attempt_id)
            updated = mutate(_row_to_attempt(row))
            for key, value in _attempt_values(updated).items():
                setattr(row, key, value)
            return updated

    @staticmethod
    async def _find_active(
        session: AsyncSession, learner_id: str, quiz_id: UUID
    ) -> QuizAttempt | None:
        stmt = select(QuizAttemptRow).where(
            QuizAttemptRow.learner_id == learner_id,
            QuizAttemptRow.quiz_id == quiz_id,
            QuizAttemptRow.status == "in_progress",
        )
        row = (await session.execute(stmt)).scalar_one_or_none()
        return _row_to_attempt(row) if row is not None else None

    @staticmethod
    async def _count_attempts(session: AsyncSession, learner_id: str, quiz_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(QuizAttemptRow)
            .where(
                QuizAttemptRow.learner_id == learner_id,
                QuizAttemptRow.quiz_id == quiz_id,
            )
        )
        return (await session.execute(stmt)).scalar_one()


# --- Row <-> domain conversion ---


def _question_to_json(q: Question) -> dict:
    return {
        "id": str(q.id),
        "prompt": q.prompt,
        "type": q.type,
        "points": q.points,
        "options": [
            {"id": str(o.id), "text": o.text, "is_correct": o.is_correct}
            for o in q.options
        ],
        "correct_answer": q.correct_answer,
        "explanation": q.explanation,
    }


def _question_from_json(data: dict) -> Question:
    return Question(
        id=UUID(data["id"]),
        prompt=data["prompt"],
        type=data.get("type", "multiple_choice"),
        points=data.get("points", 1),
        options=tuple(
            QuestionOption(
                id=UUID(o["id"]), text=o["text"], is_correct=o.get("is_correct", False)
            )
            for o in data.get("options", [])
        ),
        correct_answer=data.get("correct_answer"),
        explanation=data.get("explanation"),
    )


def _row_to_quiz(row: QuizRow) -> Quiz:
    return Quiz(
        id=row.id,
        course_id=row.course_id,
        module_id=row.module_id,
        title=row.title,
        questions=tuple(_question_from_json(q) for q in row.questions or []),
        topic_id=row.topic_id,
        duration_minutes=row.duration_minutes,
        passing_score=row.passing_score,
        max_attempts=row.max_attempts,
        shuffle_questions=row.shuffle_questions,
        shuffle_options=row.shuffle_options,
        show_answers=row.show_answers,
        available_from=row.available_from,
        available_to=row.available_to,
        is_active=row.is_active,
    )


def _answer_to_json(a: QuizAnswer) -> dict:
    return {
        "question_id": str(a.question_id),
        "is_correct": a.is_correct,
        "points_earned": a.points_earned,
        "answered_at": a.answered_at,
        "selected_option": str(a.selected_option) if a.selected_option else None,
        "answer": a.answer,
        "time_taken": a.time_taken,
    }


def _answer_from_json(data: dict) -> QuizAnswer:
    selected = data.get("selected_option")
    return QuizAnswer(
        question_id=UUID(data["question_id"]),
        is_correct=data["is_correct"],
        points_earned=data["points_earned"],
        answered_at=data["answered_at"],
        selected_option=UUID(selected) if selected else None,
        answer=data.get("answer"),
        time_taken=data.get("time_taken"),
    )


def _attempt_values(a: QuizAttempt) -> dict:
    return {
        "learner_id": a.learner_id,
        "quiz_id": a.quiz_id,
        "course_id": a.course_id,
        "attempt_no": a.attempt_no,
        "total_points": a.total_points,
        "status": a.status,
        "answers": [_answer_to_json(ans) for ans in a.answers],
        "score": a.score,
        "percentage": a.percentage,
        "passed": a.passed,
        "started_at": a.started_at,
        "completed_at": a.completed_at,
        "time_spent": a.time_spent,
        "timed_out": a.timed_out,
    }


def _row_to_attempt(row: QuizAttemptRow) -> QuizAttempt:
    return QuizAttempt(
        id=row.id,
        learner_id=row.learner_id,
        quiz_id=row.quiz_id,
        course_id=row.course_id,
        attempt_no=row.attempt_no,
        total_points=row.total_points,
        started_at=row.started_at,
        status=row.status,
        answers=tuple(_answer_from_json(a) for a in row.answers or []),
        score=row.score,
        percentage=row.percentage,
        passed=row.passed,
        completed_at=row.completed_at,
        time_spent=row.time_spent,
        timed_out=row.timed_out,
    )
