from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.core.errors import AttemptAlreadyActive, AttemptLimitExceeded, NotFound
from app.models.quiz import Quiz, QuizAttempt


class QuizRepo(Protocol):
    async def get(self, quiz_id: UUID) -> Quiz | None: ...
    async def list_for_course(self, course_id: UUID) -> list[Quiz]: ...
    async def add(self, quiz: Quiz) -> None: ...


class AttemptRepo(Protocol):
    async def get(self, attempt_id: UUID) -> QuizAttempt | None: ...
    async def find_active(
        self, learner_id: str, quiz_id: UUID
    ) -> QuizAttempt | None: ...
    async def list_for_quiz(
        self, learner_id: str, quiz_id: UUID
    ) -> list[QuizAttempt]: ...
    async def list_for_course(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[QuizAttempt]: ...
    async def list_in_progress(self) -> list[QuizAttempt]: ...
    async def create(self, attempt: QuizAttempt, max_attempts: int) -> QuizAttempt: ...
    async def update(
        self, attempt_id: UUID, mutate: Callable[[QuizAttempt], QuizAttempt]
    ) -> QuizAttempt: ...


class InMemoryQuizRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Quiz] = {}

    async def get(self, quiz_id: UUID) -> Quiz | None:
        return self._by_id.get(quiz_id)

    async def list_for_course(self, course_id: UUID) -> list[Quiz]:
        return [
            q for q in self._by_id.values() if q.course_id == course_id and q.is_active
        ]

    async def add(self, quiz: Quiz) -> None:
        self._by_id[quiz.id] = quiz


class InMemoryAttemptRepo:
    """Attempt store whose guarded writes never yield mid-check.

    create() and update() do their read-check-write without an await, so
    on a single event loop no other coroutine can slip in between the
    guard and the write.
    """

    def __init__(self) -> None:
        self._by_id: dict[UUID, QuizAttempt] = {}

    async def get(self, attempt_id: UUID) -> QuizAttempt | None:
        return self._by_id.get(attempt_id)

    async def find_active(self, learner_id: str, quiz_id: UUID) -> QuizAttempt | None:
        return self._active(learner_id, quiz_id)

    async def list_for_quiz(self, learner_id: str, quiz_id: UUID) -> list[QuizAttempt]:
        return sorted(
            (
                a
                for a in self._by_id.values()
                if a.learner_id == learner_id and a.quiz_id == quiz_id
            ),
            key=lambda a: a.attempt_no,
        )

    async def list_for_course(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[QuizAttempt]:
        return sorted(
            (
                a
                for a in self._by_id.values()
                if a.learner_id == learner_id
                and a.course_id == course_id
                and (status is None or a.status == status)
            ),
            key=lambda a: a.started_at,
            reverse=True,
        )

    async def list_in_progress(self) -> list[QuizAttempt]:
        return [a for a in self._by_id.values() if a.is_active]

    async def create(self, attempt: QuizAttempt, max_attempts: int) -> QuizAttempt:
        active = self._active(attempt.learner_id, attempt.quiz_id)
        if active is not None:
            raise AttemptAlreadyActive(active.id, active.attempt_no)

        used = sum(
            1
            for a in self._by_id.values()
            if a.learner_id == attempt.learner_id and a.quiz_id == attempt.quiz_id
        )
        if max_attempts > 0 and used >= max_attempts:
            raise AttemptLimitExceeded(used, max_attempts)

        created = replace(attempt, attempt_no=used + 1)
        self._by_id[created.id] = created
        return created

    async def update(
        self, attempt_id: UUID, mutate: Callable[[QuizAttempt], QuizAttempt]
    ) -> QuizAttempt:
        current = self._by_id.get(attempt_id)
        if current is None:
            raise NotFound("quiz attempt", attempt_id)
        updated = mutate(current)
        self._by_id[attempt_id] = updated
        return updated

    def _active(self, learner_id: str, quiz_id: UUID) -> QuizAttempt | None:
        return next(
            (
                a
                for a in self._by_id.values()
                if a.learner_id == learner_id and a.quiz_id == quiz_id and a.is_active
            ),
            None,
        )
