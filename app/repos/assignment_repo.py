from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.core.errors import AttemptLimitExceeded, NotFound
from app.models.assignment import Assignment, AssignmentSubmission


class AssignmentRepo(Protocol):
    async def get(self, assignment_id: UUID) -> Assignment | None: ...
    async def list_for_course(self, course_id: UUID) -> list[Assignment]: ...
    async def add(self, assignment: Assignment) -> None: ...


class SubmissionRepo(Protocol):
    async def get(self, submission_id: UUID) -> AssignmentSubmission | None: ...
    async def list_for_assignment(
        self, learner_id: str, assignment_id: UUID
    ) -> list[AssignmentSubmission]: ...
    async def list_for_course(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]: ...
    async def list_by_assignment(
        self, assignment_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]: ...
    async def create(
        self, submission: AssignmentSubmission, max_attempts: int
    ) -> AssignmentSubmission: ...
    async def update(
        self,
        submission_id: UUID,
        mutate: Callable[[AssignmentSubmission], AssignmentSubmission],
    ) -> AssignmentSubmission: ...


class InMemoryAssignmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Assignment] = {}

    async def get(self, assignment_id: UUID) -> Assignment | None:
        return self._by_id.get(assignment_id)

    async def list_for_course(self, course_id: UUID) -> list[Assignment]:
        return sorted(
            (
                a
                for a in self._by_id.values()
                if a.course_id == course_id and a.is_active
            ),
            key=lambda a: (a.module_id, a.due_at or 0),
        )

    async def add(self, assignment: Assignment) -> None:
        self._by_id[assignment.id] = assignment


class InMemorySubmissionRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, AssignmentSubmission] = {}

    async def get(self, submission_id: UUID) -> AssignmentSubmission | None:
        return self._by_id.get(submission_id)

    async def list_for_assignment(
        self, learner_id: str, assignment_id: UUID
    ) -> list[AssignmentSubmission]:
        return sorted(
            (
                s
                for s in self._by_id.values()
                if s.learner_id == learner_id and s.assignment_id == assignment_id
            ),
            key=lambda s: s.attempt_no,
            reverse=True,
        )

    async def list_for_course(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]:
        return sorted(
            (
                s
                for s in self._by_id.values()
                if s.learner_id == learner_id
                and s.course_id == course_id
                and (status is None or s.status == status)
            ),
            key=lambda s: s.submitted_at,
            reverse=True,
        )

    async def list_by_assignment(
        self, assignment_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]:
        return sorted(
            (
                s
                for s in self._by_id.values()
                if s.assignment_id == assignment_id
                and (status is None or s.status == status)
            ),
            key=lambda s: s.submitted_at,
        )

    async def create(
        self, submission: AssignmentSubmission, max_attempts: int
    ) -> AssignmentSubmission:
        mine = [
            s
            for s in self._by_id.values()
            if s.learner_id == submission.learner_id
            and s.assignment_id == submission.assignment_id
        ]
        # Every submission, returned ones included, uses up an attempt
        if max_attempts > 0 and len(mine) >= max_attempts:
            raise AttemptLimitExceeded(len(mine), max_attempts)

        created = replace(submission, attempt_no=len(mine) + 1)
        self._by_id[created.id] = created
        return created

    async def update(
        self,
        submission_id: UUID,
        mutate: Callable[[AssignmentSubmission], AssignmentSubmission],
    ) -> AssignmentSubmission:
        current = self._by_id.get(submission_id)
        if current is None:
            raise NotFound("submission", submission_id)
        updated = mutate(current)
        self._by_id[submission_id] = updated
        return updated
