"""PostgreSQL implementations of AssignmentRepo and SubmissionRepo."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import AttemptConflict, AttemptLimitExceeded, NotFound
from app.db.tables import AssignmentRow, SubmissionRow
from app.models.assignment import (
    Assignment,
    AssignmentSubmission,
    RubricCriterion,
    RubricScore,
    SubmittedFile,
    TestCase,
    TestResult,
)

_CREATE_RETRIES = 3


class PgAssignmentRepo:
    """Satisfies the AssignmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, assignment_id: UUID) -> Assignment | None:
        async with self._sessions() as session:
            row = await session.get(AssignmentRow, assignment_id)
            return _row_to_assignment(row) if row is not None else None

    async def list_for_course(self, course_id: UUID) -> list[Assignment]:
        stmt = (
            select(AssignmentRow)
            .where(
                AssignmentRow.course_id == course_id,
                AssignmentRow.is_active.is_(True),
            )
            .order_by(AssignmentRow.module_id, AssignmentRow.due_at)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_assignment(r) for r in rows]

    async def add(self, assignment: Assignment) -> None:
        async with self._sessions() as session, session.begin():
            session.add(
                AssignmentRow(
                    id=assignment.id,
                    course_id=assignment.course_id,
                    module_id=assignment.module_id,
                    topic_id=assignment.topic_id,
                    title=assignment.title,
                    type=assignment.type,
                    points=assignment.points,
                    passing_score=assignment.passing_score,
                    due_at=assignment.due_at,
                    allow_late_submission=assignment.allow_late_submission,
                    late_penalty_per_day=assignment.late_penalty_per_day,
                    max_attempts=assignment.max_attempts,
                    rubric=[
                        {
                            "criterion": c.criterion,
                            "points": c.points,
                            "description": c.description,
                        }
                        for c in assignment.rubric
                    ],
                    test_cases=[
                        {
                            "id": str(t.id),
                            "input": t.input,
                            "expected_output": t.expected_output,
                            "points": t.points,
                            "is_hidden": t.is_hidden,
                        }
                        for t in assignment.test_cases
                    ],
                    auto_grade=assignment.auto_grade,
                    is_active=assignment.is_active,
                )
            )


class PgSubmissionRepo:
    """Satisfies the SubmissionRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, submission_id: UUID) -> AssignmentSubmission | None:
        async with self._sessions() as session:
            row = await session.get(SubmissionRow, submission_id)
            return _row_to_submission(row) if row is not None else None

    async def list_for_assignment(
        self, learner_id: str, assignment_id: UUID
    ) -> list[AssignmentSubmission]:
        stmt = (
            select(SubmissionRow)
            .where(
                SubmissionRow.learner_id == learner_id,
                SubmissionRow.assignment_id == assignment_id,
            )
            .order_by(SubmissionRow.attempt_no.desc())
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_submission(r) for r in rows]

    async def list_for_course(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]:
        stmt = select(SubmissionRow).where(
            SubmissionRow.learner_id == learner_id,
            SubmissionRow.course_id == course_id,
        )
        if status is not None:
            stmt = stmt.where(SubmissionRow.status == status)
        stmt = stmt.order_by(SubmissionRow.submitted_at.desc())
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_submission(r) for r in rows]

    async def list_by_assignment(
        self, assignment_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]:
        stmt = select(SubmissionRow).where(SubmissionRow.assignment_id == assignment_id)
        if status is not None:
            stmt = stmt.where(SubmissionRow.status == status)
        stmt = stmt.order_by(SubmissionRow.submitted_at)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_submission(r) for r in rows]

    async def create(
        self, submission: AssignmentSubmission, max_attempts: int
    ) -> AssignmentSubmission:
        # A concurrent submit that grabs the same attempt_no trips the unique
        # constraint; the retry recounts and hits the limit if it was the last.
        for _ in range(_CREATE_RETRIES):
            try:
                return await self._try_create(submission, max_attempts)
            except IntegrityError:
                continue
        async with self._sessions() as session:
            used = await self._count_submissions(
                session, submission.learner_id, submission.assignment_id
            )
        raise AttemptConflict(used)

    async def _try_create(
        self, submission: AssignmentSubmission, max_attempts: int
    ) -> AssignmentSubmission:
        async with self._sessions() as session, session.begin():
            used = await self._count_submissions(
                session, submission.learner_id, submission.assignment_id
            )
            if max_attempts > 0 and used >= max_attempts:
                raise AttemptLimitExceeded(used, max_attempts)

            created = replace(submission, attempt_no=used + 1)
            session.add(SubmissionRow(id=created.id, **_submission_values(created)))
            await session.flush()
            return created

    @staticmethod
    async def _count_submissions(
        session: AsyncSession, learner_id: str, assignment_id: UUID
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(SubmissionRow)
            .where(
                SubmissionRow.learner_id == learner_id,
                SubmissionRow.assignment_id == assignment_id,
            )
        )
        return (await session.execute(stmt)).scalar_one()

    async def update(
        self,
        submission_id: UUID,
        mutate: Callable[[AssignmentSubmission], AssignmentSubmission],
    ) -> AssignmentSubmission:
        async with self._sessions() as session, session.begin():
            row = await session.get(SubmissionRow, submission_id, with_for_update=True)
            if row is None:
                raise NotFound("submission", submission_id)
            updated = mutate(_row_to_submission(row))
            for key, value in _submission_values(updated).items():
                setattr(row, key, value)
            return updated


# --- Row <-> domain conversion ---


def _row_to_assignment(row: AssignmentRow) -> Assignment:
    return Assignment(
        id=row.id,
        course_id=row.course_id,
        module_id=row.module_id,
        title=row.title,
        type=row.type,
        topic_id=row.topic_id,
        points=row.points,
        passing_score=row.passing_score,
        due_at=row.due_at,
        allow_late_submission=row.allow_late_submission,
        late_penalty_per_day=row.late_penalty_per_day,
        max_attempts=row.max_attempts,
        rubric=tuple(
            RubricCriterion(
                criterion=c["criterion"],
                points=c["points"],
                description=c.get("description"),
            )
            for c in row.rubric or []
        ),
        test_cases=tuple(
            TestCase(
                id=UUID(t["id"]),
                input=t["input"],
                expected_output=t["expected_output"],
                points=t.get("points", 0),
                is_hidden=t.get("is_hidden", False),
            )
            for t in row.test_cases or []
        ),
        auto_grade=row.auto_grade,
        is_active=row.is_active,
    )


def _submission_values(s: AssignmentSubmission) -> dict:
    return {
        "learner_id": s.learner_id,
        "assignment_id": s.assignment_id,
        "course_id": s.course_id,
        "attempt_no": s.attempt_no,
        "status": s.status,
        "submitted_at": s.submitted_at,
        "content": s.content,
        "code": s.code,
        "language": s.language,
        "files": [
            {
                "name": f.name,
                "url": f.url,
                "content_type": f.content_type,
                "size": f.size,
            }
            for f in s.files
        ],
        "is_late": s.is_late,
        "late_penalty": s.late_penalty,
        "raw_score": s.raw_score,
        "rubric_scores": [
            {
                "criterion": r.criterion,
                "points_earned": r.points_earned,
                "max_points": r.max_points,
                "feedback": r.feedback,
            }
            for r in s.rubric_scores
        ],
        "test_results": [
            {
                "test_case_id": str(t.test_case_id),
                "passed": t.passed,
                "actual_output": t.actual_output,
                "execution_time_ms": t.execution_time_ms,
                "error": t.error,
            }
            for t in s.test_results
        ],
        "final_score": s.final_score,
        "passed": s.passed,
        "feedback": s.feedback,
        "graded_by": s.graded_by,
        "graded_at": s.graded_at,
    }


def _row_to_submission(row: SubmissionRow) -> AssignmentSubmission:
    return AssignmentSubmission(
        id=row.id,
        learner_id=row.learner_id,
        assignment_id=row.assignment_id,
        course_id=row.course_id,
        attempt_no=row.attempt_no,
        submitted_at=row.submitted_at,
        status=row.status,
        content=row.content,
        code=row.code,
        language=row.language,
        files=tuple(
            SubmittedFile(
                name=f["name"],
                url=f["url"],
                content_type=f.get("content_type"),
                size=f.get("size"),
            )
            for f in row.files or []
        ),
        is_late=row.is_late,
        late_penalty=row.late_penalty,
        raw_score=row.raw_score,
        rubric_scores=tuple(
            RubricScore(
                criterion=r["criterion"],
                points_earned=r["points_earned"],
                max_points=r["max_points"],
                feedback=r.get("feedback"),
            )
            for r in row.rubric_scores or []
        ),
        test_results=tuple(
            TestResult(
                test_case_id=UUID(t["test_case_id"]),
                passed=t["passed"],
                actual_output=t.get("actual_output"),
                execution_time_ms=t.get("execution_time_ms"),
                error=t.get("error"),
            )
            for t in row.test_results or []
        ),
        final_score=row.final_score,
        passed=row.passed,
        feedback=row.feedback,
        graded_by=row.graded_by,
        graded_at=row.graded_at,
    )
