"""Assignment submission and grading endpoints.

Learners see their own submissions; instructors and admins grade, return
for revision, and list submissions per assignment.  Hidden test cases are
never shown to learners.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, ServicesDep, require_any_role
from app.models.assignment import Assignment, AssignmentSubmission, SubmittedFile
from app.models.principal import GRADER_ROLES, Principal
from app.services.grading import AssignmentView, RubricScoreIn

router = APIRouter(prefix="/v1/assignments", tags=["assignments"])

Grader = Annotated[Principal, Depends(require_any_role(GRADER_ROLES))]


class RubricCriterionOut(BaseModel):
    criterion: str
    points: int
    description: str | None


class TestCaseOut(BaseModel):
    id: UUID
    input: str
    expected_output: str
    points: int


class AssignmentOut(BaseModel):
    id: UUID
    course_id: UUID
    module_id: str
    title: str
    type: str
    total_points: int
    passing_score: float
    due_at: int | None
    allow_late_submission: bool
    late_penalty_per_day: float
    max_attempts: int
    rubric: list[RubricCriterionOut]
    test_cases: list[TestCaseOut]


class FileIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=2048)
    content_type: str | None = None
    size: int | None = Field(default=None, ge=0)


class SubmissionIn(BaseModel):
    content: str | None = Field(default=None, max_length=100_000)
    code: str | None = Field(default=None, max_length=100_000)
    language: str | None = Field(default=None, max_length=50)
    files: list[FileIn] = []


class RubricScoreOut(BaseModel):
    criterion: str
    points_earned: float
    max_points: int
    feedback: str | None


class TestResultOut(BaseModel):
    test_case_id: UUID
    passed: bool
    actual_output: str | None
    error: str | None


class SubmissionOut(BaseModel):
    id: UUID
    learner_id: str
    assignment_id: UUID
    course_id: UUID
    attempt_no: int
    status: str
    submitted_at: int
    content: str | None
    code: str | None
    language: str | None
    files: list[FileIn]
    is_late: bool
    late_penalty: float
    raw_score: float | None
    final_score: float | None
    passed: bool
    rubric_scores: list[RubricScoreOut]
    test_results: list[TestResultOut]
    feedback: str | None
    graded_by: str | None
    graded_at: int | None


class AssignmentViewOut(BaseModel):
    assignment: AssignmentOut
    submissions: list[SubmissionOut]
    attempts_used: int
    can_submit: bool
    is_overdue: bool
    days_until_due: int | None


class RubricScoreBody(BaseModel):
    criterion: str
    points: float = Field(ge=0)
    feedback: str | None = None


class GradeIn(BaseModel):
    raw_score: float | None = None
    rubric_scores: list[RubricScoreBody] = []
    feedback: str | None = Field(default=None, max_length=10_000)


class ReturnIn(BaseModel):
    feedback: str | None = Field(default=None, max_length=10_000)


def assignment_out(a: Assignment) -> AssignmentOut:
    return AssignmentOut(
        id=a.id,
        course_id=a.course_id,
        module_id=a.module_id,
        title=a.title,
        type=a.type,
        total_points=a.total_points,
        passing_score=a.passing_score,
        due_at=a.due_at,
        allow_late_submission=a.allow_late_submission,
        late_penalty_per_day=a.late_penalty_per_day,
        max_attempts=a.max_attempts,
        rubric=[
            RubricCriterionOut(criterion=c.criterion, points=c.points, description=c.description)
            for c in a.rubric
        ],
        test_cases=[
            TestCaseOut(
                id=t.id, input=t.input, expected_output=t.expected_output, points=t.points
            )
            for t in a.test_cases
            if not t.is_hidden
        ],
    )


def submission_out(s: AssignmentSubmission) -> SubmissionOut:
    return SubmissionOut(
        id=s.id,
        learner_id=s.learner_id,
        assignment_id=s.assignment_id,
        course_id=s.course_id,
        attempt_no=s.attempt_no,
        status=s.status,
        submitted_at=s.submitted_at,
        content=s.content,
        code=s.code,
        language=s.language,
        files=[
            FileIn(name=f.name, url=f.url, content_type=f.content_type, size=f.size)
            for f in s.files
        ],
        is_late=s.is_late,
        late_penalty=s.late_penalty,
        raw_score=s.raw_score,
        final_score=s.final_score,
        passed=s.passed,
        rubric_scores=[
            RubricScoreOut(
                criterion=r.criterion,
                points_earned=r.points_earned,
                max_points=r.max_points,
                feedback=r.feedback,
            )
            for r in s.rubric_scores
        ],
        test_results=[
            TestResultOut(
                test_case_id=t.test_case_id,
                passed=t.passed,
                actual_output=t.actual_output,
                error=t.error,
            )
            for t in s.test_results
        ],
        feedback=s.feedback,
        graded_by=s.graded_by,
        graded_at=s.graded_at,
    )


@router.get("/submissions/{submission_id}", response_model=SubmissionOut)
async def get_submission(
    submission_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> SubmissionOut:
    submission = await svc.grading.get_submission(
        principal.user_id, submission_id, is_grader=principal.is_grader()
    )
    return submission_out(submission)


@router.post("/submissions/{submission_id}/grade", response_model=SubmissionOut)
async def grade_submission(
    submission_id: UUID, payload: GradeIn, grader: Grader, svc: ServicesDep
) -> SubmissionOut:
    graded = await svc.grading.grade(
        grader.user_id,
        submission_id,
        raw_score=payload.raw_score,
        rubric_scores=[
            RubricScoreIn(criterion=r.criterion, points=r.points, feedback=r.feedback)
            for r in payload.rubric_scores
        ],
        feedback=payload.feedback,
    )
    return submission_out(graded)


@router.post("/submissions/{submission_id}/return", response_model=SubmissionOut)
async def return_submission(
    submission_id: UUID, payload: ReturnIn, grader: Grader, svc: ServicesDep
) -> SubmissionOut:
    returned = await svc.grading.return_for_revision(
        grader.user_id, submission_id, payload.feedback
    )
    return submission_out(returned)


def assignment_view_out(view: AssignmentView) -> AssignmentViewOut:
    return AssignmentViewOut(
        assignment=assignment_out(view.assignment),
        submissions=[submission_out(s) for s in view.submissions],
        attempts_used=view.attempts_used,
        can_submit=view.can_submit,
        is_overdue=view.is_overdue,
        days_until_due=view.days_until_due,
    )


@router.get("/courses/{course_id}", response_model=list[AssignmentViewOut])
async def list_course_assignments(
    course_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> list[AssignmentViewOut]:
    views = await svc.grading.list_course_assignments(principal.user_id, course_id)
    return [assignment_view_out(v) for v in views]


@router.get("/courses/{course_id}/my-submissions", response_model=list[SubmissionOut])
async def list_my_submissions(
    course_id: UUID,
    principal: CurrentUser,
    svc: ServicesDep,
    submission_status: Annotated[str | None, Query(alias="status")] = None,
) -> list[SubmissionOut]:
    submissions = await svc.grading.list_my_submissions(
        principal.user_id, course_id, submission_status
    )
    return [submission_out(s) for s in submissions]


@router.get("/{assignment_id}", response_model=AssignmentViewOut)
async def get_assignment(
    assignment_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> AssignmentViewOut:
    view = await svc.grading.view_assignment(principal.user_id, assignment_id)
    return assignment_view_out(view)


@router.post(
    "/{assignment_id}/submissions",
    response_model=SubmissionOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_assignment(
    assignment_id: UUID, payload: SubmissionIn, principal: CurrentUser, svc: ServicesDep
) -> SubmissionOut:
    submission = await svc.grading.submit(
        principal.user_id,
        assignment_id,
        content=payload.content,
        code=payload.code,
        language=payload.language,
        files=[
            SubmittedFile(name=f.name, url=f.url, content_type=f.content_type, size=f.size)
            for f in payload.files
        ],
    )
    return submission_out(submission)


@router.get("/{assignment_id}/submissions", response_model=list[SubmissionOut])
async def list_submissions_for_grading(
    assignment_id: UUID,
    _grader: Grader,
    svc: ServicesDep,
    submission_status: Annotated[str | None, Query(alias="status")] = None,
) -> list[SubmissionOut]:
    submissions = await svc.grading.list_for_grading(assignment_id, submission_status)
    return [submission_out(s) for s in submissions]
