from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

SUBMISSION_STATUSES = ("submitted", "grading", "graded", "returned")


@dataclass(frozen=True, slots=True)
class RubricCriterion:
    criterion: str
    points: int
    description: str | None = None


@dataclass(frozen=True, slots=True)
class TestCase:
    __test__ = False  # keep pytest from collecting it

    id: UUID
    input: str
    expected_output: str
    points: int = 0
    is_hidden: bool = False


@dataclass(frozen=True, slots=True)
class Assignment:
    """Authored assignment.  Read-only input to the grading pipeline."""

    id: UUID
    course_id: UUID
    module_id: str
    title: str
    type: str = "code"  # code|essay|project|upload
    topic_id: str | None = None
    points: int = 100
    passing_score: float = 60.0  # percent
    due_at: int | None = None
    allow_late_submission: bool = True
    late_penalty_per_day: float = 10.0  # percent per day late
    max_attempts: int = 1  # 0 = unlimited
    rubric: tuple[RubricCriterion, ...] = ()
    test_cases: tuple[TestCase, ...] = ()
    auto_grade: bool = False
    is_active: bool = True

    @staticmethod
    def new(
        *,
        course_id: UUID,
        module_id: str,
        title: str,
        type: str = "code",
        topic_id: str | None = None,
        points: int = 100,
        passing_score: float = 60.0,
        due_at: int | None = None,
        allow_late_submission: bool = True,
        late_penalty_per_day: float = 10.0,
        max_attempts: int = 1,
        rubric: tuple[RubricCriterion, ...] = (),
        test_cases: tuple[TestCase, ...] = (),
        auto_grade: bool = False,
    ) -> Assignment:
        return Assignment(
            id=uuid4(),
            course_id=course_id,
            module_id=module_id,
            title=title,
            type=type,
            topic_id=topic_id,
            points=points,
            passing_score=passing_score,
            due_at=due_at,
            allow_late_submission=allow_late_submission,
            late_penalty_per_day=late_penalty_per_day,
            max_attempts=max_attempts,
            rubric=rubric,
            test_cases=test_cases,
            auto_grade=auto_grade,
        )

    @property
    def total_points(self) -> int:
        # A rubric, when present, defines the point total
        if self.rubric:
            return sum(c.points for c in self.rubric)
        return self.points

    @property
    def is_auto_gradable(self) -> bool:
        return self.auto_grade and bool(self.test_cases)

    def criterion(self, name: str) -> RubricCriterion | None:
        return next((c for c in self.rubric if c.criterion == name), None)


@dataclass(frozen=True, slots=True)
class RubricScore:
    criterion: str
    points_earned: float
    max_points: int
    feedback: str | None = None


@dataclass(frozen=True, slots=True)
class TestResult:
    __test__ = False

    test_case_id: UUID
    passed: bool
    actual_output: str | None = None
    execution_time_ms: int | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class SubmittedFile:
    name: str
    url: str
    content_type: str | None = None
    size: int | None = None


@dataclass(frozen=True, slots=True)
class AssignmentSubmission:
    """One submission attempt.  Grading fields are set exactly once, when
    status moves to "graded"."""

    id: UUID
    learner_id: str
    assignment_id: UUID
    course_id: UUID
    attempt_no: int
    submitted_at: int
    status: str = "submitted"  # submitted|grading|graded|returned
    content: str | None = None
    code: str | None = None
    language: str | None = None
    files: tuple[SubmittedFile, ...] = ()
    is_late: bool = False
    late_penalty: float = 0.0  # percent
    raw_score: float | None = None
    rubric_scores: tuple[RubricScore, ...] = ()
    test_results: tuple[TestResult, ...] = ()
    final_score: float | None = None
    passed: bool = False
    feedback: str | None = None
    graded_by: str | None = None
    graded_at: int | None = None

    @staticmethod
    def new(
        *,
        learner_id: str,
        assignment_id: UUID,
        course_id: UUID,
        attempt_no: int,
        submitted_at: int,
        status: str = "submitted",
        content: str | None = None,
        code: str | None = None,
        language: str | None = None,
        files: tuple[SubmittedFile, ...] = (),
        is_late: bool = False,
        late_penalty: float = 0.0,
    ) -> AssignmentSubmission:
        return AssignmentSubmission(
            id=uuid4(),
            learner_id=learner_id,
            assignment_id=assignment_id,
            course_id=course_id,
            attempt_no=attempt_no,
            submitted_at=submitted_at,
            status=status,
            content=content,
            code=code,
            language=language,
            files=files,
            is_late=is_late,
            late_penalty=late_penalty,
        )

    @property
    def is_graded(self) -> bool:
        return self.status == "graded"
