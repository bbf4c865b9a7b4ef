"""AssignmentGradingPipeline: submission intake and the grading step.

Submission status flow:

    submitted ──grade──> graded
        │                  │
        │  (auto-gradable) │
        └──> grading ──────┤
                           └──return──> returned

Grading is a one-time transition.  The repository's update runs the
status check against the freshest record, so of two concurrent grade
calls on one submission the second gets GradingConflict.

Auto-grading is a pluggable strategy: a TestCaseRunner turns a submission
and its assignment's test cases into TestResults.  The default runner
declines (returns None), which leaves the submission for a human grader.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Protocol
from uuid import UUID

from app.core.clock import SECONDS_PER_DAY, Clock
from app.core.errors import (
    AssessmentError,
    DeadlinePassed,
    Forbidden,
    GradingConflict,
    NotFound,
    ValidationError,
)
from app.core.metrics import ASSIGNMENT_SUBMISSIONS, TASK_ENQUEUE_FAILURES
from app.models.assignment import (
    Assignment,
    AssignmentSubmission,
    RubricScore,
    SubmittedFile,
    TestCase,
    TestResult,
)
from app.repos.assignment_repo import AssignmentRepo, SubmissionRepo
from app.repos.enrollment_repo import EnrollmentRepo
from app.services import scoring
from app.services.enrollments import require_enrollment
from app.services.notifier import Notifier
from app.services.progress import ProgressTracker
from app.services.task_queue import GRADING_QUEUE, TaskQueue

logger = logging.getLogger(__name__)

AUTO_GRADER_ID = "auto-grader"
GRADABLE_STATUSES = ("submitted", "grading")
RETURNABLE_STATUSES = ("submitted", "grading", "graded")


class TestCaseRunner(Protocol):
    async def run_test_cases(
        self, submission: AssignmentSubmission, test_cases: Sequence[TestCase]
    ) -> list[TestResult] | None: ...


class NullTestCaseRunner:
    """Declines every run; auto-gradable submissions wait for a human."""

    async def run_test_cases(
        self, submission: AssignmentSubmission, test_cases: Sequence[TestCase]
    ) -> list[TestResult] | None:
        return None


@dataclass(frozen=True, slots=True)
class RubricScoreIn:
    criterion: str
    points: float
    feedback: str | None = None


@dataclass(frozen=True, slots=True)
class AssignmentView:
    assignment: Assignment
    submissions: tuple[AssignmentSubmission, ...]
    attempts_used: int
    can_submit: bool
    is_overdue: bool
    days_until_due: int | None


def days_until(due_at: int | None, now: int) -> int | None:
    if due_at is None:
        return None
    return math.ceil((due_at - now) / SECONDS_PER_DAY)


def assignment_view(
    assignment: Assignment, submissions: list[AssignmentSubmission], now: int
) -> AssignmentView:
    used = len(submissions)
    overdue = assignment.due_at is not None and now > assignment.due_at
    within_limit = assignment.max_attempts == 0 or used < assignment.max_attempts
    return AssignmentView(
        assignment=assignment,
        submissions=tuple(submissions),
        attempts_used=used,
        can_submit=within_limit and (not overdue or assignment.allow_late_submission),
        is_overdue=overdue,
        days_until_due=days_until(assignment.due_at, now),
    )


def apply_grade(
    submission: AssignmentSubmission,
    assignment: Assignment,
    *,
    raw_score: float,
    rubric_scores: tuple[RubricScore, ...],
    feedback: str | None,
    graded_by: str,
    graded_at: int,
    test_results: tuple[TestResult, ...] = (),
) -> AssignmentSubmission:
    """Pure terminal step: late penalty, pass/fail, status -> graded."""
    final = round(scoring.final_score(raw_score, submission.late_penalty), 2)
    pct = scoring.percentage(final, assignment.total_points)
    return replace(
        submission,
        status="graded",
        raw_score=raw_score,
        rubric_scores=rubric_scores,
        test_results=test_results or submission.test_results,
        final_score=final,
        passed=scoring.passed(pct, assignment.passing_score),
        feedback=feedback,
        graded_by=graded_by,
        graded_at=graded_at,
    )


def build_rubric_scores(
    assignment: Assignment, scores: Sequence[RubricScoreIn]
) -> tuple[RubricScore, ...]:
    seen: set[str] = set()
    built = []
    for s in scores:
        criterion = assignment.criterion(s.criterion)
        if criterion is None:
            raise ValidationError("Unknown rubric criterion", criterion=s.criterion)
        if s.criterion in seen:
            raise ValidationError("Rubric criterion scored twice", criterion=s.criterion)
        if not 0 <= s.points <= criterion.points:
            raise ValidationError(
                f"Points for {s.criterion!r} must be between 0 and {criterion.points}",
                criterion=s.criterion,
                max_points=criterion.points,
            )
        seen.add(s.criterion)
        built.append(
            RubricScore(
                criterion=s.criterion,
                points_earned=s.points,
                max_points=criterion.points,
                feedback=s.feedback,
            )
        )
    return tuple(built)


class AssignmentGradingPipeline:
    def __init__(
        self,
        *,
        assignments: AssignmentRepo,
        submissions: SubmissionRepo,
        enrollments: EnrollmentRepo,
        progress: ProgressTracker,
        clock: Clock,
        notifier: Notifier,
        queue: TaskQueue,
        runner: TestCaseRunner | None = None,
    ) -> None:
        self._assignments = assignments
        self._submissions = submissions
        self._enrollments = enrollments
        self._progress = progress
        self._clock = clock
        self._notifier = notifier
        self._queue = queue
        self._runner = runner or NullTestCaseRunner()

    # --- reads ---

    async def view_assignment(self, learner_id: str, assignment_id: UUID) -> AssignmentView:
        assignment = await self._assignment(assignment_id)
        await require_enrollment(self._enrollments, learner_id, assignment.course_id)
        submissions = await self._submissions.list_for_assignment(learner_id, assignment_id)
        return assignment_view(assignment, submissions, self._clock.now())

    async def list_course_assignments(
        self, learner_id: str, course_id: UUID
    ) -> list[AssignmentView]:
        await require_enrollment(self._enrollments, learner_id, course_id)
        now = self._clock.now()

        by_assignment: dict[UUID, list[AssignmentSubmission]] = {}
        for submission in await self._submissions.list_for_course(learner_id, course_id):
            by_assignment.setdefault(submission.assignment_id, []).append(submission)

        views = []
        for assignment in await self._assignments.list_for_course(course_id):
            mine = sorted(
                by_assignment.get(assignment.id, []), key=lambda s: s.attempt_no, reverse=True
            )
            views.append(assignment_view(assignment, mine, now))
        return views

    async def get_submission(
        self, viewer_id: str, submission_id: UUID, *, is_grader: bool = False
    ) -> AssignmentSubmission:
        submission = await self._submission(submission_id)
        if submission.learner_id != viewer_id and not is_grader:
            raise Forbidden("Not authorized to view this submission")
        return submission

    async def list_my_submissions(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]:
        return await self._submissions.list_for_course(learner_id, course_id, status)

    async def list_for_grading(
        self, assignment_id: UUID, status: str | None = None
    ) -> list[AssignmentSubmission]:
        await self._assignment(assignment_id, active_only=False)
        return await self._submissions.list_by_assignment(assignment_id, status)

    # --- transitions ---

    async def submit(
        self,
        learner_id: str,
        assignment_id: UUID,
        *,
        content: str | None = None,
        code: str | None = None,
        language: str | None = None,
        files: Sequence[SubmittedFile] = (),
    ) -> AssignmentSubmission:
        assignment = await self._assignment(assignment_id)
        await require_enrollment(self._enrollments, learner_id, assignment.course_id)
        if not (content or code or files):
            raise ValidationError("Submission has no content, code, or files")

        now = self._clock.now()
        is_late = assignment.due_at is not None and now > assignment.due_at
        if is_late and not assignment.allow_late_submission:
            raise DeadlinePassed(assignment.due_at)
        penalty = scoring.late_penalty(
            scoring.days_late(now, assignment.due_at), assignment.late_penalty_per_day
        )

        submission = await self._submissions.create(
            AssignmentSubmission.new(
                learner_id=learner_id,
                assignment_id=assignment_id,
                course_id=assignment.course_id,
                attempt_no=0,  # assigned by the repository
                submitted_at=now,
                status="grading" if assignment.is_auto_gradable else "submitted",
                content=content,
                code=code,
                language=language,
                files=tuple(files),
                is_late=is_late,
                late_penalty=penalty,
            ),
            assignment.max_attempts,
        )

        ASSIGNMENT_SUBMISSIONS.labels(outcome="submitted").inc()
        if is_late:
            ASSIGNMENT_SUBMISSIONS.labels(outcome="late").inc()
        logger.info(
            "Submission created submission=%s learner=%s assignment=%s no=%d late=%s penalty=%.1f",
            submission.id,
            learner_id,
            assignment_id,
            submission.attempt_no,
            is_late,
            penalty,
        )

        if submission.status == "grading":
            await self._queue_auto_grading(submission)

        await self._notifier.notify(
            learner_id,
            "assignment_submitted",
            "Assignment Submitted",
            f'Your submission for "{assignment.title}" was received',
            link=f"/assignments/submissions/{submission.id}",
        )
        return submission

    async def _queue_auto_grading(self, submission: AssignmentSubmission) -> None:
        # The submission is already stored; a lost task leaves it in "grading"
        # for a human grader.
        try:
            await self._queue.enqueue(
                GRADING_QUEUE, {"submission_id": str(submission.id)}
            )
        except Exception:
            TASK_ENQUEUE_FAILURES.labels(queue_name=GRADING_QUEUE).inc()
            logger.exception(
                "Failed to queue auto-grading for submission=%s", submission.id
            )
            return
        logger.info("Queued auto-grading for submission=%s", submission.id)

    async def grade(
        self,
        grader_id: str,
        submission_id: UUID,
        *,
        raw_score: float | None = None,
        rubric_scores: Sequence[RubricScoreIn] = (),
        feedback: str | None = None,
    ) -> AssignmentSubmission:
        submission = await self._submission(submission_id)
        assignment = await self._assignment(submission.assignment_id, active_only=False)

        rubric = build_rubric_scores(assignment, rubric_scores)
        if raw_score is None:
            if not rubric:
                raise ValidationError("Either raw_score or rubric_scores is required")
            raw_score = sum(r.points_earned for r in rubric)
        if not 0 <= raw_score <= assignment.total_points:
            raise ValidationError(
                f"Score must be between 0 and {assignment.total_points}",
                raw_score=raw_score,
                total_points=assignment.total_points,
            )

        return await self._grade(
            submission_id,
            assignment,
            raw_score=raw_score,
            rubric_scores=rubric,
            feedback=feedback,
            graded_by=grader_id,
        )

    async def auto_grade(self, submission_id: UUID) -> AssignmentSubmission | None:
        """Run the test-case strategy for a queued submission.

        Returns None when there is nothing to do: the submission already
        left "grading", or the runner declined.
        """
        submission = await self._submission(submission_id)
        if submission.status != "grading":
            logger.info(
                "Skipping auto-grade for submission=%s in status=%s",
                submission_id,
                submission.status,
            )
            return None
        assignment = await self._assignment(submission.assignment_id, active_only=False)

        results = await self._runner.run_test_cases(submission, assignment.test_cases)
        if results is None:
            logger.info("No test runner result for submission=%s, left for manual grading", submission_id)
            return None

        points = {tc.id: tc.points for tc in assignment.test_cases}
        raw = sum(points.get(r.test_case_id, 0) for r in results if r.passed)
        passed_count = sum(1 for r in results if r.passed)
        return await self._grade(
            submission_id,
            assignment,
            raw_score=min(raw, assignment.total_points),
            rubric_scores=(),
            feedback=f"{passed_count}/{len(results)} test cases passed",
            graded_by=AUTO_GRADER_ID,
            test_results=tuple(results),
        )

    async def return_for_revision(
        self, grader_id: str, submission_id: UUID, feedback: str | None = None
    ) -> AssignmentSubmission:
        now = self._clock.now()

        def _return(current: AssignmentSubmission) -> AssignmentSubmission:
            if current.status not in RETURNABLE_STATUSES:
                raise GradingConflict(current.id, current.status)
            return replace(
                current,
                status="returned",
                feedback=feedback,
                graded_by=grader_id,
                graded_at=now,
            )

        submission = await self._submissions.update(submission_id, _return)
        ASSIGNMENT_SUBMISSIONS.labels(outcome="returned").inc()
        logger.info(
            "Submission returned submission=%s by grader=%s", submission_id, grader_id
        )
        await self._notifier.notify(
            submission.learner_id,
            "assignment_returned",
            "Assignment Returned",
            "Your submission was returned for revision",
            link=f"/assignments/submissions/{submission_id}",
        )
        return submission

    # --- internals ---

    async def _grade(
        self,
        submission_id: UUID,
        assignment: Assignment,
        *,
        raw_score: float,
        rubric_scores: tuple[RubricScore, ...],
        feedback: str | None,
        graded_by: str,
        test_results: tuple[TestResult, ...] = (),
    ) -> AssignmentSubmission:
        now = self._clock.now()

        def _apply(current: AssignmentSubmission) -> AssignmentSubmission:
            if current.status not in GRADABLE_STATUSES:
                raise GradingConflict(current.id, current.status)
            return apply_grade(
                current,
                assignment,
                raw_score=raw_score,
                rubric_scores=rubric_scores,
                feedback=feedback,
                graded_by=graded_by,
                graded_at=now,
                test_results=test_results,
            )

        submission = await self._submissions.update(submission_id, _apply)

        ASSIGNMENT_SUBMISSIONS.labels(
            outcome="passed" if submission.passed else "failed"
        ).inc()
        logger.info(
            "Submission graded submission=%s by=%s raw=%.2f final=%.2f passed=%s",
            submission.id,
            graded_by,
            raw_score,
            submission.final_score,
            submission.passed,
        )
        await self._notifier.notify(
            submission.learner_id,
            "assignment_graded",
            "Assignment Graded",
            f'Your submission for "{assignment.title}" scored {submission.final_score:g}/{assignment.total_points}',
            link=f"/assignments/submissions/{submission.id}",
        )

        if submission.passed and assignment.topic_id:
            try:
                await self._progress.complete_topic(
                    submission.learner_id, assignment.course_id, assignment.topic_id
                )
            except AssessmentError as e:
                logger.warning(
                    "Could not mark topic=%s complete for learner=%s after submission=%s: %s",
                    assignment.topic_id,
                    submission.learner_id,
                    submission.id,
                    e.message,
                )
        return submission

    async def _assignment(self, assignment_id: UUID, *, active_only: bool = True) -> Assignment:
        assignment = await self._assignments.get(assignment_id)
        if assignment is None or (active_only and not assignment.is_active):
            raise NotFound("assignment", assignment_id)
        return assignment

    async def _submission(self, submission_id: UUID) -> AssignmentSubmission:
        submission = await self._submissions.get(submission_id)
        if submission is None:
            raise NotFound("submission", submission_id)
        return submission
