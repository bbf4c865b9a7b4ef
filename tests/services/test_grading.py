from __future__ import annotations

import asyncio

import pytest

from app.core.clock import SECONDS_PER_DAY, ManualClock
from app.core.errors import (
    AttemptLimitExceeded,
    DeadlinePassed,
    Forbidden,
    GradingConflict,
    ValidationError,
)
from app.models.assignment import TestResult
from app.services import registry
from app.services.grading import RubricScoreIn
from app.services.registry import Services
from app.services.task_queue import GRADING_QUEUE, NOTIFICATIONS_QUEUE, InMemoryTaskQueue
from tests.factories import (
    add_assignment,
    enrolled_course,
    make_assignment,
    make_course,
    make_test_cases,
    rubric,
)

LEARNER = "learner-1"
GRADER = "grader-1"


async def _setup(svc: Services, **assignment_kw):
    course = await enrolled_course(svc, LEARNER)
    assignment = await add_assignment(svc, make_assignment(course, **assignment_kw))
    return course, assignment


def test_scenario_b_late_submission_fails(services: Services, clock: ManualClock) -> None:
    async def run():
        _, assignment = await _setup(
            services,
            points=100,
            passing_score=70,
            due_at=clock.now(),
            late_penalty_per_day=10,
        )
        clock.advance(days=3)
        submission = await services.grading.submit(LEARNER, assignment.id, content="essay")
        graded = await services.grading.grade(GRADER, submission.id, raw_score=90)
        return submission, graded

    submission, graded = asyncio.run(run())
    assert submission.is_late is True
    assert submission.late_penalty == 30
    assert graded.final_score == 63.0
    assert graded.passed is False
    assert graded.status == "graded"


def test_on_time_submission_has_no_penalty(services: Services, clock: ManualClock) -> None:
    async def run():
        _, assignment = await _setup(services, due_at=clock.now() + SECONDS_PER_DAY)
        submission = await services.grading.submit(LEARNER, assignment.id, code="print(1)")
        return await services.grading.grade(GRADER, submission.id, raw_score=80)

    graded = asyncio.run(run())
    assert graded.is_late is False
    assert graded.final_score == 80.0
    assert graded.passed is True


def test_late_submission_rejected_when_not_allowed(
    services: Services, clock: ManualClock
) -> None:
    async def run():
        _, assignment = await _setup(
            services, due_at=clock.now(), allow_late_submission=False
        )
        clock.advance(60)
        await services.grading.submit(LEARNER, assignment.id, content="too late")

    with pytest.raises(DeadlinePassed):
        asyncio.run(run())


def test_empty_submission_rejected(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services)
        await services.grading.submit(LEARNER, assignment.id)

    with pytest.raises(ValidationError):
        asyncio.run(run())


def test_attempt_limit_and_numbering(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services, max_attempts=2)
        first = await services.grading.submit(LEARNER, assignment.id, content="v1")
        second = await services.grading.submit(LEARNER, assignment.id, content="v2")
        with pytest.raises(AttemptLimitExceeded):
            await services.grading.submit(LEARNER, assignment.id, content="v3")
        return first, second

    first, second = asyncio.run(run())
    assert (first.attempt_no, second.attempt_no) == (1, 2)


def test_concurrent_submissions_respect_limit(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services, max_attempts=1)
        results = await asyncio.gather(
            *(
                services.grading.submit(LEARNER, assignment.id, content=f"v{i}")
                for i in range(4)
            ),
            return_exceptions=True,
        )
        stored = await services.repos.submissions.list_for_assignment(
            LEARNER, assignment.id
        )
        return results, stored

    results, stored = asyncio.run(run())
    assert sum(1 for r in results if isinstance(r, AttemptLimitExceeded)) == 3
    assert len(stored) == 1


def test_returned_submission_still_uses_its_attempt(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services, max_attempts=2)
        numbers = []
        for version in ("v1", "v2"):
            submission = await services.grading.submit(
                LEARNER, assignment.id, content=version
            )
            numbers.append(submission.attempt_no)
            returned = await services.grading.return_for_revision(
                GRADER, submission.id, "please add tests"
            )
        with pytest.raises(AttemptLimitExceeded) as exc_info:
            await services.grading.submit(LEARNER, assignment.id, content="v3")
        view = await services.grading.view_assignment(LEARNER, assignment.id)
        return assignment, numbers, returned, exc_info.value, view

    assignment, numbers, returned, error, view = asyncio.run(run())
    assert returned.status == "returned"
    assert returned.feedback == "please add tests"
    assert numbers == [1, 2]
    assert all(n <= assignment.max_attempts for n in numbers)
    assert error.context["attempts_used"] == 2
    assert view.attempts_used == 2
    assert view.can_submit is False


def test_grading_twice_conflicts(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services)
        submission = await services.grading.submit(LEARNER, assignment.id, content="x")
        first = await services.grading.grade(GRADER, submission.id, raw_score=70)
        with pytest.raises(GradingConflict):
            await services.grading.grade("grader-2", submission.id, raw_score=10)
        return first, await services.repos.submissions.get(submission.id)

    first, stored = asyncio.run(run())
    assert stored == first
    assert stored.graded_by == GRADER


def test_concurrent_grading_has_one_winner(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services)
        submission = await services.grading.submit(LEARNER, assignment.id, content="x")
        return await asyncio.gather(
            services.grading.grade("grader-a", submission.id, raw_score=50),
            services.grading.grade("grader-b", submission.id, raw_score=90),
            return_exceptions=True,
        )

    results = asyncio.run(run())
    assert sum(1 for r in results if isinstance(r, GradingConflict)) == 1


def test_rubric_scores_define_raw_score(services: Services) -> None:
    async def run():
        _, assignment = await _setup(
            services, rubric=rubric(("correctness", 70), ("style", 30)), passing_score=60
        )
        submission = await services.grading.submit(LEARNER, assignment.id, code="x")
        return await services.grading.grade(
            GRADER,
            submission.id,
            rubric_scores=[
                RubricScoreIn(criterion="correctness", points=50),
                RubricScoreIn(criterion="style", points=20, feedback="naming"),
            ],
            feedback="good",
        )

    graded = asyncio.run(run())
    assert graded.raw_score == 70
    assert graded.final_score == 70.0
    assert graded.passed is True
    assert [r.criterion for r in graded.rubric_scores] == ["correctness", "style"]


@pytest.mark.parametrize(
    "scores",
    [
        [RubricScoreIn(criterion="unknown", points=1)],
        [RubricScoreIn(criterion="style", points=31)],
        [RubricScoreIn(criterion="style", points=1), RubricScoreIn(criterion="style", points=2)],
    ],
)
def test_invalid_rubric_scores_rejected(services: Services, scores) -> None:
    async def run():
        _, assignment = await _setup(services, rubric=rubric(("style", 30)))
        submission = await services.grading.submit(LEARNER, assignment.id, code="x")
        await services.grading.grade(GRADER, submission.id, rubric_scores=scores)

    with pytest.raises(ValidationError):
        asyncio.run(run())


def test_raw_score_above_total_rejected(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services, points=50)
        submission = await services.grading.submit(LEARNER, assignment.id, code="x")
        await services.grading.grade(GRADER, submission.id, raw_score=51)

    with pytest.raises(ValidationError):
        asyncio.run(run())


def test_learner_cannot_view_someone_elses_submission(services: Services) -> None:
    async def run():
        _, assignment = await _setup(services)
        submission = await services.grading.submit(LEARNER, assignment.id, code="x")
        assert await services.grading.get_submission(GRADER, submission.id, is_grader=True)
        await services.grading.get_submission("learner-2", submission.id)

    with pytest.raises(Forbidden):
        asyncio.run(run())


def test_passed_submission_completes_its_topic(services: Services) -> None:
    async def run():
        course = await enrolled_course(services, LEARNER, make_course((1, 1)))
        assignment = await add_assignment(
            services, make_assignment(course, topic_id="m2-t1", passing_score=50)
        )
        submission = await services.grading.submit(LEARNER, assignment.id, code="x")
        await services.grading.grade(GRADER, submission.id, raw_score=75)
        return await services.enrollments.get(LEARNER, course.id)

    enrollment = asyncio.run(run())
    assert enrollment.completed_topics == ("m2-t1",)
    assert enrollment.progress == 50


# ---- auto-grading ----


class _PassFirstRunner:
    async def run_test_cases(self, submission, test_cases):
        return [
            TestResult(test_case_id=tc.id, passed=i == 0) for i, tc in enumerate(test_cases)
        ]


def test_auto_gradable_submission_is_queued(services: Services) -> None:
    async def run():
        _, assignment = await _setup(
            services, auto_grade=True, test_cases=make_test_cases(40, 60)
        )
        submission = await services.grading.submit(LEARNER, assignment.id, code="x")
        task = await services.queue.dequeue(GRADING_QUEUE)
        skipped = await services.grading.auto_grade(submission.id)
        return submission, task, skipped

    submission, task, skipped = asyncio.run(run())
    assert submission.status == "grading"
    assert task is not None
    assert task.payload == {"submission_id": str(submission.id)}
    # The default runner declines, leaving the submission for a human.
    assert skipped is None


class _GradingQueueDown(InMemoryTaskQueue):
    async def enqueue(self, queue, payload):
        if queue == GRADING_QUEUE:
            raise ConnectionError("redis down")
        return await super().enqueue(queue, payload)


def test_grading_queue_outage_keeps_the_submission(clock: ManualClock) -> None:
    queue = _GradingQueueDown()
    svc = registry.reset(clock=clock, queue=queue)

    async def run():
        _, assignment = await _setup(
            svc, auto_grade=True, test_cases=make_test_cases(40, 60), max_attempts=1
        )
        submission = await svc.grading.submit(LEARNER, assignment.id, code="x")
        stored = await svc.repos.submissions.list_for_assignment(LEARNER, assignment.id)
        notifications = await queue.queue_length(NOTIFICATIONS_QUEUE)
        return submission, stored, notifications

    submission, stored, notifications = asyncio.run(run())
    assert submission.status == "grading"
    assert [(s.id, s.status) for s in stored] == [(submission.id, "grading")]
    # The learner is still told the submission arrived
    assert notifications == 1


def test_auto_grade_scores_passed_test_cases(clock: ManualClock) -> None:
    svc = registry.reset(clock=clock, runner=_PassFirstRunner())

    async def run():
        _, assignment = await _setup(
            svc, auto_grade=True, test_cases=make_test_cases(40, 60), passing_score=30
        )
        submission = await svc.grading.submit(LEARNER, assignment.id, code="x")
        graded = await svc.grading.auto_grade(submission.id)
        again = await svc.grading.auto_grade(submission.id)
        return graded, again

    graded, again = asyncio.run(run())
    assert graded.status == "graded"
    assert graded.raw_score == 40
    assert graded.graded_by == "auto-grader"
    assert graded.passed is True
    assert len(graded.test_results) == 2
    assert again is None


def test_assignment_view_flags(services: Services, clock: ManualClock) -> None:
    async def run():
        _, assignment = await _setup(
            services, due_at=clock.now() + 2 * SECONDS_PER_DAY, max_attempts=1
        )
        before = await services.grading.view_assignment(LEARNER, assignment.id)
        await services.grading.submit(LEARNER, assignment.id, content="x")
        clock.advance(days=3)
        after = await services.grading.view_assignment(LEARNER, assignment.id)
        return before, after

    before, after = asyncio.run(run())
    assert before.can_submit is True
    assert before.days_until_due == 2
    assert before.is_overdue is False
    assert after.can_submit is False
    assert after.is_overdue is True
    assert after.attempts_used == 1


def test_course_assignment_listing_counts_only_own_submissions(
    services: Services, clock: ManualClock
) -> None:
    async def run():
        course, first = await _setup(
            services, due_at=clock.now() + SECONDS_PER_DAY, max_attempts=1
        )
        second = await add_assignment(
            services, make_assignment(course, due_at=clock.now() + 5 * SECONDS_PER_DAY)
        )
        await services.enrollments.enroll("learner-2", course.id)
        await services.grading.submit(LEARNER, first.id, content="mine")
        await services.grading.submit("learner-2", second.id, content="theirs")
        return first, second, await services.grading.list_course_assignments(LEARNER, course.id)

    first, second, views = asyncio.run(run())
    assert [v.assignment.id for v in views] == [first.id, second.id]
    submitted, untouched = views
    assert submitted.attempts_used == 1
    assert submitted.can_submit is False
    assert [s.learner_id for s in submitted.submissions] == [LEARNER]
    assert untouched.attempts_used == 0
    assert untouched.can_submit is True
    assert untouched.days_until_due == 5
