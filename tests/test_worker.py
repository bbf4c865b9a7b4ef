"""Worker dispatch and the overdue-attempt sweep."""

from __future__ import annotations

import asyncio

from app import worker
from app.core.clock import ManualClock
from app.models.assignment import TestResult
from app.services import registry
from app.services.registry import SAMPLE_COURSE_ID, SAMPLE_QUIZ_ID, Services
from app.services.task_queue import GRADING_QUEUE, NOTIFICATIONS_QUEUE
from tests.factories import add_assignment, make_assignment, make_test_cases


def test_both_queues_have_handlers() -> None:
    assert set(worker.HANDLERS) == {NOTIFICATIONS_QUEUE, GRADING_QUEUE}


def test_empty_queue_returns_false(services: Services) -> None:
    assert asyncio.run(worker.process_next(NOTIFICATIONS_QUEUE)) is False


def test_notification_is_consumed(services: Services) -> None:
    async def run():
        await services.queue.enqueue(
            NOTIFICATIONS_QUEUE, {"user_id": "u1", "type": "quiz_completed", "title": "t"}
        )
        took = await worker.process_next(NOTIFICATIONS_QUEUE)
        return took, await services.queue.queue_length(NOTIFICATIONS_QUEUE)

    assert asyncio.run(run()) == (True, 0)


def test_failing_task_is_dropped(services: Services) -> None:
    async def run():
        # Malformed payload: the handler raises, the worker logs and moves on
        await services.queue.enqueue(GRADING_QUEUE, {"submission_id": "not-a-uuid"})
        took = await worker.process_next(GRADING_QUEUE)
        return took, await services.queue.queue_length(GRADING_QUEUE)

    assert asyncio.run(run()) == (True, 0)


class _AllPassRunner:
    async def run_test_cases(self, submission, test_cases):
        return [TestResult(test_case_id=tc.id, passed=True) for tc in test_cases]


def test_grading_task_auto_grades_submission(clock: ManualClock) -> None:
    svc = registry.reset(clock=clock, runner=_AllPassRunner())

    async def run():
        await registry.seed_sample_content(svc)
        course = await svc.repos.courses.get(SAMPLE_COURSE_ID)
        await svc.enrollments.enroll("learner-1", course.id)
        assignment = await add_assignment(
            svc,
            make_assignment(course, auto_grade=True, test_cases=make_test_cases(50, 50)),
        )
        submission = await svc.grading.submit("learner-1", assignment.id, code="x")
        took = await worker.process_next(GRADING_QUEUE)
        return took, await svc.repos.submissions.get(submission.id)

    took, graded = asyncio.run(run())
    assert took is True
    assert graded.status == "graded"
    assert graded.final_score == 100.0
    assert graded.graded_by == "auto-grader"


def test_sweep_expires_overdue_attempts(services: Services, clock: ManualClock) -> None:
    async def run():
        await services.enrollments.enroll("learner-1", SAMPLE_COURSE_ID)
        attempt = await services.quizzes.start_attempt("learner-1", SAMPLE_QUIZ_ID)
        clock.advance(minutes=20)
        expired = await worker.sweep_overdue_attempts()
        return expired, await services.repos.attempts.get(attempt.id)

    expired, attempt = asyncio.run(run())
    assert expired == 1
    assert attempt.status == "completed"
    assert attempt.timed_out is True
