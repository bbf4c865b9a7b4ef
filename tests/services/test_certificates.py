from __future__ import annotations

import asyncio
import re

import pytest

from app.core.clock import SECONDS_PER_DAY, ManualClock
from app.core.errors import (
    AlreadyIssued,
    AlreadyRevoked,
    Forbidden,
    NotCompleted,
    NotFound,
)
from app.services import certificates, registry
from app.services.registry import Services
from app.services.scoring import ScoreWeights
from app.services.task_queue import NOTIFICATIONS_QUEUE
from tests.factories import (
    add_assignment,
    add_quiz,
    correct_option,
    enrolled_course,
    make_assignment,
    make_course,
    make_quiz,
    mc_question,
    wrong_option,
)

LEARNER = "learner-1"
ADMIN = "admin-1"


async def _complete_course(svc: Services, learner: str = LEARNER):
    course = await enrolled_course(svc, learner, make_course((1,)))
    await svc.progress.complete_topic(learner, course.id, "m1-t1")
    return course


def test_code_format() -> None:
    assert certificates.to_base36(0) == "0"
    assert certificates.to_base36(35) == "Z"
    assert certificates.to_base36(36) == "10"
    code = certificates.generate_code(1_760_000_000)
    assert re.fullmatch(r"CERT-[0-9A-Z]+-[0-9A-Z]{6}", code)
    assert code.split("-")[1] == certificates.to_base36(1_760_000_000)


def test_incomplete_course_is_rejected_with_progress(services: Services) -> None:
    async def run():
        course = await enrolled_course(services, LEARNER)
        await services.progress.complete_topic(LEARNER, course.id, "m1-t1")
        await services.certificates.request(LEARNER, course.id)

    with pytest.raises(NotCompleted) as exc:
        asyncio.run(run())
    assert exc.value.context["current_progress"] == 25


def test_unenrolled_learner_is_forbidden(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        await services.certificates.request("stranger", course.id)

    with pytest.raises(Forbidden):
        asyncio.run(run())


def test_scenario_d_weighted_grade(clock: ManualClock) -> None:
    svc = registry.reset(clock=clock, weights=ScoreWeights(quiz=0.4, assignment=0.6))

    async def run():
        course = await enrolled_course(svc, LEARNER, make_course((1,)))
        quiz = await add_quiz(
            svc, make_quiz(course, questions=(mc_question(8), mc_question(2)))
        )
        q1, q2 = quiz.questions
        attempt = await svc.quizzes.start_attempt(LEARNER, quiz.id)
        await svc.quizzes.submit_answer(
            LEARNER, attempt.id, q1.id, selected_option=correct_option(q1)
        )
        await svc.quizzes.submit_answer(
            LEARNER, attempt.id, q2.id, selected_option=wrong_option(q2)
        )
        await svc.quizzes.complete_attempt(LEARNER, attempt.id)

        assignment = await add_assignment(svc, make_assignment(course))
        submission = await svc.grading.submit(LEARNER, assignment.id, code="x")
        await svc.grading.grade("grader-1", submission.id, raw_score=90)

        await svc.progress.record_visit(LEARNER, course.id, "m1-t1", time_spent=5400)
        await svc.progress.complete_topic(LEARNER, course.id, "m1-t1")
        return course, await svc.certificates.request(LEARNER, course.id, "Ada Lovelace")

    course, cert = asyncio.run(run())
    assert cert.final_score == 86
    assert cert.grade == "B+"
    assert cert.holder_name == "Ada Lovelace"
    assert cert.course_title == course.title
    assert cert.issued_at == clock.now()
    assert cert.expires_at is None
    assert cert.metadata.total_quizzes == 1
    assert cert.metadata.average_quiz_score == 80
    assert cert.metadata.total_assignments == 1
    assert cert.metadata.average_assignment_score == 90
    assert cert.metadata.total_modules == 1
    assert cert.metadata.completed_modules == 1
    assert cert.metadata.total_hours == 2


def test_holder_name_defaults_to_learner(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        return await services.certificates.request(LEARNER, course.id)

    cert = asyncio.run(run())
    assert cert.holder_name == LEARNER
    # No quizzes or assignments: both averages are zero
    assert cert.final_score == 0
    assert cert.grade == "Pass"


def test_second_request_is_already_issued(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        first = await services.certificates.request(LEARNER, course.id)
        with pytest.raises(AlreadyIssued) as exc:
            await services.certificates.request(LEARNER, course.id)
        return first, exc.value

    first, err = asyncio.run(run())
    assert err.context["code"] == first.code


def test_concurrent_requests_issue_exactly_one(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        results = await asyncio.gather(
            *(services.certificates.request(LEARNER, course.id) for _ in range(3)),
            return_exceptions=True,
        )
        stored = await services.certificates.list_mine(LEARNER)
        return results, stored

    results, stored = asyncio.run(run())
    assert sum(1 for r in results if isinstance(r, AlreadyIssued)) == 2
    assert len(stored) == 1


def test_verify_reports_status(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        cert = await services.certificates.request(LEARNER, course.id)
        return await services.certificates.verify(cert.code)

    result = asyncio.run(run())
    assert result.valid is True
    assert result.is_revoked is False
    assert result.is_expired is False


def test_verify_unknown_code_is_not_found(services: Services) -> None:
    with pytest.raises(NotFound):
        asyncio.run(services.certificates.verify("CERT-NOPE-000000"))


def test_expiry_with_validity_window(clock: ManualClock) -> None:
    svc = registry.reset(clock=clock, validity_days=30)

    async def run():
        course = await _complete_course(svc)
        cert = await svc.certificates.request(LEARNER, course.id)
        before = await svc.certificates.verify(cert.code)
        clock.advance(days=31)
        after = await svc.certificates.verify(cert.code)
        return cert, before, after

    cert, before, after = asyncio.run(run())
    assert cert.expires_at == cert.issued_at + 30 * SECONDS_PER_DAY
    assert before.valid is True
    assert after.is_expired is True
    assert after.valid is False


def test_revoke_then_reissue(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        cert = await services.certificates.request(LEARNER, course.id)
        revoked = await services.certificates.revoke(ADMIN, cert.id, "plagiarism")
        with pytest.raises(AlreadyRevoked):
            await services.certificates.revoke(ADMIN, cert.id, "again")
        check = await services.certificates.verify(cert.code)
        reissued = await services.certificates.request(LEARNER, course.id)
        mine = await services.certificates.list_mine(LEARNER)
        everything = await services.certificates.list_all(learner_id=LEARNER)
        only_revoked = await services.certificates.list_all(is_revoked=True)
        return cert, revoked, check, reissued, mine, everything, only_revoked

    cert, revoked, check, reissued, mine, everything, only_revoked = asyncio.run(run())
    assert revoked.is_revoked is True
    assert revoked.revoked_reason == "plagiarism"
    assert check.is_revoked is True
    assert check.valid is False
    assert reissued.code != cert.code
    assert [c.id for c in mine] == [reissued.id]
    assert {c.id for c in everything} == {cert.id, reissued.id}
    assert [c.id for c in only_revoked] == [cert.id]


def test_revocation_notifies_the_holder(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        cert = await services.certificates.request(LEARNER, course.id)
        await services.certificates.revoke(ADMIN, cert.id, "error")
        kinds = []
        while (task := await services.queue.dequeue(NOTIFICATIONS_QUEUE)) is not None:
            kinds.append(task.payload["type"])
        return kinds

    assert asyncio.run(run()) == [
        "course_completed",
        "certificate_issued",
        "certificate_revoked",
    ]


def test_only_owner_or_admin_can_view(services: Services) -> None:
    async def run():
        course = await _complete_course(services)
        cert = await services.certificates.request(LEARNER, course.id)
        assert await services.certificates.get(LEARNER, cert.id)
        assert await services.certificates.get(ADMIN, cert.id, is_admin=True)
        await services.certificates.get("someone-else", cert.id)

    with pytest.raises(Forbidden):
        asyncio.run(run())


def test_code_collision_is_retried(services: Services, monkeypatch) -> None:
    codes = iter(["CERT-TAKEN-AAAAAA", "CERT-TAKEN-AAAAAA", "CERT-FRESH-BBBBBB"])
    monkeypatch.setattr(certificates, "generate_code", lambda now: next(codes))

    async def run():
        other = await _complete_course(services, "learner-2")
        await services.certificates.request("learner-2", other.id)
        course = await _complete_course(services)
        return await services.certificates.request(LEARNER, course.id)

    cert = asyncio.run(run())
    assert cert.code == "CERT-FRESH-BBBBBB"
