"""Quiz presentation and attempt endpoints.

Answer keys never leave the service while an attempt can still be
influenced by them: the quiz view strips is_correct / correct_answer /
explanation, answer responses only say whether the answer was right when
the quiz reveals answers, and per-question detail on an attempt appears
only after it is completed.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, ServicesDep
from app.models.quiz import Quiz, QuizAttempt
from app.services.quiz_engine import AttemptResult

router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])


class OptionOut(BaseModel):
    id: UUID
    text: str


class QuestionOut(BaseModel):
    id: UUID
    prompt: str
    type: str
    points: int
    options: list[OptionOut]


class QuizOut(BaseModel):
    id: UUID
    course_id: UUID
    module_id: str
    title: str
    duration_minutes: int
    passing_score: float
    max_attempts: int
    total_points: int
    questions: list[QuestionOut]


class AttemptSummaryOut(BaseModel):
    id: UUID
    quiz_id: UUID
    course_id: UUID
    attempt_no: int
    status: str
    started_at: int
    completed_at: int | None
    score: int
    total_points: int
    percentage: float
    passed: bool
    time_spent: int
    timed_out: bool
    answered: int


class QuizViewOut(BaseModel):
    quiz: QuizOut
    attempts: list[AttemptSummaryOut]
    attempts_used: int
    can_attempt: bool
    best_score: float | None
    active_attempt_id: UUID | None


class QuizSummaryOut(BaseModel):
    quiz: QuizOut
    attempts_used: int
    can_attempt: bool
    best_score: float | None
    last_attempt: AttemptSummaryOut | None


class AnswerIn(BaseModel):
    question_id: UUID
    selected_option: UUID | None = None
    answer: str | None = Field(default=None, max_length=10_000)
    time_taken: int | None = Field(default=None, ge=0)


class AnswerOut(BaseModel):
    question_id: UUID
    recorded: bool = True
    is_correct: bool | None = None
    points_earned: int | None = None


class QuestionResultOut(BaseModel):
    question_id: UUID
    prompt: str
    selected_option: UUID | None
    answer: str | None
    is_correct: bool
    points_earned: int
    correct_option: UUID | None
    correct_answer: str | None
    explanation: str | None


class AttemptDetailOut(AttemptSummaryOut):
    results: list[QuestionResultOut] | None = None


def quiz_out(quiz: Quiz) -> QuizOut:
    return QuizOut(
        id=quiz.id,
        course_id=quiz.course_id,
        module_id=quiz.module_id,
        title=quiz.title,
        duration_minutes=quiz.duration_minutes,
        passing_score=quiz.passing_score,
        max_attempts=quiz.max_attempts,
        total_points=quiz.total_points,
        questions=[
            QuestionOut(
                id=q.id,
                prompt=q.prompt,
                type=q.type,
                points=q.points,
                options=[OptionOut(id=o.id, text=o.text) for o in q.options],
            )
            for q in quiz.questions
        ],
    )


def attempt_out(a: QuizAttempt) -> AttemptSummaryOut:
    return AttemptSummaryOut(
        id=a.id,
        quiz_id=a.quiz_id,
        course_id=a.course_id,
        attempt_no=a.attempt_no,
        status=a.status,
        started_at=a.started_at,
        completed_at=a.completed_at,
        score=a.score,
        total_points=a.total_points,
        percentage=a.percentage,
        passed=a.passed,
        time_spent=a.time_spent,
        timed_out=a.timed_out,
        answered=len(a.answers),
    )


def attempt_detail_out(result: AttemptResult) -> AttemptDetailOut:
    detail = AttemptDetailOut(**attempt_out(result.attempt).model_dump())
    if not result.reveals_answers:
        return detail

    results = []
    for answer in result.attempt.answers:
        question = result.quiz.question(answer.question_id)
        if question is None:
            continue
        correct = next((o for o in question.options if o.is_correct), None)
        results.append(
            QuestionResultOut(
                question_id=question.id,
                prompt=question.prompt,
                selected_option=answer.selected_option,
                answer=answer.answer,
                is_correct=answer.is_correct,
                points_earned=answer.points_earned,
                correct_option=correct.id if correct else None,
                correct_answer=question.correct_answer,
                explanation=question.explanation,
            )
        )
    detail.results = results
    return detail


@router.get("/attempts/{attempt_id}", response_model=AttemptDetailOut)
async def get_attempt(
    attempt_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> AttemptDetailOut:
    result = await svc.quizzes.get_attempt(
        principal.user_id, attempt_id, is_admin=principal.is_admin()
    )
    return attempt_detail_out(result)


@router.post("/attempts/{attempt_id}/answers", response_model=AnswerOut)
async def submit_answer(
    attempt_id: UUID, payload: AnswerIn, principal: CurrentUser, svc: ServicesDep
) -> AnswerOut:
    outcome = await svc.quizzes.submit_answer(
        principal.user_id,
        attempt_id,
        payload.question_id,
        selected_option=payload.selected_option,
        answer=payload.answer,
        time_taken=payload.time_taken,
    )
    if not outcome.show_answers:
        return AnswerOut(question_id=outcome.answer.question_id)
    return AnswerOut(
        question_id=outcome.answer.question_id,
        is_correct=outcome.answer.is_correct,
        points_earned=outcome.answer.points_earned,
    )


@router.post("/attempts/{attempt_id}/complete", response_model=AttemptSummaryOut)
async def complete_attempt(
    attempt_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> AttemptSummaryOut:
    return attempt_out(await svc.quizzes.complete_attempt(principal.user_id, attempt_id))


@router.post("/attempts/{attempt_id}/abandon", response_model=AttemptSummaryOut)
async def abandon_attempt(
    attempt_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> AttemptSummaryOut:
    return attempt_out(await svc.quizzes.abandon_attempt(principal.user_id, attempt_id))


@router.get("/courses/{course_id}", response_model=list[QuizSummaryOut])
async def list_course_quizzes(
    course_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> list[QuizSummaryOut]:
    summaries = await svc.quizzes.list_course_quizzes(principal.user_id, course_id)
    return [
        QuizSummaryOut(
            quiz=quiz_out(s.quiz),
            attempts_used=s.attempts_used,
            can_attempt=s.can_attempt,
            best_score=s.best_score,
            last_attempt=attempt_out(s.last_attempt) if s.last_attempt else None,
        )
        for s in summaries
    ]


@router.get("/courses/{course_id}/my-attempts", response_model=list[AttemptSummaryOut])
async def list_my_attempts(
    course_id: UUID,
    principal: CurrentUser,
    svc: ServicesDep,
    attempt_status: Annotated[str | None, Query(alias="status")] = None,
) -> list[AttemptSummaryOut]:
    attempts = await svc.quizzes.list_attempts(principal.user_id, course_id, attempt_status)
    return [attempt_out(a) for a in attempts]


@router.get("/{quiz_id}", response_model=QuizViewOut)
async def get_quiz(quiz_id: UUID, principal: CurrentUser, svc: ServicesDep) -> QuizViewOut:
    view = await svc.quizzes.present_quiz(principal.user_id, quiz_id)
    return QuizViewOut(
        quiz=quiz_out(view.quiz),
        attempts=[attempt_out(a) for a in view.attempts],
        attempts_used=view.attempts_used,
        can_attempt=view.can_attempt,
        best_score=view.best_score,
        active_attempt_id=view.active_attempt_id,
    )


@router.post(
    "/{quiz_id}/attempts",
    response_model=AttemptSummaryOut,
    status_code=status.HTTP_201_CREATED,
)
async def start_attempt(
    quiz_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> AttemptSummaryOut:
    return attempt_out(await svc.quizzes.start_attempt(principal.user_id, quiz_id))
