"""QuizAttemptEngine: the quiz-attempt state machine.

    start ──> in_progress ──answer──> in_progress ──complete──> completed
                    │                                  (or time expiry)
                    └──────────────abandon──────────────> abandoned

Rules enforced here:
  - at most one in_progress attempt per (learner, quiz); the repository's
    guarded create is what closes the race between two concurrent starts
  - attempts are numbered 1, 2, 3... per (learner, quiz) and capped by
    quiz.max_attempts (0 = unlimited)
  - each question is answered at most once, and correctness is always
    judged against the stored answer key
  - completion is the single scoring moment; a completed attempt is never
    re-scored
  - a timed quiz attempt past its duration is force-completed at the next
    interaction with it (or by the worker's periodic sweep) instead of
    quietly accepting more answers
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from uuid import UUID

from app.core.clock import Clock
from app.core.errors import (
    AssessmentError,
    AttemptNotActive,
    DuplicateAnswer,
    Forbidden,
    NotFound,
    ValidationError,
)
from app.core.metrics import QUIZ_ATTEMPTS
from app.models.quiz import Question, Quiz, QuizAnswer, QuizAttempt
from app.repos.enrollment_repo import EnrollmentRepo
from app.repos.quiz_repo import AttemptRepo, QuizRepo
from app.services import scoring
from app.services.enrollments import require_enrollment
from app.services.notifier import Notifier
from app.services.progress import ProgressTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QuizView:
    """A quiz as presented to one learner, with their attempt history."""

    quiz: Quiz  # questions/options already shuffled per the quiz flags
    attempts: tuple[QuizAttempt, ...]
    attempts_used: int
    can_attempt: bool
    best_score: float | None
    active_attempt_id: UUID | None


@dataclass(frozen=True, slots=True)
class QuizSummary:
    """One quiz of a course listing, with the learner's standing on it."""

    quiz: Quiz
    attempts_used: int
    can_attempt: bool
    best_score: float | None
    last_attempt: QuizAttempt | None


@dataclass(frozen=True, slots=True)
class AnswerOutcome:
    attempt: QuizAttempt
    answer: QuizAnswer
    show_answers: bool


@dataclass(frozen=True, slots=True)
class AttemptResult:
    attempt: QuizAttempt
    quiz: Quiz

    @property
    def reveals_answers(self) -> bool:
        return self.attempt.status == "completed" and self.quiz.show_answers


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _normalize(text: str | None) -> str:
    return " ".join((text or "").split()).lower()


def evaluate_answer(
    question: Question,
    *,
    selected_option: UUID | None,
    answer: str | None,
    answered_at: int,
    time_taken: int | None = None,
) -> QuizAnswer:
    """Judge one response against the question's own answer key."""
    if question.type == "multiple_choice":
        option = question.option(selected_option)
        if selected_option is not None and option is None:
            raise ValidationError(
                "Selected option does not belong to this question",
                question_id=str(question.id),
            )
        is_correct = option is not None and option.is_correct
    elif question.correct_answer is None:
        is_correct = False
    else:
        is_correct = _normalize(answer) == _normalize(question.correct_answer)

    return QuizAnswer(
        question_id=question.id,
        is_correct=is_correct,
        points_earned=question.points if is_correct else 0,
        answered_at=answered_at,
        selected_option=selected_option,
        answer=answer,
        time_taken=time_taken,
    )


def score_attempt(
    attempt: QuizAttempt, passing_score: float, now: int, *, timed_out: bool = False
) -> QuizAttempt:
    """Terminal scoring step: in_progress -> completed."""
    score = sum(a.points_earned for a in attempt.answers)
    pct = scoring.percentage(score, attempt.total_points)
    return replace(
        attempt,
        status="completed",
        score=score,
        percentage=round(pct, 2),
        passed=scoring.passed(pct, passing_score),
        completed_at=now,
        time_spent=max(now - attempt.started_at, 0),
        timed_out=timed_out,
    )


def is_overdue(attempt: QuizAttempt, quiz: Quiz, now: int) -> bool:
    if not attempt.is_active or quiz.duration_minutes <= 0:
        return False
    return now - attempt.started_at >= quiz.duration_seconds


def is_available(quiz: Quiz, now: int) -> bool:
    if quiz.available_from is not None and now < quiz.available_from:
        return False
    return quiz.available_to is None or now <= quiz.available_to


def can_start(quiz: Quiz, attempts: list[QuizAttempt], now: int) -> bool:
    """Whether a start right now would succeed for this attempt history."""
    if any(a.is_active for a in attempts) or not is_available(quiz, now):
        return False
    return quiz.max_attempts == 0 or len(attempts) < quiz.max_attempts


def best_percentage(attempts: list[QuizAttempt]) -> float | None:
    return max((a.percentage for a in attempts if a.status == "completed"), default=None)


def shuffled_for_presentation(quiz: Quiz, rng: random.Random) -> Quiz:
    """Reorder questions/options per the quiz flags.  Scoring never sees this."""
    questions = list(quiz.questions)
    if quiz.shuffle_questions:
        rng.shuffle(questions)
    if quiz.shuffle_options:
        questions = [
            replace(q, options=tuple(rng.sample(q.options, len(q.options))))
            for q in questions
        ]
    return replace(quiz, questions=tuple(questions))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class QuizAttemptEngine:
    def __init__(
        self,
        *,
        quizzes: QuizRepo,
        attempts: AttemptRepo,
        enrollments: EnrollmentRepo,
        progress: ProgressTracker,
        clock: Clock,
        notifier: Notifier,
        rng: random.Random | None = None,
    ) -> None:
        self._quizzes = quizzes
        self._attempts = attempts
        self._enrollments = enrollments
        self._progress = progress
        self._clock = clock
        self._notifier = notifier
        self._rng = rng or random.Random()

    # --- reads ---

    async def present_quiz(self, learner_id: str, quiz_id: UUID) -> QuizView:
        quiz = await self._quiz(quiz_id)
        await require_enrollment(self._enrollments, learner_id, quiz.course_id)

        attempts = await self._attempts.list_for_quiz(learner_id, quiz_id)
        active = next((a for a in attempts if a.is_active), None)
        return QuizView(
            quiz=shuffled_for_presentation(quiz, self._rng),
            attempts=tuple(attempts),
            attempts_used=len(attempts),
            can_attempt=can_start(quiz, attempts, self._clock.now()),
            best_score=best_percentage(attempts),
            active_attempt_id=active.id if active else None,
        )

    async def list_course_quizzes(self, learner_id: str, course_id: UUID) -> list[QuizSummary]:
        await require_enrollment(self._enrollments, learner_id, course_id)
        now = self._clock.now()

        by_quiz: dict[UUID, list[QuizAttempt]] = {}
        for attempt in await self._attempts.list_for_course(learner_id, course_id, None):
            by_quiz.setdefault(attempt.quiz_id, []).append(attempt)

        quizzes = await self._quizzes.list_for_course(course_id)
        summaries = []
        for quiz in sorted(quizzes, key=lambda q: (q.module_id, q.title)):
            attempts = by_quiz.get(quiz.id, [])
            summaries.append(
                QuizSummary(
                    quiz=quiz,
                    attempts_used=len(attempts),
                    can_attempt=can_start(quiz, attempts, now),
                    best_score=best_percentage(attempts),
                    last_attempt=max(attempts, key=lambda a: a.attempt_no, default=None),
                )
            )
        return summaries

    async def get_attempt(
        self, learner_id: str, attempt_id: UUID, *, is_admin: bool = False
    ) -> AttemptResult:
        attempt = await self._attempt(attempt_id)
        if attempt.learner_id != learner_id and not is_admin:
            raise Forbidden("Not authorized to view this attempt")
        quiz = await self._quiz(attempt.quiz_id, active_only=False)
        if is_overdue(attempt, quiz, self._clock.now()):
            attempt = await self._finish(attempt.id, quiz, timed_out=True)
        return AttemptResult(attempt=attempt, quiz=quiz)

    async def list_attempts(
        self, learner_id: str, course_id: UUID, status: str | None = None
    ) -> list[QuizAttempt]:
        return await self._attempts.list_for_course(learner_id, course_id, status)

    # --- transitions ---

    async def start_attempt(self, learner_id: str, quiz_id: UUID) -> QuizAttempt:
        quiz = await self._quiz(quiz_id)
        await require_enrollment(self._enrollments, learner_id, quiz.course_id)
        now = self._clock.now()

        if quiz.available_from is not None and now < quiz.available_from:
            raise Forbidden("Quiz is not available yet", available_from=quiz.available_from)
        if quiz.available_to is not None and now > quiz.available_to:
            raise Forbidden("Quiz is no longer available", available_to=quiz.available_to)

        # An overdue open attempt must not block a fresh start forever.
        active = await self._attempts.find_active(learner_id, quiz_id)
        if active is not None and is_overdue(active, quiz, now):
            await self._finish(active.id, quiz, timed_out=True)

        attempt = await self._attempts.create(
            QuizAttempt.new(
                learner_id=learner_id,
                quiz_id=quiz_id,
                course_id=quiz.course_id,
                attempt_no=0,  # assigned by the repository
                total_points=quiz.total_points,
                started_at=now,
            ),
            quiz.max_attempts,
        )
        QUIZ_ATTEMPTS.labels(outcome="started").inc()
        logger.info(
            "Attempt started attempt=%s learner=%s quiz=%s no=%d",
            attempt.id,
            learner_id,
            quiz_id,
            attempt.attempt_no,
        )
        return attempt

    async def submit_answer(
        self,
        learner_id: str,
        attempt_id: UUID,
        question_id: UUID,
        *,
        selected_option: UUID | None = None,
        answer: str | None = None,
        time_taken: int | None = None,
    ) -> AnswerOutcome:
        attempt = await self._owned_attempt(learner_id, attempt_id)
        quiz = await self._quiz(attempt.quiz_id, active_only=False)
        now = self._clock.now()

        if is_overdue(attempt, quiz, now):
            await self._finish(attempt.id, quiz, timed_out=True)
            raise AttemptNotActive(attempt.id, "completed", reason="time expired")

        question = quiz.question(question_id)
        if question is None:
            raise NotFound("question", question_id)

        evaluated = evaluate_answer(
            question,
            selected_option=selected_option,
            answer=answer,
            answered_at=now,
            time_taken=time_taken,
        )

        def _append(current: QuizAttempt) -> QuizAttempt:
            if not current.is_active:
                raise AttemptNotActive(current.id, current.status)
            if current.has_answered(question_id):
                raise DuplicateAnswer(question_id)
            return replace(current, answers=(*current.answers, evaluated))

        updated = await self._attempts.update(attempt_id, _append)
        logger.info(
            "Answer recorded attempt=%s question=%s correct=%s",
            attempt_id,
            question_id,
            evaluated.is_correct,
        )
        return AnswerOutcome(
            attempt=updated, answer=evaluated, show_answers=quiz.show_answers
        )

    async def complete_attempt(self, learner_id: str, attempt_id: UUID) -> QuizAttempt:
        attempt = await self._owned_attempt(learner_id, attempt_id)
        quiz = await self._quiz(attempt.quiz_id, active_only=False)
        timed_out = is_overdue(attempt, quiz, self._clock.now())
        return await self._finish(attempt_id, quiz, timed_out=timed_out)

    async def abandon_attempt(self, learner_id: str, attempt_id: UUID) -> QuizAttempt:
        await self._owned_attempt(learner_id, attempt_id)
        now = self._clock.now()

        def _abandon(current: QuizAttempt) -> QuizAttempt:
            if not current.is_active:
                raise AttemptNotActive(current.id, current.status)
            return replace(
                current,
                status="abandoned",
                completed_at=now,
                time_spent=max(now - current.started_at, 0),
            )

        updated = await self._attempts.update(attempt_id, _abandon)
        QUIZ_ATTEMPTS.labels(outcome="abandoned").inc()
        logger.info("Attempt abandoned attempt=%s learner=%s", attempt_id, learner_id)
        return updated

    async def expire_overdue_attempts(self) -> int:
        """Force-complete every timed attempt that has run past its duration."""
        now = self._clock.now()
        expired = 0
        quizzes: dict[UUID, Quiz | None] = {}
        for attempt in await self._attempts.list_in_progress():
            if attempt.quiz_id not in quizzes:
                quizzes[attempt.quiz_id] = await self._quizzes.get(attempt.quiz_id)
            quiz = quizzes[attempt.quiz_id]
            if quiz is None or not is_overdue(attempt, quiz, now):
                continue
            try:
                await self._finish(attempt.id, quiz, timed_out=True)
            except AttemptNotActive:
                continue  # the learner finished it first
            expired += 1
        if expired:
            logger.info("Expired %d overdue quiz attempts", expired)
        return expired

    # --- internals ---

    async def _finish(self, attempt_id: UUID, quiz: Quiz, *, timed_out: bool) -> QuizAttempt:
        now = self._clock.now()

        def _score(current: QuizAttempt) -> QuizAttempt:
            if not current.is_active:
                raise AttemptNotActive(current.id, current.status)
            return score_attempt(current, quiz.passing_score, now, timed_out=timed_out)

        attempt = await self._attempts.update(attempt_id, _score)

        QUIZ_ATTEMPTS.labels(outcome="passed" if attempt.passed else "failed").inc()
        if timed_out:
            QUIZ_ATTEMPTS.labels(outcome="expired").inc()
        logger.info(
            "Attempt completed attempt=%s learner=%s score=%d/%d pct=%.2f passed=%s timed_out=%s",
            attempt.id,
            attempt.learner_id,
            attempt.score,
            attempt.total_points,
            attempt.percentage,
            attempt.passed,
            timed_out,
        )

        await self._notifier.notify(
            attempt.learner_id,
            "quiz_passed" if attempt.passed else "quiz_completed",
            "Quiz Passed!" if attempt.passed else "Quiz Completed",
            f'You scored {attempt.percentage:g}% on "{quiz.title}"',
            link=f"/quizzes/attempts/{attempt.id}",
        )

        if attempt.passed and quiz.topic_id:
            await self._mark_topic(attempt.learner_id, quiz)
        return attempt

    async def _mark_topic(self, learner_id: str, quiz: Quiz) -> None:
        # The attempt is already stored as completed; a progress failure
        # (e.g. the topic was removed from the outline) must not undo it.
        try:
            await self._progress.complete_topic(learner_id, quiz.course_id, quiz.topic_id)
        except AssessmentError as e:
            logger.warning(
                "Could not mark topic=%s complete for learner=%s after quiz=%s: %s",
                quiz.topic_id,
                learner_id,
                quiz.id,
                e.message,
            )

    async def _quiz(self, quiz_id: UUID, *, active_only: bool = True) -> Quiz:
        quiz = await self._quizzes.get(quiz_id)
        if quiz is None or (active_only and not quiz.is_active):
            raise NotFound("quiz", quiz_id)
        return quiz

    async def _attempt(self, attempt_id: UUID) -> QuizAttempt:
        attempt = await self._attempts.get(attempt_id)
        if attempt is None:
            raise NotFound("quiz attempt", attempt_id)
        return attempt

    async def _owned_attempt(self, learner_id: str, attempt_id: UUID) -> QuizAttempt:
        attempt = await self._attempt(attempt_id)
        if attempt.learner_id != learner_id:
            raise Forbidden("Not authorized to access this attempt")
        return attempt
