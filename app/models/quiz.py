from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

QUESTION_TYPES = ("multiple_choice", "true_false", "code")
ATTEMPT_STATUSES = ("in_progress", "completed", "abandoned")


@dataclass(frozen=True, slots=True)
class QuestionOption:
    id: UUID
    text: str
    is_correct: bool = False


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    prompt: str
    type: str = "multiple_choice"  # multiple_choice|true_false|code
    points: int = 1
    options: tuple[QuestionOption, ...] = ()
    correct_answer: str | None = None  # true_false / code
    explanation: str | None = None

    @staticmethod
    def new(
        *,
        prompt: str,
        type: str = "multiple_choice",
        points: int = 1,
        options: tuple[QuestionOption, ...] = (),
        correct_answer: str | None = None,
        explanation: str | None = None,
    ) -> Question:
        return Question(
            id=uuid4(),
            prompt=prompt,
            type=type,
            points=points,
            options=options,
            correct_answer=correct_answer,
            explanation=explanation,
        )

    def option(self, option_id: UUID | None) -> QuestionOption | None:
        return next((o for o in self.options if o.id == option_id), None)


@dataclass(frozen=True, slots=True)
class Quiz:
    """Authored quiz.  Read-only input to the attempt engine."""

    id: UUID
    course_id: UUID
    module_id: str
    title: str
    questions: tuple[Question, ...] = ()
    topic_id: str | None = None
    duration_minutes: int = 30  # 0 = untimed
    passing_score: float = 70.0  # percent
    max_attempts: int = 3  # 0 = unlimited
    shuffle_questions: bool = True
    shuffle_options: bool = True
    show_answers: bool = True
    available_from: int | None = None
    available_to: int | None = None
    is_active: bool = True

    @staticmethod
    def new(
        *,
        course_id: UUID,
        module_id: str,
        title: str,
        questions: tuple[Question, ...] = (),
        topic_id: str | None = None,
        duration_minutes: int = 30,
        passing_score: float = 70.0,
        max_attempts: int = 3,
        shuffle_questions: bool = True,
        shuffle_options: bool = True,
        show_answers: bool = True,
    ) -> Quiz:
        return Quiz(
            id=uuid4(),
            course_id=course_id,
            module_id=module_id,
            title=title,
            questions=questions,
            topic_id=topic_id,
            duration_minutes=duration_minutes,
            passing_score=passing_score,
            max_attempts=max_attempts,
            shuffle_questions=shuffle_questions,
            shuffle_options=shuffle_options,
            show_answers=show_answers,
        )

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    def question(self, question_id: UUID) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)


@dataclass(frozen=True, slots=True)
class QuizAnswer:
    question_id: UUID
    is_correct: bool
    points_earned: int
    answered_at: int
    selected_option: UUID | None = None
    answer: str | None = None
    time_taken: int | None = None


@dataclass(frozen=True, slots=True)
class QuizAttempt:
    """One learner's timed run through a quiz.

    Scoring fields (score, percentage, passed) are only meaningful once
    status == "completed".
    """

    id: UUID
    learner_id: str
    quiz_id: UUID
    course_id: UUID
    attempt_no: int
    total_points: int
    started_at: int
    status: str = "in_progress"  # in_progress|completed|abandoned
    answers: tuple[QuizAnswer, ...] = ()
    score: int = 0
    percentage: float = 0.0
    passed: bool = False
    completed_at: int | None = None
    time_spent: int = 0
    timed_out: bool = False

    @staticmethod
    def new(
        *,
        learner_id: str,
        quiz_id: UUID,
        course_id: UUID,
        attempt_no: int,
        total_points: int,
        started_at: int,
    ) -> QuizAttempt:
        return QuizAttempt(
            id=uuid4(),
            learner_id=learner_id,
            quiz_id=quiz_id,
            course_id=course_id,
            attempt_no=attempt_no,
            total_points=total_points,
            started_at=started_at,
        )

    @property
    def is_active(self) -> bool:
        return self.status == "in_progress"

    def has_answered(self, question_id: UUID) -> bool:
        return any(a.question_id == question_id for a in self.answers)
