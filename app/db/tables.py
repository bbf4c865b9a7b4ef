"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

Owned collections (quiz questions, attempt answers, rubric scores...) are
JSONB arrays on their parent row: they are only ever read and written
together with that row.

Timestamps are integer Unix seconds, the same as the domain models.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

# --- Authored content (read-only for the engine) ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="published"
    )  # draft|published|retired
    modules: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    rating_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class QuizRow(Base):
    __tablename__ = "quizzes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False, index=True
    )
    module_id: Mapped[str] = mapped_column(String(128), nullable=False)
    topic_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    questions: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    passing_score: Mapped[float] = mapped_column(Float, nullable=False, default=70.0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    shuffle_questions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    shuffle_options: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_answers: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    available_from: Mapped[int | None] = mapped_column(Integer, nullable=True)
    available_to: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AssignmentRow(Base):
    __tablename__ = "assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False, index=True
    )
    module_id: Mapped[str] = mapped_column(String(128), nullable=False)
    topic_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="code"
    )  # code|essay|project|upload
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    passing_score: Mapped[float] = mapped_column(Float, nullable=False, default=60.0)
    due_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    allow_late_submission: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    late_penalty_per_day: Mapped[float] = mapped_column(
        Float, nullable=False, default=10.0
    )
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    rubric: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    test_cases: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    auto_grade: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# --- Learner state ---


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    learner_id: Mapped[str] = mapped_column(String(320), nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    enrolled_at: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active"
    )  # active|completed|paused|dropped
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_topics: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=list
    )
    last_accessed_topic: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_accessed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (UniqueConstraint("learner_id", "course_id"),)


class TopicProgressRow(Base):
    __tablename__ = "topic_progress"

    learner_id: Mapped[str] = mapped_column(String(320), primary_key=True)
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), primary_key=True
    )
    topic_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    module_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="not_started"
    )  # not_started|in_progress|completed
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")


class QuizAttemptRow(Base):
    __tablename__ = "quiz_attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    learner_id: Mapped[str] = mapped_column(String(320), nullable=False)
    quiz_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("quizzes.id"), nullable=False
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    attempt_no: Mapped[int] = mapped_column(Integer, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="in_progress"
    )  # in_progress|completed|abandoned
    answers: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timed_out: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("learner_id", "quiz_id", "attempt_no"),
        # At most one open attempt per learner and quiz
        Index(
            "uq_quiz_attempts_in_progress",
            "learner_id",
            "quiz_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
        ),
    )


class SubmissionRow(Base):
    __tablename__ = "assignment_submissions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    learner_id: Mapped[str] = mapped_column(String(320), nullable=False)
    assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assignments.id"), nullable=False
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    attempt_no: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="submitted"
    )  # submitted|grading|graded|returned
    submitted_at: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    code: Mapped[str | None] = mapped_column(Text, nullable=True)
    language: Mapped[str | None] = mapped_column(String(64), nullable=True)
    files: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    late_penalty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    raw_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    rubric_scores: Mapped[list[dict]] = mapped_column(
        JSONB, nullable=False, default=list
    )
    test_results: Mapped[list[dict]] = mapped_column(
        JSONB, nullable=False, default=list
    )
    final_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    graded_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    graded_at: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (UniqueConstraint("learner_id", "assignment_id", "attempt_no"),)


# --- Certificates ---


class CertificateRow(Base):
    __tablename__ = "certificates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    learner_id: Mapped[str] = mapped_column(String(320), nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    holder_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    course_title: Mapped[str] = mapped_column(String(500), nullable=False)
    issued_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[int] = mapped_column(Integer, nullable=False)
    final_score: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[str] = mapped_column(String(8), nullable=False)
    # "metadata" is reserved on declarative classes
    snapshot: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )
    expires_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    revoked_at: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        # At most one live certificate per learner and course
        Index(
            "uq_certificates_active",
            "learner_id",
            "course_id",
            unique=True,
            postgresql_where=text("NOT is_revoked"),
        ),
    )
