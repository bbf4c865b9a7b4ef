"""create assessment tables

Revision ID: 3b1f0c2a9d47
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f0c2a9d47"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_EMPTY_ARRAY = sa.text("'[]'::jsonb")


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "modules", postgresql.JSONB(), nullable=False, server_default=_EMPTY_ARRAY
        ),
        sa.Column("rating_average", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "quizzes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("module_id", sa.String(length=128), nullable=False),
        sa.Column("topic_id", sa.String(length=128), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column(
            "questions", postgresql.JSONB(), nullable=False, server_default=_EMPTY_ARRAY
        ),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("passing_score", sa.Float(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("shuffle_questions", sa.Boolean(), nullable=False),
        sa.Column("shuffle_options", sa.Boolean(), nullable=False),
        sa.Column("show_answers", sa.Boolean(), nullable=False),
        sa.Column("available_from", sa.Integer(), nullable=True),
        sa.Column("available_to", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_quizzes_course_id", "quizzes", ["course_id"])

    op.create_table(
        "assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("module_id", sa.String(length=128), nullable=False),
        sa.Column("topic_id", sa.String(length=128), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("passing_score", sa.Float(), nullable=False),
        sa.Column("due_at", sa.Integer(), nullable=True),
        sa.Column("allow_late_submission", sa.Boolean(), nullable=False),
        sa.Column("late_penalty_per_day", sa.Float(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column(
            "rubric", postgresql.JSONB(), nullable=False, server_default=_EMPTY_ARRAY
        ),
        sa.Column(
            "test_cases", postgresql.JSONB(), nullable=False, server_default=_EMPTY_ARRAY
        ),
        sa.Column("auto_grade", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_assignments_course_id", "assignments", ["course_id"])

    op.create_table(
        "enrollments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("learner_id", sa.String(length=320), nullable=False),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("enrolled_at", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "completed_topics",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("last_accessed_topic", sa.String(length=128), nullable=True),
        sa.Column("last_accessed_at", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("rating", postgresql.JSONB(), nullable=True),
        sa.UniqueConstraint("learner_id", "course_id"),
    )

    op.create_table(
        "topic_progress",
        sa.Column("learner_id", sa.String(length=320), primary_key=True),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            primary_key=True,
        ),
        sa.Column("topic_id", sa.String(length=128), primary_key=True),
        sa.Column("module_id", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
    )

    op.create_table(
        "quiz_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("learner_id", sa.String(length=320), nullable=False),
        sa.Column(
            "quiz_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("quizzes.id"),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("attempt_no", sa.Integer(), nullable=False),
        sa.Column("total_points", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "answers", postgresql.JSONB(), nullable=False, server_default=_EMPTY_ARRAY
        ),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("started_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("timed_out", sa.Boolean(), nullable=False, server_default="false"),
        sa.UniqueConstraint("learner_id", "quiz_id", "attempt_no"),
    )
    op.create_index(
        "uq_quiz_attempts_in_progress",
        "quiz_attempts",
        ["learner_id", "quiz_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        "assignment_submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("learner_id", sa.String(length=320), nullable=False),
        sa.Column(
            "assignment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("assignments.id"),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("attempt_no", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("submitted_at", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("language", sa.String(length=64), nullable=True),
        sa.Column(
            "files", postgresql.JSONB(), nullable=False, server_default=_EMPTY_ARRAY
        ),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("late_penalty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("raw_score", sa.Float(), nullable=True),
        sa.Column(
            "rubric_scores",
            postgresql.JSONB(),
            nullable=False,
            server_default=_EMPTY_ARRAY,
        ),
        sa.Column(
            "test_results",
            postgresql.JSONB(),
            nullable=False,
            server_default=_EMPTY_ARRAY,
        ),
        sa.Column("final_score", sa.Float(), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("graded_by", sa.String(length=320), nullable=True),
        sa.Column("graded_at", sa.Integer(), nullable=True),
        sa.UniqueConstraint("learner_id", "assignment_id", "attempt_no"),
    )

    op.create_table(
        "certificates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("learner_id", sa.String(length=320), nullable=False),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("holder_name", sa.String(length=255), nullable=False),
        sa.Column("course_title", sa.String(length=500), nullable=False),
        sa.Column("issued_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=False),
        sa.Column("final_score", sa.Integer(), nullable=False),
        sa.Column("grade", sa.String(length=8), nullable=False),
        sa.Column(
            "metadata", postgresql.JSONB(), nullable=False, server_default="{}"
        ),
        sa.Column("expires_at", sa.Integer(), nullable=True),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("revoked_reason", sa.Text(), nullable=True),
        sa.Column("revoked_at", sa.Integer(), nullable=True),
    )
    op.create_index(
        "uq_certificates_active",
        "certificates",
        ["learner_id", "course_id"],
        unique=True,
        postgresql_where=sa.text("NOT is_revoked"),
    )


def downgrade() -> None:
    op.drop_index("uq_certificates_active", table_name="certificates")
    op.drop_table("certificates")
    op.drop_table("assignment_submissions")
    op.drop_index("uq_quiz_attempts_in_progress", table_name="quiz_attempts")
    op.drop_table("quiz_attempts")
    op.drop_table("topic_progress")
    op.drop_table("enrollments")
    op.drop_index("ix_assignments_course_id", table_name="assignments")
    op.drop_table("assignments")
    op.drop_index("ix_quizzes_course_id", table_name="quizzes")
    op.drop_table("quizzes")
    op.drop_table("courses")
