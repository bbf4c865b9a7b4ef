"""Wires repositories, collaborators, and engines together.

Backends are chosen the same way engine.py and redis.py choose theirs:
when DATABASE_URL is configured every repository is the PostgreSQL one,
otherwise everything lives in process memory.  The cache and the task
queue follow REDIS_URL through their own module-level singletons.

``services`` is rebuilt by reset(); callers should read it through the
module (``registry.services``) rather than importing the name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from app.core.clock import Clock, SystemClock
from app.core.config import SETTINGS
from app.db.engine import async_session_factory
from app.models.assignment import Assignment, RubricCriterion
from app.models.course import Course, CourseModule, Topic
from app.models.quiz import Question, QuestionOption, Quiz
from app.repos.assignment_repo import (
    AssignmentRepo,
    InMemoryAssignmentRepo,
    InMemorySubmissionRepo,
    SubmissionRepo,
)
from app.repos.certificate_repo import CertificateRepo, InMemoryCertificateRepo
from app.repos.course_repo import CourseRepo, InMemoryCourseRepo
from app.repos.enrollment_repo import (
    EnrollmentRepo,
    InMemoryEnrollmentRepo,
    InMemoryTopicProgressRepo,
    TopicProgressRepo,
)
from app.repos.quiz_repo import (
    AttemptRepo,
    InMemoryAttemptRepo,
    InMemoryQuizRepo,
    QuizRepo,
)
from app.services import scoring
from app.services.cache import CacheService, cache_service
from app.services.certificates import CertificateIssuer
from app.services.enrollments import EnrollmentService
from app.services.grading import AssignmentGradingPipeline, TestCaseRunner
from app.services.notifier import Notifier, QueueNotifier
from app.services.progress import ProgressTracker
from app.services.quiz_engine import QuizAttemptEngine
from app.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)

SAMPLE_COURSE_ID = UUID("00000000-0000-0000-0000-000000000001")
SAMPLE_QUIZ_ID = UUID("00000000-0000-0000-0000-000000000101")
SAMPLE_ASSIGNMENT_ID = UUID("00000000-0000-0000-0000-000000000201")


@dataclass(frozen=True, slots=True)
class Repos:
    courses: CourseRepo
    quizzes: QuizRepo
    attempts: AttemptRepo
    assignments: AssignmentRepo
    submissions: SubmissionRepo
    enrollments: EnrollmentRepo
    topics: TopicProgressRepo
    certificates: CertificateRepo


@dataclass(frozen=True, slots=True)
class Services:
    repos: Repos
    clock: Clock
    cache: CacheService
    queue: TaskQueue
    enrollments: EnrollmentService
    progress: ProgressTracker
    quizzes: QuizAttemptEngine
    grading: AssignmentGradingPipeline
    certificates: CertificateIssuer


def build_repos(session_factory=None) -> Repos:
    if session_factory is None:
        return Repos(
            courses=InMemoryCourseRepo(),
            quizzes=InMemoryQuizRepo(),
            attempts=InMemoryAttemptRepo(),
            assignments=InMemoryAssignmentRepo(),
            submissions=InMemorySubmissionRepo(),
            enrollments=InMemoryEnrollmentRepo(),
            topics=InMemoryTopicProgressRepo(),
            certificates=InMemoryCertificateRepo(),
        )

    # Imported lazily so the in-memory path never touches the ORM layer
    from app.repos.pg_assignment_repo import PgAssignmentRepo, PgSubmissionRepo
    from app.repos.pg_certificate_repo import PgCertificateRepo
    from app.repos.pg_course_repo import PgCourseRepo
    from app.repos.pg_enrollment_repo import PgEnrollmentRepo, PgTopicProgressRepo
    from app.repos.pg_quiz_repo import PgAttemptRepo, PgQuizRepo

    return Repos(
        courses=PgCourseRepo(session_factory),
        quizzes=PgQuizRepo(session_factory),
        attempts=PgAttemptRepo(session_factory),
        assignments=PgAssignmentRepo(session_factory),
        submissions=PgSubmissionRepo(session_factory),
        enrollments=PgEnrollmentRepo(session_factory),
        topics=PgTopicProgressRepo(session_factory),
        certificates=PgCertificateRepo(session_factory),
    )


def build_services(
    *,
    repos: Repos | None = None,
    clock: Clock | None = None,
    cache: CacheService | None = None,
    queue: TaskQueue | None = None,
    notifier: Notifier | None = None,
    runner: TestCaseRunner | None = None,
    weights: scoring.ScoreWeights | None = None,
    validity_days: int | None = None,
) -> Services:
    repos = repos or build_repos(async_session_factory)
    clock = clock or SystemClock()
    cache = cache or cache_service
    queue = queue or task_queue
    notifier = notifier or QueueNotifier(queue)
    weights = weights or scoring.ScoreWeights(
        quiz=SETTINGS.cert_quiz_weight, assignment=SETTINGS.cert_assignment_weight
    )

    progress = ProgressTracker(
        courses=repos.courses,
        enrollments=repos.enrollments,
        topics=repos.topics,
        clock=clock,
        notifier=notifier,
        cache=cache,
    )
    return Services(
        repos=repos,
        clock=clock,
        cache=cache,
        queue=queue,
        enrollments=EnrollmentService(
            courses=repos.courses,
            enrollments=repos.enrollments,
            clock=clock,
            cache=cache,
        ),
        progress=progress,
        quizzes=QuizAttemptEngine(
            quizzes=repos.quizzes,
            attempts=repos.attempts,
            enrollments=repos.enrollments,
            progress=progress,
            clock=clock,
            notifier=notifier,
        ),
        grading=AssignmentGradingPipeline(
            assignments=repos.assignments,
            submissions=repos.submissions,
            enrollments=repos.enrollments,
            progress=progress,
            clock=clock,
            notifier=notifier,
            queue=queue,
            runner=runner,
        ),
        certificates=CertificateIssuer(
            courses=repos.courses,
            enrollments=repos.enrollments,
            topics=repos.topics,
            attempts=repos.attempts,
            submissions=repos.submissions,
            certificates=repos.certificates,
            clock=clock,
            notifier=notifier,
            weights=weights,
            validity_days=(
                SETTINGS.cert_validity_days if validity_days is None else validity_days
            ),
        ),
    )


services = build_services()


def reset(**overrides) -> Services:
    """Rebuild the module-level services (fresh in-memory state in tests)."""
    global services
    overrides.setdefault("repos", build_repos())
    services = build_services(**overrides)
    return services


async def seed_sample_content(target: Services | None = None) -> None:
    """Load one small course with a quiz and an assignment for local dev."""
    repos = (target or services).repos
    if await repos.courses.get(SAMPLE_COURSE_ID) is not None:
        return

    course = Course(
        id=SAMPLE_COURSE_ID,
        slug="intro-to-python",
        title="Introduction to Python",
        modules=(
            CourseModule(
                id="m1",
                title="Getting started",
                position=1,
                topics=(
                    Topic(id="m1-t1", title="Installing Python", position=1),
                    Topic(id="m1-t2", title="Your first script", position=2),
                ),
            ),
            CourseModule(
                id="m2",
                title="Control flow",
                position=2,
                topics=(
                    Topic(id="m2-t1", title="Conditionals", position=1),
                    Topic(id="m2-t2", title="Loops", position=2),
                ),
            ),
        ),
    )
    await repos.courses.add(course)

    quiz = Quiz(
        id=SAMPLE_QUIZ_ID,
        course_id=SAMPLE_COURSE_ID,
        module_id="m1",
        topic_id="m1-t2",
        title="Python basics check",
        questions=(
            Question.new(
                prompt="Which keyword defines a function?",
                options=(
                    QuestionOption(id=UUID(int=1), text="def", is_correct=True),
                    QuestionOption(id=UUID(int=2), text="func"),
                    QuestionOption(id=UUID(int=3), text="lambda"),
                ),
                explanation="Named functions are declared with def.",
            ),
            Question.new(
                prompt="Python lists are immutable.",
                type="true_false",
                correct_answer="false",
            ),
        ),
        duration_minutes=15,
    )
    await repos.quizzes.add(quiz)

    assignment = Assignment(
        id=SAMPLE_ASSIGNMENT_ID,
        course_id=SAMPLE_COURSE_ID,
        module_id="m2",
        topic_id="m2-t2",
        title="FizzBuzz",
        max_attempts=2,
        rubric=(
            RubricCriterion(criterion="correctness", points=70),
            RubricCriterion(criterion="style", points=30),
        ),
    )
    await repos.assignments.add(assignment)
    logger.info("Seeded sample course=%s", course.slug)
