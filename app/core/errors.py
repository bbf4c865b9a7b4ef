"""Domain error taxonomy for the assessment engine.

Every rule violation a caller can act on is raised as a subclass of
AssessmentError.  The ``kind`` is the stable machine-readable name that
ends up in the HTTP body; ``context`` carries whatever the caller needs to
recover (the active attempt id, attempts remaining, current progress...).

Repositories raise these too when a guarded write loses a race, so the
same error surfaces whether the conflict was caught by a read-time check
or by the store's constraint.
"""

from __future__ import annotations

from typing import Any


class AssessmentError(Exception):
    kind = "AssessmentError"

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)


class NotFound(AssessmentError):
    kind = "NotFound"

    def __init__(self, resource: str, resource_id: object) -> None:
        super().__init__(
            f"{resource} not found", resource=resource, resource_id=str(resource_id)
        )


class Forbidden(AssessmentError):
    kind = "Forbidden"


class ValidationError(AssessmentError):
    kind = "ValidationError"


class AttemptLimitExceeded(AssessmentError):
    kind = "AttemptLimitExceeded"

    def __init__(self, attempts_used: int, max_attempts: int) -> None:
        super().__init__(
            "Maximum attempts reached",
            attempts_used=attempts_used,
            max_attempts=max_attempts,
            attempts_remaining=0,
        )


class AttemptAlreadyActive(AssessmentError):
    kind = "AttemptAlreadyActive"

    def __init__(self, active_attempt_id: object, attempt_no: int) -> None:
        super().__init__(
            "An attempt is already in progress; complete or abandon it first",
            active_attempt_id=str(active_attempt_id),
            attempt_no=attempt_no,
        )


class AttemptNotActive(AssessmentError):
    kind = "AttemptNotActive"

    def __init__(self, attempt_id: object, status: str, reason: str | None = None) -> None:
        message = "This attempt is not active"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, attempt_id=str(attempt_id), status=status)


class DuplicateAnswer(AssessmentError):
    kind = "DuplicateAnswer"

    def __init__(self, question_id: object) -> None:
        super().__init__("Question already answered", question_id=str(question_id))


class DeadlinePassed(AssessmentError):
    kind = "DeadlinePassed"

    def __init__(self, due_at: int) -> None:
        super().__init__("Assignment submission deadline has passed", due_at=due_at)


class AlreadyIssued(AssessmentError):
    kind = "AlreadyIssued"

    def __init__(self, certificate_id: object, code: str) -> None:
        super().__init__(
            "Certificate already issued for this course",
            certificate_id=str(certificate_id),
            code=code,
        )


class AlreadyRevoked(AssessmentError):
    kind = "AlreadyRevoked"

    def __init__(self, certificate_id: object) -> None:
        super().__init__(
            "Certificate is already revoked", certificate_id=str(certificate_id)
        )


class NotCompleted(AssessmentError):
    kind = "NotCompleted"

    def __init__(self, current_progress: int) -> None:
        super().__init__(
            "Course must be completed before requesting a certificate",
            current_progress=current_progress,
        )


class AlreadyEnrolled(AssessmentError):
    kind = "AlreadyEnrolled"

    def __init__(self, course_id: object) -> None:
        super().__init__("Already enrolled in this course", course_id=str(course_id))


class GradingConflict(AssessmentError):
    kind = "GradingConflict"

    def __init__(self, submission_id: object, status: str) -> None:
        super().__init__(
            "Submission cannot be graded in its current state",
            submission_id=str(submission_id),
            status=status,
        )


class AttemptConflict(AssessmentError):
    kind = "AttemptConflict"

    def __init__(self, attempts_used: int) -> None:
        super().__init__(
            "Could not reserve an attempt number, try again",
            attempts_used=attempts_used,
        )


class CodeCollision(Exception):
    """Raised by certificate stores when a generated code is already taken."""
