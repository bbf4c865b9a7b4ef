"""Course catalogue, enrollment, and rating endpoints.

  GET    /v1/courses                          published courses
  POST   /v1/courses/{course_id}/enroll       201, 409 AlreadyEnrolled
  GET    /v1/courses/{course_id}/enrollment   own enrollment
  PATCH  /v1/courses/{course_id}/enrollment   pause / resume / drop
  DELETE /v1/courses/{course_id}/enrollment   unenroll
  POST   /v1/courses/{course_id}/rating       rate 1-5
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, ServicesDep
from app.models.course import Course
from app.models.enrollment import Enrollment

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class TopicOut(BaseModel):
    id: str
    title: str
    position: int


class ModuleOut(BaseModel):
    id: str
    title: str
    position: int
    topics: list[TopicOut]


class CourseOut(BaseModel):
    id: UUID
    slug: str
    title: str
    status: str
    total_topics: int
    modules: list[ModuleOut]
    rating_average: float
    rating_count: int


class RatingOut(BaseModel):
    score: int
    review: str | None
    rated_at: int


class EnrollmentOut(BaseModel):
    learner_id: str
    course_id: UUID
    status: str
    progress: int
    completed_topics: list[str]
    enrolled_at: int
    completed_at: int | None
    last_accessed_topic: str | None
    last_accessed_at: int | None
    rating: RatingOut | None


class EnrollmentStatusIn(BaseModel):
    status: Literal["active", "paused", "dropped"]


class RatingIn(BaseModel):
    # Range is checked by the service so the error carries its own kind
    score: int
    review: str | None = Field(default=None, max_length=2000)


def course_out(course: Course) -> CourseOut:
    return CourseOut(
        id=course.id,
        slug=course.slug,
        title=course.title,
        status=course.status,
        total_topics=course.total_topics,
        modules=[
            ModuleOut(
                id=m.id,
                title=m.title,
                position=m.position,
                topics=[TopicOut(id=t.id, title=t.title, position=t.position) for t in m.topics],
            )
            for m in course.modules
        ],
        rating_average=course.rating_average,
        rating_count=course.rating_count,
    )


def enrollment_out(e: Enrollment) -> EnrollmentOut:
    return EnrollmentOut(
        learner_id=e.learner_id,
        course_id=e.course_id,
        status=e.status,
        progress=e.progress,
        completed_topics=list(e.completed_topics),
        enrolled_at=e.enrolled_at,
        completed_at=e.completed_at,
        last_accessed_topic=e.last_accessed_topic,
        last_accessed_at=e.last_accessed_at,
        rating=(
            RatingOut(score=e.rating.score, review=e.rating.review, rated_at=e.rating.rated_at)
            if e.rating
            else None
        ),
    )


@router.get("", response_model=list[CourseOut])
async def list_courses(_principal: CurrentUser, svc: ServicesDep) -> list[CourseOut]:
    return [course_out(c) for c in await svc.enrollments.list_courses()]


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> EnrollmentOut:
    enrollment = await svc.enrollments.enroll(principal.user_id, course_id)
    return enrollment_out(enrollment)


@router.get("/{course_id}/enrollment", response_model=EnrollmentOut)
async def get_enrollment(
    course_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> EnrollmentOut:
    return enrollment_out(await svc.enrollments.get(principal.user_id, course_id))


@router.patch("/{course_id}/enrollment", response_model=EnrollmentOut)
async def update_enrollment_status(
    course_id: UUID,
    payload: EnrollmentStatusIn,
    principal: CurrentUser,
    svc: ServicesDep,
) -> EnrollmentOut:
    enrollment = await svc.enrollments.set_status(
        principal.user_id, course_id, payload.status
    )
    return enrollment_out(enrollment)


@router.delete("/{course_id}/enrollment", status_code=status.HTTP_204_NO_CONTENT)
async def unenroll(course_id: UUID, principal: CurrentUser, svc: ServicesDep) -> Response:
    await svc.enrollments.unenroll(principal.user_id, course_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{course_id}/rating", response_model=EnrollmentOut)
async def rate_course(
    course_id: UUID, payload: RatingIn, principal: CurrentUser, svc: ServicesDep
) -> EnrollmentOut:
    enrollment = await svc.enrollments.rate(
        principal.user_id, course_id, payload.score, payload.review
    )
    return enrollment_out(enrollment)
