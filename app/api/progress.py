"""Topic progress and course progress endpoints.

  POST /v1/progress/courses/{course_id}/topics/{topic_id}/complete
  POST /v1/progress/courses/{course_id}/topics/{topic_id}/visit
  GET  /v1/progress/courses/{course_id}                  read-through cached
  GET  /v1/progress/courses/{course_id}/modules/{module_id}
  GET  /v1/progress/stats

The course overview goes through the cache: check -> miss -> compute from
the repositories -> populate -> return.  Every progress mutation deletes
the learner's entry for that course, so the TTL only bounds staleness if
an invalidation is ever missed.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field

from app.api.courses import EnrollmentOut, enrollment_out
from app.api.dependencies import CurrentUser, ServicesDep
from app.models.enrollment import TopicProgress
from app.services.cache import progress_cache_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])

_PROGRESS_CACHE_TTL = 300


class TopicVisitIn(BaseModel):
    time_spent: int = Field(default=0, ge=0)
    notes: str | None = Field(default=None, max_length=10_000)


class TopicProgressOut(BaseModel):
    topic_id: str
    module_id: str
    status: str
    time_spent: int
    last_accessed_at: int | None
    completed_at: int | None
    notes: str


class CourseProgressOut(BaseModel):
    course_id: UUID
    status: str
    progress: int
    completed_topics: int
    total_topics: int
    total_time_spent: int
    last_accessed_topic: str | None
    completed_at: int | None
    topics: list[TopicProgressOut]


class ModuleTopicOut(BaseModel):
    topic_id: str
    title: str
    status: str


class ModuleProgressOut(BaseModel):
    module_id: str
    title: str
    progress: int
    completed_topics: int
    total_topics: int
    topics: list[ModuleTopicOut]


class LearnerStatsOut(BaseModel):
    total_courses: int
    active_courses: int
    completed_courses: int
    paused_courses: int
    dropped_courses: int
    topics_completed: int
    total_time_spent: int
    average_progress: int


def topic_progress_out(t: TopicProgress) -> TopicProgressOut:
    return TopicProgressOut(
        topic_id=t.topic_id,
        module_id=t.module_id,
        status=t.status,
        time_spent=t.time_spent,
        last_accessed_at=t.last_accessed_at,
        completed_at=t.completed_at,
        notes=t.notes,
    )


@router.post(
    "/courses/{course_id}/topics/{topic_id}/complete", response_model=EnrollmentOut
)
async def complete_topic(
    course_id: UUID, topic_id: str, principal: CurrentUser, svc: ServicesDep
) -> EnrollmentOut:
    enrollment = await svc.progress.complete_topic(principal.user_id, course_id, topic_id)
    return enrollment_out(enrollment)


@router.post(
    "/courses/{course_id}/topics/{topic_id}/visit", response_model=TopicProgressOut
)
async def visit_topic(
    course_id: UUID,
    topic_id: str,
    payload: TopicVisitIn,
    principal: CurrentUser,
    svc: ServicesDep,
) -> TopicProgressOut:
    record = await svc.progress.record_visit(
        principal.user_id,
        course_id,
        topic_id,
        time_spent=payload.time_spent,
        notes=payload.notes,
    )
    return topic_progress_out(record)


@router.get("/courses/{course_id}", response_model=CourseProgressOut)
async def get_course_progress(
    course_id: UUID, principal: CurrentUser, svc: ServicesDep
) -> CourseProgressOut:
    cache_key = progress_cache_key(principal.user_id, course_id)

    cached = await svc.cache.get(cache_key)
    if cached is not None:
        return CourseProgressOut.model_validate_json(cached)

    progress = await svc.progress.course_progress(principal.user_id, course_id)
    result = CourseProgressOut(
        course_id=progress.course_id,
        status=progress.status,
        progress=progress.progress,
        completed_topics=progress.completed_topics,
        total_topics=progress.total_topics,
        total_time_spent=progress.total_time_spent,
        last_accessed_topic=progress.last_accessed_topic,
        completed_at=progress.completed_at,
        topics=[topic_progress_out(t) for t in progress.topics],
    )
    await svc.cache.set(cache_key, result.model_dump_json(), _PROGRESS_CACHE_TTL)
    logger.debug("Progress cache populated key=%s", cache_key)
    return result


@router.get(
    "/courses/{course_id}/modules/{module_id}", response_model=ModuleProgressOut
)
async def get_module_progress(
    course_id: UUID, module_id: str, principal: CurrentUser, svc: ServicesDep
) -> ModuleProgressOut:
    mp = await svc.progress.module_progress(principal.user_id, course_id, module_id)
    return ModuleProgressOut(
        module_id=mp.module_id,
        title=mp.title,
        progress=mp.progress,
        completed_topics=mp.completed_topics,
        total_topics=mp.total_topics,
        topics=[
            ModuleTopicOut(topic_id=t.topic_id, title=t.title, status=t.status)
            for t in mp.topics
        ],
    )


@router.get("/stats", response_model=LearnerStatsOut)
async def get_learner_stats(principal: CurrentUser, svc: ServicesDep) -> LearnerStatsOut:
    stats = await svc.progress.learner_stats(principal.user_id)
    return LearnerStatsOut(
        total_courses=stats.total_courses,
        active_courses=stats.active_courses,
        completed_courses=stats.completed_courses,
        paused_courses=stats.paused_courses,
        dropped_courses=stats.dropped_courses,
        topics_completed=stats.topics_completed,
        total_time_spent=stats.total_time_spent,
        average_progress=stats.average_progress,
    )
