"""Background worker process.

RUN:  python -m app.worker

Same image as the API, different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

The loop polls each registered queue round-robin, dispatches one task at a
time to its handler, and every ATTEMPT_SWEEP_INTERVAL seconds
force-completes quiz attempts whose time ran out while nobody was looking.

  notifications  delivery hand-off for learner notifications; this service
                 only logs them, a mail/push dispatcher would sit here
  grading        auto-gradable submissions; runs the grading pipeline's
                 auto_grade(), which leaves the submission for a human when
                 the test runner declines
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any
from uuid import UUID

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.core.metrics import QUEUE_DEPTH
from app.services import registry
from app.services.task_queue import GRADING_QUEUE, NOTIFICATIONS_QUEUE

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")


HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(NOTIFICATIONS_QUEUE)
async def handle_notification(payload: dict) -> None:
    logger.info(
        "Notify user=%s type=%s title=%r link=%s",
        payload.get("user_id"),
        payload.get("type"),
        payload.get("title"),
        payload.get("link"),
    )


@register_handler(GRADING_QUEUE)
async def handle_grading(payload: dict) -> None:
    submission_id = UUID(payload["submission_id"])
    graded = await registry.services.grading.auto_grade(submission_id)
    if graded is None:
        logger.info("Submission=%s left for manual grading", submission_id)
    else:
        logger.info(
            "Auto-graded submission=%s final=%.2f passed=%s",
            submission_id,
            graded.final_score or 0.0,
            graded.passed,
        )


async def process_next(queue_name: str, timeout: int = 1) -> bool:
    """Handle at most one task from a queue.  True when a task was taken."""
    queue = registry.services.queue
    QUEUE_DEPTH.labels(queue_name=queue_name).set(await queue.queue_length(queue_name))

    task = await queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        # At-most-once: a failed task is logged and dropped.
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def sweep_overdue_attempts() -> int:
    try:
        expired = await registry.services.quizzes.expire_overdue_attempts()
    except Exception:
        logger.exception("Overdue attempt sweep failed")
        return 0
    return expired


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    interval = SETTINGS.attempt_sweep_interval
    logger.info(
        "Worker started, queues=%s sweep_interval=%ss", queues, interval or "off"
    )

    last_sweep = time.monotonic()
    while True:
        took_any = False
        for queue_name in queues:
            took_any = await process_next(queue_name) or took_any

        if interval and time.monotonic() - last_sweep >= interval:
            await sweep_overdue_attempts()
            last_sweep = time.monotonic()

        if not took_any:
            # In-memory dequeue doesn't block; avoid a hot loop in dev.
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
