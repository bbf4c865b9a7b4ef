"""Background task queue using Redis lists.

Two queues are in use:

  notifications  fire-and-forget "tell learner X about event Y" messages
  grading        auto-gradable submissions waiting for their test run

THE PRODUCER/CONSUMER PATTERN
-------------------------------
  Producer (API):    LPUSH task onto a Redis list, return immediately
  Consumer (worker): BRPOP from the list, process the task, loop

  LPUSH adds to the head, BRPOP removes from the tail: FIFO.

DELIVERY GUARANTEE
-------------------
  At-most-once: if the worker crashes mid-task, that task is lost.  A
  lost grading task leaves its submission in "grading", where a grader
  can still grade it by hand.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from app.db.redis import redis_pool

NOTIFICATIONS_QUEUE = "notifications"
GRADING_QUEUE = "grading"


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:      Unique identifier for tracking and logging.
    queue:   Which queue this task belongs to.
    payload: Arbitrary JSON-serializable data the handler needs.
    """

    id: str
    queue: str
    payload: dict


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-memory task queue for dev and tests; no Redis needed."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        self._queues.setdefault(queue, []).append(task)
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if tasks:
            return tasks.pop(0)
        return None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    """Redis-backed task queue using LPUSH/BRPOP."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        task_json = json.dumps(
            {"id": task.id, "queue": task.queue, "payload": task.payload}
        )
        await self._redis.lpush(f"{self._PREFIX}{queue}", task_json)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # Blocks up to `timeout` seconds; None when nothing arrived.
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, task_json = result
        return Task(**json.loads(task_json))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
