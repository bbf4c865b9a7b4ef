"""Fire-and-forget learner notifications.

The engine never waits on delivery: a notification is a message dropped on
the "notifications" queue for the worker (and whatever dispatcher sits
behind it).  If the enqueue itself fails, the learner action that caused it
still succeeds; the failure is logged and counted.
"""

from __future__ import annotations

import logging
from typing import Protocol

from app.core.metrics import NOTIFICATIONS
from app.services.task_queue import NOTIFICATIONS_QUEUE, TaskQueue

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> None: ...


class QueueNotifier:
    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> None:
        payload = {
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "link": link,
        }
        try:
            await self._queue.enqueue(NOTIFICATIONS_QUEUE, payload)
        except Exception:
            NOTIFICATIONS.labels(result="failed").inc()
            logger.exception("Failed to queue %s notification for user=%s", type, user_id)
            return
        NOTIFICATIONS.labels(result="queued").inc()
        logger.debug("Queued %s notification for user=%s", type, user_id)
