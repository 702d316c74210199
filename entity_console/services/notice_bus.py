"""In-process notice bus for user-facing, non-blocking notifications."""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

from entity_console.core.errors import format_error

logger = logging.getLogger(__name__)


class NoticeLevel(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NoticeBus:
    """In-process async pub/sub for notices shown by the presentation layer."""

    def __init__(self, queue_size: int = 256) -> None:
        self._subscribers: dict[str, asyncio.Queue] = {}
        self._handlers: list = []
        self._queue_size = queue_size

    def register_handler(self, handler) -> None:
        self._handlers.append(handler)

    async def publish(
        self,
        level: NoticeLevel,
        title: str,
        description: str = "",
        entity: str | None = None,
    ) -> dict:
        notice = {
            "id": str(uuid.uuid4()),
            "level": level.value,
            "title": title,
            "description": description,
            "entity": entity,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        # Broadcast to subscribers
        dead_subscribers = []
        for sub_id, queue in self._subscribers.items():
            try:
                queue.put_nowait(notice)
            except asyncio.QueueFull:
                dead_subscribers.append(sub_id)
                logger.warning("Dropping notices for slow subscriber %s", sub_id)

        for sub_id in dead_subscribers:
            self._subscribers.pop(sub_id, None)

        # Dispatch to registered handlers
        for handler in self._handlers:
            try:
                await handler(notice)
            except Exception:
                logger.exception("Notice handler error for %r", title)

        return notice

    async def error(self, title: str, err: BaseException, entity: str | None = None) -> dict:
        return await self.publish(NoticeLevel.ERROR, title, format_error(err), entity=entity)

    def subscribe(self) -> tuple[str, asyncio.Queue]:
        sub_id = str(uuid.uuid4())
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[sub_id] = queue
        return sub_id, queue

    def unsubscribe(self, sub_id: str) -> None:
        self._subscribers.pop(sub_id, None)

    async def stream(self, sub_id: str, queue: asyncio.Queue) -> AsyncGenerator[dict, None]:
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(sub_id)


def drain(queue: asyncio.Queue) -> list[dict]:
    """Return every notice currently waiting in ``queue``."""
    notices = []
    while not queue.empty():
        notices.append(queue.get_nowait())
    return notices
