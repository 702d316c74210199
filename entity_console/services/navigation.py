"""Browser-style navigation history and URL helpers for console views."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

HistoryListener = Callable[[str], Awaitable[None]]


def entity_path(entity: str) -> str:
    return f"/entities/{entity}"


def editor_path(entity: str, record_id: str | int) -> str:
    return f"/entities/{entity}/{record_id}"


def path_of(url: str) -> str:
    return urlsplit(url).path


def query_param(url: str, name: str) -> str | None:
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == name:
            return value
    return None


def with_query(url: str, **params: str | int | None) -> str:
    """Return ``url`` with the given query params set (``None`` removes one)."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in params.items():
        if value is None:
            query.pop(key, None)
        else:
            query[key] = str(value)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class History:
    """In-memory history stack with back/forward and change listeners.

    ``push``/``replace`` are programmatic and do not notify listeners; only
    ``back``/``forward``/``go`` do, the way a browser fires ``popstate``.
    """

    def __init__(self, url: str = "/") -> None:
        self._entries: list[str] = [url]
        self._index = 0
        self._listeners: list[HistoryListener] = []

    @property
    def location(self) -> str:
        return self._entries[self._index]

    @property
    def length(self) -> int:
        return len(self._entries)

    @property
    def can_go_back(self) -> bool:
        return self._index > 0

    @property
    def can_go_forward(self) -> bool:
        return self._index < len(self._entries) - 1

    def push(self, url: str) -> None:
        if url == self.location:
            return
        # Pushing drops any forward entries
        del self._entries[self._index + 1 :]
        self._entries.append(url)
        self._index += 1

    def replace(self, url: str) -> None:
        self._entries[self._index] = url

    def listen(self, listener: HistoryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unlisten() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unlisten

    async def go(self, delta: int) -> bool:
        target = self._index + delta
        if delta == 0 or target < 0 or target >= len(self._entries):
            return False
        self._index = target
        location = self.location
        for listener in list(self._listeners):
            await listener(location)
        return True

    async def back(self) -> bool:
        return await self.go(-1)

    async def forward(self) -> bool:
        return await self.go(1)
