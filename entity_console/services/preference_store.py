"""Durable keyed preferences: column visibility per entity, page size globally."""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entity_console.config import settings
from entity_console.models.preference import Preference

logger = logging.getLogger(__name__)

# Shared by every entity type: last write wins
PAGE_SIZE_KEY = "pageSize"
COLUMN_VISIBILITY_PREFIX = "columnVisibility:"


def column_visibility_key(entity: str) -> str:
    return f"{COLUMN_VISIBILITY_PREFIX}{entity}"


class PreferenceStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...


class MemoryPreferenceStore:
    """Process-local store; values are copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._values.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)


class SqlPreferenceStore:
    """Preferences persisted in the ``preferences`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Any | None:
        async with self._session_factory() as db:
            result = await db.execute(select(Preference.value).where(Preference.key == key))
            return result.scalar_one_or_none()

    async def set(self, key: str, value: Any) -> None:
        async with self._session_factory() as db:
            pref = await db.get(Preference, key)
            if pref is None:
                db.add(Preference(key=key, value=value))
            else:
                pref.value = value
            await db.commit()


# ---------------------------------------------------------------------------
# Typed helpers
# ---------------------------------------------------------------------------


async def load_page_size(store: PreferenceStore, default: int | None = None) -> int:
    fallback = default or settings.DEFAULT_PAGE_SIZE
    value = await store.get(PAGE_SIZE_KEY)
    if value is None:
        return fallback
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        logger.warning("Ignoring malformed page size preference %r", value)
        return fallback
    return value


async def save_page_size(store: PreferenceStore, page_size: int) -> None:
    await store.set(PAGE_SIZE_KEY, page_size)


async def load_column_visibility(store: PreferenceStore, entity: str) -> dict[str, bool]:
    value = await store.get(column_visibility_key(entity))
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning("Ignoring malformed column visibility for %s: %r", entity, value)
        return {}
    return {str(k): bool(v) for k, v in value.items()}


async def save_column_visibility(
    store: PreferenceStore, entity: str, visibility: dict[str, bool]
) -> None:
    await store.set(column_visibility_key(entity), dict(visibility))
