from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from entity_console.config import APP_VERSION, Settings, settings as default_settings
from entity_console.core.logging_config import configure_logging
from entity_console.core.permissions import ActorContext
from entity_console.database import create_engine, create_sessionmaker, init_preferences_db
from entity_console.services.editor_engine import EditorEngine
from entity_console.services.list_engine import ListEngine
from entity_console.services.navigation import History, entity_path
from entity_console.services.notice_bus import NoticeBus
from entity_console.services.preference_store import PreferenceStore, SqlPreferenceStore
from entity_console.services.record_client import RecordServiceClient

logger = logging.getLogger(__name__)


class Console:
    """Factories for list and editor views sharing one client, store and notice bus."""

    def __init__(
        self,
        client: RecordServiceClient,
        preferences: PreferenceStore,
        notices: NoticeBus | None = None,
        locale: str | None = None,
    ):
        self.client = client
        self.preferences = preferences
        self.notices = notices or NoticeBus()
        self.locale = locale

    def list_view(
        self,
        entity: str,
        actor: ActorContext | None = None,
        history: History | None = None,
    ) -> ListEngine:
        return ListEngine(
            entity,
            client=self.client,
            preferences=self.preferences,
            actor=actor,
            history=history or History(entity_path(entity)),
            notices=self.notices,
            locale=self.locale,
        )

    def editor(
        self, entity: str, record_id: str | int, actor: ActorContext | None = None
    ) -> EditorEngine:
        return EditorEngine(
            entity,
            record_id,
            client=self.client,
            actor=actor,
            notices=self.notices,
            locale=self.locale,
        )


@asynccontextmanager
async def console_session(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    engine: AsyncEngine | None = None,
) -> AsyncIterator[Console]:
    """Open the record client and preference database for the lifetime of a console.

    ``http_client`` and ``engine`` are injectable so a host (or a test) can
    route requests through its own transport and database.
    """
    settings = settings or default_settings
    configure_logging(settings.ENVIRONMENT, settings.LOG_LEVEL)

    db_engine = engine or create_engine(settings.PREFERENCES_DB_URL)
    await init_preferences_db(db_engine)

    client = RecordServiceClient(
        base_url=settings.RECORD_SERVICE_URL,
        token=settings.RECORD_SERVICE_TOKEN,
        timeout=settings.RECORD_SERVICE_TIMEOUT,
        client=http_client,
    )
    logger.info(
        "%s %s connected to %s", settings.PROJECT_NAME, APP_VERSION, settings.RECORD_SERVICE_URL
    )
    try:
        yield Console(
            client,
            SqlPreferenceStore(create_sessionmaker(db_engine)),
            locale=settings.LOCALE,
        )
    finally:
        await client.close()
        if engine is None:
            await db_engine.dispose()
