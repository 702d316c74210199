"""List engine: paging, sorting, keyword filtering and URL sync for one entity view.

State machine::

    uninitialized -> loading_description -> ready <-> loading_page
                             |                            |
                             +---------> error <----------+

Every entity or sort change bumps ``generation``. Description and page
results are only applied while the generation they were requested under is
still current, so an out-of-order response from a previous entity is dropped.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from entity_console.config import settings
from entity_console.core.categories import NEW_RECORD_ID, Category
from entity_console.core.errors import EntityConsoleError
from entity_console.core.i18n import t
from entity_console.core.permissions import ActorContext, actor_can_modify
from entity_console.schemas.entity import EntityDescription, EntityItem, EntityListPage, ListQuery
from entity_console.services.description_service import (
    DescriptionFetcher,
    append_operations_item,
)
from entity_console.services.navigation import (
    History,
    editor_path,
    entity_path,
    path_of,
    query_param,
    with_query,
)
from entity_console.services.notice_bus import NoticeBus
from entity_console.services.preference_store import (
    PreferenceStore,
    load_column_visibility,
    load_page_size,
    save_column_visibility,
    save_page_size,
)
from entity_console.services.record_client import RecordServiceClient
from entity_console.services.renderer_registry import Cell, render_cell

logger = logging.getLogger("entity_console.list")

# Page index before the first page has been requested for a description
NOT_PAGED = -1
PAGE_PARAM = "page"


class ListState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING_DESCRIPTION = "loading_description"
    READY = "ready"
    LOADING_PAGE = "loading_page"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SortEntry:
    field: str
    descending: bool = False


def build_orders(entries: list[SortEntry]) -> str:
    """``[a asc, b desc]`` -> ``"a,-b"``; no entries -> ``""``."""
    return ",".join(f"-{e.field}" if e.descending else e.field for e in entries)


def toggle_sort_entries(entries: list[SortEntry], field: str) -> list[SortEntry]:
    """Advance ``field`` one step: unsorted -> ascending -> descending -> unsorted.

    Other entries keep their position; a newly sorted field is appended.
    """
    result: list[SortEntry] = []
    found = False
    for entry in entries:
        if entry.field != field:
            result.append(entry)
            continue
        found = True
        if not entry.descending:
            result.append(SortEntry(field, descending=True))
    if not found:
        result.append(SortEntry(field))
    return result


@dataclass
class Column:
    name: str
    label: str
    category: str
    width: int | None
    sortable: bool
    sort: str | None  # asc / desc
    visible: bool
    hideable: bool


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ListEngine:
    """Tabular view over one entity type, driven by its runtime description."""

    def __init__(
        self,
        entity: str,
        *,
        client: RecordServiceClient,
        preferences: PreferenceStore,
        actor: ActorContext | None = None,
        history: History | None = None,
        notices: NoticeBus | None = None,
        locale: str | None = None,
    ):
        self.entity = entity
        self._client = client
        self._fetcher = DescriptionFetcher(client)
        self._preferences = preferences
        self.actor = actor or ActorContext.anonymous_actor()
        self.history = history or History(entity_path(entity))
        self.notices = notices or NoticeBus()
        self.locale = locale

        self.state = ListState.UNINITIALIZED
        self.generation = 0
        self.description: EntityDescription | None = None
        self.labels: dict[str, str] = {}
        self.rows: list[dict[str, Any]] = []
        self.page_index = NOT_PAGED
        # Page the current rows belong to; lags page_index while a fetch runs
        self.rows_page = NOT_PAGED
        self.page_size = settings.DEFAULT_PAGE_SIZE
        self.page_count: int | None = None
        self.sort: list[SortEntry] = []
        self.keyword = ""
        self.column_visibility: dict[str, bool] = {}

        self._fetching = False
        self._mounted = False
        self._unlisten: Callable[[], None] | None = None

    # ── Read side ──────────────────────────────────────────────────────

    @property
    def initialized(self) -> bool:
        return self.description is not None

    @property
    def loading(self) -> bool:
        return self.state in (ListState.LOADING_DESCRIPTION, ListState.LOADING_PAGE)

    @property
    def can_modify(self) -> bool:
        if self.description is None:
            return False
        return actor_can_modify(self.actor, self.description.modify_roles)

    @property
    def can_create(self) -> bool:
        return self.can_modify

    @property
    def create_path(self) -> str | None:
        if not self.can_create:
            return None
        return editor_path(self.entity, NEW_RECORD_ID)

    @property
    def can_previous_page(self) -> bool:
        return self.page_index > 0

    @property
    def can_next_page(self) -> bool:
        if self.page_index == NOT_PAGED or self.page_count is None:
            return False
        return self.page_index + 1 < self.page_count

    @property
    def columns(self) -> list[Column]:
        if self.description is None:
            return []
        return [self._column(self.description, item) for item in self.description.items]

    @property
    def visible_columns(self) -> list[Column]:
        return [column for column in self.columns if column.visible]

    def _column(self, description: EntityDescription, item: EntityItem) -> Column:
        is_op = item.kind is Category.OP
        sort = None
        for entry in self.sort:
            if entry.field == item.name:
                sort = "desc" if entry.descending else "asc"
        return Column(
            name=item.name,
            label=item.display_label,
            category=item.category,
            width=item.width,
            sortable=description.is_sortable(item.name),
            sort=sort,
            visible=True if is_op else self.column_visibility.get(item.name, True),
            hideable=not is_op,
        )

    def cells(self, row: dict[str, Any]) -> list[Cell]:
        """Rendered cells of ``row`` for the visible columns."""
        if self.description is None:
            return []
        can_modify = self.can_modify
        visible = {column.name for column in self.visible_columns}
        return [
            render_cell(item, row, entity=self.entity, can_modify=can_modify, locale=self.locale)
            for item in self.description.items
            if item.name in visible
        ]

    def table(self) -> list[list[Cell]]:
        return [self.cells(row) for row in self.rows]

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self.page_size = await load_page_size(self._preferences)
        self._unlisten = self.history.listen(self._on_history_change)
        if path_of(self.history.location) != entity_path(self.entity):
            self.history.push(entity_path(self.entity))
        await self._reload()

    def unmount(self) -> None:
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None
        self._mounted = False
        # In-flight results from now on belong to a dead generation
        self.generation += 1
        self.description = None
        self.labels = {}
        self.rows = []
        self.page_index = NOT_PAGED
        self.rows_page = NOT_PAGED
        self.page_count = None
        self.state = ListState.UNINITIALIZED

    async def reload(self) -> None:
        """Re-run the description load, e.g. after an error notice."""
        await self._reload()

    async def set_entity(self, entity: str) -> None:
        if entity == self.entity and self.description is not None:
            return
        self.entity = entity
        self.sort = []
        self.history.push(entity_path(entity))
        await self._reload()

    async def toggle_sort(self, field: str) -> None:
        if self.description is None or not self.description.is_sortable(field):
            logger.debug("Ignoring sort on non-sortable field %s of %s", field, self.entity)
            return
        self.sort = toggle_sort_entries(self.sort, field)
        await self._reload()

    async def _reload(self) -> None:
        self.generation += 1
        generation = self.generation
        entity = self.entity

        self.keyword = ""
        self.labels = {}
        self.description = None
        self.rows = []
        self.page_count = None
        self.page_index = NOT_PAGED
        self.rows_page = NOT_PAGED
        self.state = ListState.LOADING_DESCRIPTION

        visibility = await load_column_visibility(self._preferences, entity)
        if generation != self.generation:
            return
        self.column_visibility = visibility

        try:
            description = await self._fetcher.fetch(entity)
        except EntityConsoleError as exc:
            if generation != self.generation:
                logger.debug("Ignoring stale description failure for %s", entity)
                return
            self.state = ListState.ERROR
            await self.notices.error(t("notice.description_failed", self.locale), exc, entity=entity)
            return

        if generation != self.generation:
            logger.debug("Discarding stale description for %s", entity)
            return

        self.description = append_operations_item(description, self.locale)
        self.labels = {item.name: item.label for item in self.description.items if item.label}
        self.state = ListState.READY
        self.page_index = self._page_from_location(self.history.location)
        await self._load_page()

    # ── Paging ─────────────────────────────────────────────────────────

    def _page_from_location(self, location: str) -> int:
        raw = query_param(location, PAGE_PARAM)
        if raw is None:
            return 0
        try:
            page = int(raw)
        except ValueError:
            return 0
        return max(page, 0)

    def _set_page(self, index: int) -> None:
        """User-driven page change: mirror it into the URL."""
        changed = index != self.page_index
        self.page_index = index
        if changed:
            self.history.push(with_query(self.history.location, **{PAGE_PARAM: index}))

    async def _load_page(self) -> None:
        if self.page_index == NOT_PAGED or self.description is None:
            return
        if self._fetching:
            logger.debug("Page fetch for %s already in flight, dropping trigger", self.entity)
            return

        generation = self.generation
        entity = self.entity
        query = ListQuery(
            page=self.page_index,
            page_size=self.page_size,
            keyword=self.keyword,
            orders=build_orders(self.sort),
            counted=self.page_count is None,
        )

        self._fetching = True
        self.state = ListState.LOADING_PAGE
        outcome: EntityListPage | EntityConsoleError
        try:
            outcome = await self._client.list_records(entity, query)
        except EntityConsoleError as exc:
            outcome = exc
        finally:
            self._fetching = False

        if generation != self.generation:
            logger.debug(
                "Discarding stale page %d of %s",
                query.page,
                entity,
                extra={"entity": entity, "generation": generation},
            )
            # The current generation's trigger may have been dropped meanwhile
            await self._load_page()
            return

        if isinstance(outcome, EntityConsoleError):
            self.state = ListState.ERROR
            self._restore_rows_page(query.page)
            await self.notices.error(t("notice.page_failed", self.locale), outcome, entity=entity)
            return

        self.rows = outcome.items
        self.rows_page = query.page
        # Sticky count: a non-counting response never overwrites a known count
        if query.counted and outcome.page_count >= 0:
            self.page_count = outcome.page_count
        self.state = ListState.READY

    def _restore_rows_page(self, failed_page: int) -> None:
        """Point page_index and the URL back at the page the rows still show."""
        if self.rows_page in (NOT_PAGED, failed_page) or self.page_index != failed_page:
            return
        self.page_index = self.rows_page
        self.history.replace(with_query(self.history.location, **{PAGE_PARAM: self.rows_page}))

    async def search(self, keyword: str) -> None:
        if self.description is None:
            return
        self.keyword = keyword.strip()
        # A new result set needs a fresh count
        self.page_count = None
        self._set_page(0)
        await self._load_page()

    async def goto_page(self, index: int) -> None:
        if index < 0:
            raise ValueError(f"Page index must be >= 0, got {index}")
        if self.page_count is not None and self.page_count > 0 and index >= self.page_count:
            raise ValueError(f"Page index {index} out of range (page count {self.page_count})")
        if self.description is None:
            return
        # After a failed fetch the same page may be requested again
        if index == self.page_index and self.state is not ListState.ERROR:
            return
        self._set_page(index)
        await self._load_page()

    async def next_page(self) -> None:
        if self.can_next_page:
            await self.goto_page(self.page_index + 1)

    async def previous_page(self) -> None:
        if self.can_previous_page:
            await self.goto_page(self.page_index - 1)

    async def _on_history_change(self, location: str) -> None:
        if not self._mounted or self.description is None:
            return
        if path_of(location) != entity_path(self.entity):
            return
        page = self._page_from_location(location)
        if page == self.page_index:
            return
        self.page_index = page
        await self._load_page()

    # ── Preferences ────────────────────────────────────────────────────

    async def set_column_visibility(self, name: str, visible: bool) -> None:
        if self.description is not None:
            item = self.description.get(name)
            if item is None:
                raise KeyError(name)
            if item.kind is Category.OP:
                return
        self.column_visibility = {**self.column_visibility, name: visible}
        await save_column_visibility(self._preferences, self.entity, self.column_visibility)

    async def set_page_size(self, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError("Page size must be greater than 0")
        if page_size == self.page_size:
            return
        self.page_size = page_size
        await save_page_size(self._preferences, page_size)
        if self.description is None:
            return
        self.page_count = None
        self._set_page(0)
        await self._load_page()
