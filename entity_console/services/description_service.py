"""Entity description fetching and the synthetic operations column."""

from __future__ import annotations

import logging

from entity_console.core.categories import Category
from entity_console.core.i18n import t
from entity_console.schemas.entity import (
    OPERATIONS_ITEM_NAME,
    OPERATIONS_ITEM_WIDTH,
    EntityDescription,
    EntityItem,
)
from entity_console.services.record_client import RecordServiceClient

logger = logging.getLogger("entity_console.descriptions")


def operations_item(locale: str | None = None) -> EntityItem:
    return EntityItem(
        name=OPERATIONS_ITEM_NAME,
        label=t("op.label", locale),
        category=Category.OP.value,
        readonly=True,
        width=OPERATIONS_ITEM_WIDTH,
    )


def append_operations_item(
    description: EntityDescription, locale: str | None = None
) -> EntityDescription:
    """Return a copy of ``description`` with the operations item appended last.

    A server item already named like the operations column is dropped so item
    names stay unique.
    """
    items = []
    for item in description.items:
        if item.kind is Category.OP:
            continue
        if item.name == OPERATIONS_ITEM_NAME:
            logger.warning(
                "Dropping %s item %r: name is reserved for the operations column",
                item.category,
                item.name,
            )
            continue
        items.append(item)
    items.append(operations_item(locale))
    sortable = [name for name in description.support_orders if name != OPERATIONS_ITEM_NAME]
    return description.model_copy(update={"items": items, "support_orders": sortable})


class DescriptionFetcher:
    """Resolves entity descriptions. Never caches: every call hits the service."""

    def __init__(self, client: RecordServiceClient) -> None:
        self._client = client

    async def fetch(self, entity: str) -> EntityDescription:
        description = await self._client.fetch_description(entity)
        logger.debug(
            "Loaded description for %s: %d items, sortable=%s",
            entity,
            len(description.items),
            description.support_orders,
        )
        return description
