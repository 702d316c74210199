"""Unit tests for description fetching and the operations column."""

from __future__ import annotations

from entity_console.schemas.entity import EntityDescription, EntityItem
from entity_console.services.description_service import (
    DescriptionFetcher,
    append_operations_item,
    operations_item,
)


class TestOperationsItem:
    def test_shape(self):
        item = operations_item("en")
        assert item.name == "op"
        assert item.category == "op"
        assert item.label == "Operations"
        assert item.readonly is True
        assert item.width == 60

    def test_localized(self):
        assert operations_item("zh").label == "操作"

    def test_appended_last(self):
        desc = EntityDescription(items=[EntityItem(name="a"), EntityItem(name="b")])
        with_op = append_operations_item(desc, "en")
        assert with_op.names == ["a", "b", "op"]
        # The input description is untouched
        assert desc.names == ["a", "b"]

    def test_appended_once(self):
        desc = EntityDescription(items=[EntityItem(name="a")])
        twice = append_operations_item(append_operations_item(desc))
        assert twice.names == ["a", "op"]

    def test_server_item_named_op_dropped(self, caplog):
        desc = EntityDescription(
            items=[EntityItem(name="a"), EntityItem(name="op", category="number")],
            support_orders=["a", "op"],
        )
        with_op = append_operations_item(desc, "en")
        assert with_op.names == ["a", "op"]
        assert with_op.get("op").category == "op"
        assert with_op.support_orders == ["a"]
        assert "reserved for the operations column" in caplog.text


class TestDescriptionFetcher:
    async def test_never_caches(self, record_client, service):
        fetcher = DescriptionFetcher(record_client)
        first = await fetcher.fetch("settings")
        second = await fetcher.fetch("settings")
        assert first == second
        assert len(service.calls_to("description")) == 2
