"""Unit tests for category parsing and the entity description schemas.

No record service required.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from entity_console.core.categories import Category
from entity_console.core.i18n import t
from entity_console.schemas.entity import (
    EntityDescription,
    EntityItem,
    EntityListPage,
    EntityOption,
    ListQuery,
)

# ---------------------------------------------------------------------------
# Category
# ---------------------------------------------------------------------------


class TestCategory:
    @pytest.mark.parametrize(
        "token,expected",
        [
            ("text", Category.TEXT),
            ("NUMBER", Category.NUMBER),
            ("datetime", Category.DATETIME),
            ("texts", Category.TEXTS),
            ("json", Category.JSON),
            ("file", Category.FILE),
            ("", Category.TEXT),
            (None, Category.TEXT),
        ],
    )
    def test_known_tokens(self, token, expected):
        assert Category.parse(token) is expected

    def test_unknown_token(self):
        assert Category.parse("geo-point") is None


# ---------------------------------------------------------------------------
# EntityItem / EntityOption
# ---------------------------------------------------------------------------


class TestEntityItem:
    def test_defaults(self):
        item = EntityItem(name="key")
        assert item.category == "text"
        assert item.kind is Category.TEXT
        assert item.readonly is False
        assert item.auto_created is False
        assert item.display_label == "key"
        assert item.has_options is False

    def test_unknown_category_kept_verbatim(self):
        item = EntityItem(name="where", category="Geo-Point")
        assert item.category == "geo-point"
        assert item.kind is None

    def test_null_category_is_text(self):
        assert EntityItem(name="x", category=None).kind is Category.TEXT

    def test_label_preferred(self):
        assert EntityItem(name="key", label="Key").display_label == "Key"

    def test_option_value(self):
        assert EntityOption(label="Admin", str_value="admin").value == "admin"
        assert EntityOption(label="One", num_value=1).value == "1"
        assert EntityOption(label="None").value == ""


# ---------------------------------------------------------------------------
# EntityDescription
# ---------------------------------------------------------------------------


class TestEntityDescription:
    def test_parses_service_payload(self):
        desc = EntityDescription.model_validate({
            "items": [
                {"name": "id", "category": "number", "readonly": True, "auto_created": True},
                {"name": "name", "label": "Name"},
            ],
            "support_orders": ["name"],
            "modify_roles": ["admin"],
        })
        assert desc.names == ["id", "name"]
        assert desc.is_sortable("name") is True
        assert desc.is_sortable("id") is False
        assert desc.get("name").label == "Name"
        assert desc.get("missing") is None

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate item names: name"):
            EntityDescription(items=[EntityItem(name="name"), EntityItem(name="name")])

    def test_sortable_must_be_an_item(self):
        with pytest.raises(ValidationError, match="Sortable fields not in items: level"):
            EntityDescription(items=[EntityItem(name="name")], support_orders=["level"])

    def test_schema_items_exclude_operations(self):
        desc = EntityDescription(items=[EntityItem(name="name"), EntityItem(name="op", category="op")])
        assert [i.name for i in desc.schema_items] == ["name"]


# ---------------------------------------------------------------------------
# ListQuery / EntityListPage
# ---------------------------------------------------------------------------


class TestListQuery:
    def test_minimal_params(self):
        assert ListQuery().to_params() == {"page": "0", "page_size": "10", "counted": "false"}

    def test_full_params(self):
        params = ListQuery(page=2, page_size=5, keyword="ali", orders="name,-level", counted=True).to_params()
        assert params == {
            "page": "2",
            "page_size": "5",
            "counted": "true",
            "keyword": "ali",
            "orders": "name,-level",
        }

    def test_page_count_defaults_to_uncounted(self):
        assert EntityListPage(items=[]).page_count == -1


# ---------------------------------------------------------------------------
# i18n
# ---------------------------------------------------------------------------


class TestTranslate:
    def test_english(self):
        assert t("status.enabled", "en") == "Enabled"

    def test_chinese(self):
        assert t("op.label", "zh") == "操作"

    def test_unknown_locale_falls_back(self):
        assert t("op.edit", "fr") == "Edit"

    def test_unknown_key_returns_key(self):
        assert t("no.such.key", "en") == "no.such.key"

    def test_format_arguments(self):
        assert t("notice.updated", "en", fields="name,level") == "Record updated, fields: name,level"
