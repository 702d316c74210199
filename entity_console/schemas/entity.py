from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from entity_console.core.categories import Category

# Synthetic operations column, appended client-side after the server items
OPERATIONS_ITEM_NAME = "op"
OPERATIONS_ITEM_WIDTH = 60


class EntityOption(BaseModel):
    label: str
    str_value: str | None = None
    num_value: int | float | None = None

    @property
    def value(self) -> str:
        """The string form a select widget binds to."""
        if self.str_value is not None:
            return self.str_value
        if self.num_value is not None:
            return str(self.num_value)
        return ""


class EntityItem(BaseModel):
    name: str
    label: str = ""
    # Kept as the raw token so categories added server-side still parse
    category: str = Category.TEXT.value
    readonly: bool = False
    auto_created: bool = False
    options: list[EntityOption] | None = None
    width: int | None = None
    span: int | None = None

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v: Any) -> str:
        if v is None or v == "":
            return Category.TEXT.value
        return str(v).lower()

    @property
    def kind(self) -> Category | None:
        """The known category, or None for tokens this client does not know."""
        return Category.parse(self.category)

    @property
    def display_label(self) -> str:
        return self.label or self.name

    @property
    def has_options(self) -> bool:
        return bool(self.options)


class EntityDescription(BaseModel):
    items: list[EntityItem] = Field(default_factory=list)
    support_orders: list[str] = Field(default_factory=list)
    modify_roles: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_invariants(self) -> EntityDescription:
        names = [item.name for item in self.items]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            msg = f"Duplicate item names: {', '.join(duplicates)}"
            raise ValueError(msg)
        unknown = [name for name in self.support_orders if name not in names]
        if unknown:
            msg = f"Sortable fields not in items: {', '.join(unknown)}"
            raise ValueError(msg)
        return self

    @property
    def names(self) -> list[str]:
        return [item.name for item in self.items]

    @property
    def schema_items(self) -> list[EntityItem]:
        """Items that come from the server schema (synthetic columns excluded)."""
        return [item for item in self.items if item.kind is not Category.OP]

    def get(self, name: str) -> EntityItem | None:
        for item in self.items:
            if item.name == name:
                return item
        return None

    def is_sortable(self, name: str) -> bool:
        return name in self.support_orders


class EntityListPage(BaseModel):
    items: list[dict[str, Any]] = Field(default_factory=list)
    # -1 when the request did not ask for an exact count
    page_count: int = -1


class ListQuery(BaseModel):
    page: int = 0
    page_size: int = 10
    keyword: str = ""
    orders: str = ""
    counted: bool = False

    def to_params(self) -> dict[str, str]:
        params = {
            "page": str(self.page),
            "page_size": str(self.page_size),
            "counted": "true" if self.counted else "false",
        }
        if self.keyword:
            params["keyword"] = self.keyword
        if self.orders:
            params["orders"] = self.orders
        return params
