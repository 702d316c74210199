from __future__ import annotations

import enum


class Category(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    DATETIME = "datetime"
    EDITOR = "editor"
    TEXTS = "texts"
    STATUS = "status"
    JSON = "json"
    FILE = "file"
    # Client-only operations column
    OP = "op"

    @classmethod
    def parse(cls, value: str | None) -> Category | None:
        if not value:
            return cls.TEXT
        try:
            return cls(value.lower())
        except ValueError:
            return None


class EntityStatus(int, enum.Enum):
    DISABLED = 0
    ENABLED = 1


# Fields the server always owns; never rendered as form inputs
SYSTEM_FIELDS = frozenset({"id", "created_at", "updated_at"})

# Reserved record identifier meaning "not created yet"
NEW_RECORD_ID = "0"
