"""Field renderer registry.

Every known :class:`Category` maps to exactly one renderer object that owns
the category's behaviour in both engines:

* ``render``          list-view text for a cell
* ``widget``          edit widget contract for the editor form
* ``create_default``  value seeded in create mode
* ``bind``/``unbind`` conversion between record values and bound form values
* ``coerce``          conversion of raw widget input
* ``validate``        value-shape contract (pydantic ``TypeAdapter``)

Categories this client does not know fall through to ``DEFAULT_RENDERER``,
which treats the value as plain text.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Annotated, Any, Union
from zoneinfo import ZoneInfo

from pydantic import (
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)

from entity_console.config import settings
from entity_console.core.categories import Category, EntityStatus
from entity_console.core.i18n import t
from entity_console.schemas.entity import EntityItem
from entity_console.services.navigation import editor_path

logger = logging.getLogger("entity_console.renderers")

EDITOR_ROWS = 8
FILE_CONTENT_TYPE_FIELD = "content_type"


# ---------------------------------------------------------------------------
# View / widget shapes consumed by the presentation layer
# ---------------------------------------------------------------------------


@dataclass
class SelectOption:
    value: str
    label: str


@dataclass
class RowAction:
    kind: str  # edit / view
    label: str
    path: str


@dataclass
class Cell:
    text: str
    action: RowAction | None = None


@dataclass
class WidgetSpec:
    kind: str  # input / number / select / datetime / textarea / file
    name: str
    label: str
    readonly: bool = False
    span: int | None = None
    options: list[SelectOption] = field(default_factory=list)
    max_length: int | None = None
    rows: int | None = None
    placeholder: str = ""


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def stringify(value: Any) -> str:
    """Textual form of a record value; nested values are serialized as JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def _display_zone(tz_name: str | None = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.DISPLAY_TIMEZONE)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or a unix timestamp; naive values are UTC."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_timestamp(dt: datetime) -> str:
    """Full UTC timestamp string, millisecond precision (``...T08:30:00.000Z``)."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_datetime(value: Any, tz_name: str | None = None) -> str:
    dt = parse_timestamp(value)
    if dt is None:
        return stringify(value)
    return dt.astimezone(_display_zone(tz_name)).strftime("%Y-%m-%d %H:%M:%S")


def now_timestamp() -> str:
    return to_timestamp(datetime.now(timezone.utc))


def pick_date(current: Any, picked: date | None, tz_name: str | None = None) -> str:
    """Move ``current`` to ``picked`` keeping its hour/minute/second.

    Clearing the date (``picked is None``) yields an empty value.
    """
    if picked is None:
        return ""
    zone = _display_zone(tz_name)
    existing = parse_timestamp(current)
    if existing is not None:
        local = existing.astimezone(zone)
        merged = datetime(
            picked.year, picked.month, picked.day,
            local.hour, local.minute, local.second, tzinfo=zone,
        )
    else:
        merged = datetime(picked.year, picked.month, picked.day, tzinfo=zone)
    return to_timestamp(merged)


def parse_time_of_day(text: str) -> tuple[int, int, int]:
    """Parse ``HH[:MM[:SS]]``; missing parts are zero."""
    parts = (text or "").strip().split(":")
    if len(parts) > 3:
        raise ValueError(f"Invalid time: {text!r}")
    numbers = [int(p) if p else 0 for p in parts] + [0] * (3 - len(parts))
    hours, minutes, seconds = numbers
    if not (0 <= hours < 24 and 0 <= minutes < 60 and 0 <= seconds < 60):
        raise ValueError(f"Invalid time: {text!r}")
    return hours, minutes, seconds


def set_time(current: Any, time_text: str, tz_name: str | None = None) -> str:
    """Re-merge hour/minute/second into the date of ``current`` (today when unset)."""
    zone = _display_zone(tz_name)
    hours, minutes, seconds = parse_time_of_day(time_text)
    existing = parse_timestamp(current)
    base = existing.astimezone(zone) if existing else datetime.now(zone)
    merged = base.replace(hour=hours, minute=minutes, second=seconds, microsecond=0)
    return to_timestamp(merged)


def time_of_day(value: Any, tz_name: str | None = None) -> str:
    """The ``HH:MM:SS`` part shown by the time sub-control, empty when unset."""
    dt = parse_timestamp(value)
    if dt is None:
        return ""
    return dt.astimezone(_display_zone(tz_name)).strftime("%H:%M:%S")


def encode_file(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


# ---------------------------------------------------------------------------
# Validation contracts
# ---------------------------------------------------------------------------

_NUMBER = TypeAdapter(Union[StrictInt, StrictFloat])
_INTEGER = TypeAdapter(StrictInt)
_STRINGS = TypeAdapter(list[StrictStr])
_STRING = TypeAdapter(StrictStr)


@lru_cache(maxsize=16)
def _bounded_string(max_length: int) -> TypeAdapter:
    return TypeAdapter(
        Annotated[str, StringConstraints(strict=True, min_length=0, max_length=max_length)]
    )


def _check(adapter: TypeAdapter, value: Any, locale: str | None) -> str | None:
    if value is None:
        return t("validation.required", locale)
    try:
        adapter.validate_python(value)
    except ValidationError as exc:
        errors = exc.errors()
        return errors[0]["msg"] if errors else str(exc)
    return None


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


class FieldRenderer:
    """Plain text view, bounded single-line text input."""

    category: Category | None = None
    widget_kind = "input"

    def render(self, item: EntityItem, value: Any, locale: str | None = None) -> str:
        return stringify(value)

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        return WidgetSpec(
            kind=self.widget_kind,
            name=item.name,
            label=item.display_label,
            readonly=readonly,
            span=item.span,
            max_length=settings.TEXT_MAX_LENGTH,
        )

    def create_default(self, item: EntityItem) -> Any:
        if item.auto_created or item.readonly:
            return ""
        return None

    def bind(self, item: EntityItem, value: Any) -> Any:
        """Record value → bound form value. Missing values become ``""``."""
        return "" if value is None else value

    def unbind(self, item: EntityItem, value: Any) -> Any:
        """Bound form value → value sent to the record service."""
        return value

    def coerce(self, item: EntityItem, raw: Any) -> Any:
        return raw

    def validate(self, item: EntityItem, value: Any, locale: str | None = None) -> str | None:
        return _check(_bounded_string(settings.TEXT_MAX_LENGTH), value, locale)


class TextRenderer(FieldRenderer):
    category = Category.TEXT

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        if item.has_options:
            widget.kind = "select"
            widget.options = [SelectOption(o.value, o.label) for o in item.options or []]
            widget.placeholder = t("select.placeholder", locale)
        return widget


class NumberRenderer(FieldRenderer):
    category = Category.NUMBER
    widget_kind = "number"

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        widget.max_length = None
        return widget

    def coerce(self, item: EntityItem, raw: Any) -> Any:
        if not isinstance(raw, str):
            return raw
        text = raw.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return raw

    def validate(self, item: EntityItem, value: Any, locale: str | None = None) -> str | None:
        return _check(_NUMBER, value, locale)


class StatusRenderer(FieldRenderer):
    category = Category.STATUS
    widget_kind = "select"

    def render(self, item: EntityItem, value: Any, locale: str | None = None) -> str:
        if str(value) == str(EntityStatus.ENABLED.value):
            return t("status.enabled", locale)
        return t("status.disabled", locale)

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        widget.max_length = None
        widget.placeholder = t("select.placeholder", locale)
        widget.options = [
            SelectOption(str(status.value), self.render(item, status.value, locale))
            for status in (EntityStatus.ENABLED, EntityStatus.DISABLED)
        ]
        return widget

    def create_default(self, item: EntityItem) -> Any:
        return EntityStatus.ENABLED.value

    def coerce(self, item: EntityItem, raw: Any) -> Any:
        try:
            return int(raw)
        except (TypeError, ValueError):
            return raw

    def validate(self, item: EntityItem, value: Any, locale: str | None = None) -> str | None:
        return _check(_INTEGER, value, locale)


class DateTimeRenderer(FieldRenderer):
    category = Category.DATETIME
    widget_kind = "datetime"

    def render(self, item: EntityItem, value: Any, locale: str | None = None) -> str:
        return format_datetime(value)

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        widget.placeholder = t("datetime.pick_date", locale)
        return widget

    def create_default(self, item: EntityItem) -> Any:
        return now_timestamp()


class TextsRenderer(FieldRenderer):
    """Single choice stored as a one-element list."""

    category = Category.TEXTS
    widget_kind = "select"

    def render(self, item: EntityItem, value: Any, locale: str | None = None) -> str:
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return ",".join(value)
        return stringify(value)

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        widget.max_length = None
        widget.placeholder = t("select.placeholder", locale)
        widget.options = [SelectOption(o.value, o.label) for o in item.options or []]
        return widget

    def coerce(self, item: EntityItem, raw: Any) -> Any:
        if isinstance(raw, str):
            return [raw]
        return raw

    def validate(self, item: EntityItem, value: Any, locale: str | None = None) -> str | None:
        return _check(_STRINGS, value, locale)


class EditorRenderer(FieldRenderer):
    category = Category.EDITOR
    widget_kind = "textarea"

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        widget.rows = EDITOR_ROWS
        return widget


class JsonRenderer(FieldRenderer):
    """Nested values edited as serialized JSON text."""

    category = Category.JSON
    widget_kind = "textarea"

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        widget.max_length = None
        widget.rows = EDITOR_ROWS
        return widget

    def bind(self, item: EntityItem, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False, indent=2, sort_keys=True)

    def unbind(self, item: EntityItem, value: Any) -> Any:
        if not isinstance(value, str) or value.strip() == "":
            return value
        return json.loads(value)

    def validate(self, item: EntityItem, value: Any, locale: str | None = None) -> str | None:
        error = _check(_STRING, value, locale)
        if error or value.strip() == "":
            return error
        try:
            json.loads(value)
        except ValueError:
            return t("validation.json", locale)
        return None


class FileRenderer(FieldRenderer):
    category = Category.FILE
    widget_kind = "file"

    def widget(
        self, item: EntityItem, *, readonly: bool, locale: str | None = None
    ) -> WidgetSpec:
        widget = super().widget(item, readonly=readonly, locale=locale)
        widget.max_length = None
        widget.placeholder = t("file.placeholder", locale)
        return widget

    def validate(self, item: EntityItem, value: Any, locale: str | None = None) -> str | None:
        return _check(_STRING, value, locale)


class OperationRenderer(FieldRenderer):
    """Synthetic row-action column; never part of a form."""

    category = Category.OP

    def render(self, item: EntityItem, value: Any, locale: str | None = None) -> str:
        return t("op.view", locale)

    def action(
        self, entity: str, row: dict[str, Any], *, can_modify: bool, locale: str | None = None
    ) -> Cell:
        record_id = row.get("id")
        if can_modify and record_id not in (None, ""):
            label = t("op.edit", locale)
            return Cell(label, RowAction("edit", label, editor_path(entity, record_id)))
        label = t("op.view", locale)
        path = editor_path(entity, record_id) if record_id not in (None, "") else ""
        return Cell(label, RowAction("view", label, path) if path else None)

    def validate(self, item: EntityItem, value: Any, locale: str | None = None) -> str | None:
        return None


class DefaultRenderer(TextRenderer):
    """Categories this client does not know: treated as text, options included."""

    category = None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

DEFAULT_RENDERER = DefaultRenderer()

RENDERERS: dict[Category, FieldRenderer] = {
    renderer.category: renderer
    for renderer in (
        TextRenderer(),
        NumberRenderer(),
        StatusRenderer(),
        DateTimeRenderer(),
        TextsRenderer(),
        EditorRenderer(),
        JsonRenderer(),
        FileRenderer(),
        OperationRenderer(),
    )
}

_reported_unknown: set[str] = set()


def renderer_for(item: EntityItem) -> FieldRenderer:
    kind = item.kind
    if kind is None:
        if item.category not in _reported_unknown:
            _reported_unknown.add(item.category)
            logger.debug("Unknown category %r for %s, rendering as text", item.category, item.name)
        return DEFAULT_RENDERER
    return RENDERERS[kind]


def render_cell(
    item: EntityItem,
    row: dict[str, Any],
    *,
    entity: str,
    can_modify: bool,
    locale: str | None = None,
) -> Cell:
    renderer = renderer_for(item)
    if isinstance(renderer, OperationRenderer):
        return renderer.action(entity, row, can_modify=can_modify, locale=locale)
    return Cell(renderer.render(item, row.get(item.name), locale))
