"""Editor engine: record form in create or update mode with minimal-diff submission."""

from __future__ import annotations

import copy
import enum
import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from entity_console.core.categories import NEW_RECORD_ID, SYSTEM_FIELDS, Category
from entity_console.core.errors import EntityConsoleError, FieldValidationError, format_error
from entity_console.core.i18n import t
from entity_console.core.permissions import ActorContext, actor_can_modify
from entity_console.schemas.entity import EntityDescription, EntityItem
from entity_console.services import renderer_registry
from entity_console.services.description_service import DescriptionFetcher
from entity_console.services.notice_bus import NoticeBus, NoticeLevel
from entity_console.services.record_client import RecordServiceClient
from entity_console.services.renderer_registry import (
    FILE_CONTENT_TYPE_FIELD,
    WidgetSpec,
    encode_file,
    renderer_for,
)

logger = logging.getLogger("entity_console.editor")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class EditorMode(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"


class SubmitStatus(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    INVALID = "invalid"
    FAILED = "failed"
    BUSY = "busy"
    NOT_READY = "not_ready"


@dataclass
class SubmitResult:
    status: SubmitStatus
    changed: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    response: dict[str, Any] | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status in (SubmitStatus.CREATED, SubmitStatus.UPDATED, SubmitStatus.UNCHANGED)


@dataclass
class FormField:
    item: EntityItem
    widget: WidgetSpec
    value: Any
    error: str | None = None

    @property
    def name(self) -> str:
        return self.item.name


class EditorEngine:
    """Create/update form for one record of ``entity``.

    The record identifier ``"0"`` selects create mode. In update mode the
    loaded record is snapshotted as the baseline, and submission sends only
    the keys whose bound value differs from it.
    """

    def __init__(
        self,
        entity: str,
        record_id: str | int,
        *,
        client: RecordServiceClient,
        actor: ActorContext | None = None,
        notices: NoticeBus | None = None,
        locale: str | None = None,
    ):
        self.entity = entity
        self.record_id = str(record_id)
        self.mode = EditorMode.CREATE if self.record_id == NEW_RECORD_ID else EditorMode.UPDATE
        self._client = client
        self._fetcher = DescriptionFetcher(client)
        self.actor = actor or ActorContext.anonymous_actor()
        self.notices = notices or NoticeBus()
        self.locale = locale

        self.description: EntityDescription | None = None
        self.baseline: dict[str, Any] | None = None
        self.values: dict[str, Any] = {}
        self.errors: dict[str, str] = {}
        self.submitting = False
        self.loaded = False
        self.tips = ""
        # Keys written by widgets next to their own field (file -> content_type)
        self._companions: set[str] = set()

    @property
    def is_create(self) -> bool:
        return self.mode is EditorMode.CREATE

    @property
    def can_modify(self) -> bool:
        if self.description is None:
            return False
        return actor_can_modify(self.actor, self.description.modify_roles)

    # ── Loading ────────────────────────────────────────────────────────

    async def load(self) -> bool:
        """Fetch the description (and the record in update mode).

        Returns False after publishing an error notice when a fetch fails.
        """
        try:
            description = await self._fetcher.fetch(self.entity)
        except EntityConsoleError as exc:
            await self.notices.error(t("notice.description_failed", self.locale), exc, entity=self.entity)
            return False
        self.description = description

        if self.is_create:
            self.values = self._create_defaults(description)
            self.baseline = None
            self.errors = {}
            self.loaded = True
            return True

        try:
            record = await self._client.get_record(self.entity, self.record_id)
        except EntityConsoleError as exc:
            await self.notices.error(t("notice.record_failed", self.locale), exc, entity=self.entity)
            return False

        self.values = self._bind_record(description, record)
        self.baseline = copy.deepcopy(self.values)
        self.errors = {}
        self.loaded = True
        return True

    def _create_defaults(self, description: EntityDescription) -> dict[str, Any]:
        return {
            item.name: renderer_for(item).create_default(item)
            for item in description.schema_items
        }

    def _bind_record(self, description: EntityDescription, record: dict[str, Any]) -> dict[str, Any]:
        values = {key: "" if value is None else value for key, value in record.items()}
        for item in description.schema_items:
            values[item.name] = renderer_for(item).bind(item, record.get(item.name))
        return values

    # ── Form ───────────────────────────────────────────────────────────

    @property
    def form_items(self) -> list[EntityItem]:
        if self.description is None:
            return []
        return [
            item
            for item in self.description.schema_items
            if item.name not in SYSTEM_FIELDS and not (self.is_create and item.auto_created)
        ]

    def effective_readonly(self, item: EntityItem) -> bool:
        return False if self.is_create else item.readonly

    @property
    def fields(self) -> list[FormField]:
        return [
            FormField(
                item=item,
                widget=renderer_for(item).widget(
                    item, readonly=self.effective_readonly(item), locale=self.locale
                ),
                value=self.values.get(item.name),
                error=self.errors.get(item.name),
            )
            for item in self.form_items
        ]

    def _editable_item(self, name: str, category: Category | None = None) -> EntityItem:
        for item in self.form_items:
            if item.name == name:
                break
        else:
            raise KeyError(f"{name} is not a form field of {self.entity}")
        if self.effective_readonly(item):
            raise ValueError(f"{name} is read-only")
        if category is not None and item.kind is not category:
            raise ValueError(f"{name} is not a {category.value} field")
        return item

    def set_value(self, name: str, raw: Any) -> None:
        item = self._editable_item(name)
        self.values[name] = renderer_for(item).coerce(item, raw)
        self.errors.pop(name, None)

    def pick_date(self, name: str, picked: date | None) -> None:
        self._editable_item(name, Category.DATETIME)
        self.values[name] = renderer_registry.pick_date(self.values.get(name), picked)
        self.errors.pop(name, None)

    def set_time(self, name: str, time_text: str) -> None:
        self._editable_item(name, Category.DATETIME)
        self.values[name] = renderer_registry.set_time(self.values.get(name), time_text)
        self.errors.pop(name, None)

    def attach_file(self, name: str, content: bytes, content_type: str | None = None) -> None:
        self._editable_item(name, Category.FILE)
        self.values[name] = encode_file(content)
        self.values[FILE_CONTENT_TYPE_FIELD] = content_type or DEFAULT_CONTENT_TYPE
        self._companions.add(FILE_CONTENT_TYPE_FIELD)
        self.errors.pop(name, None)

    def attach_file_path(self, name: str, path: str | Path) -> None:
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        self.attach_file(name, path.read_bytes(), content_type)

    # ── Diff / validation ──────────────────────────────────────────────

    def _diff_keys(self, description: EntityDescription) -> list[str]:
        keys = [item.name for item in description.schema_items]
        keys.extend(sorted(self._companions - set(keys)))
        return keys

    def diff(self) -> dict[str, Any]:
        """Keys whose bound value differs from the baseline; empty in create mode."""
        if self.baseline is None or self.description is None:
            return {}
        changed = {}
        for key in self._diff_keys(self.description):
            value = self.values.get(key)
            if value != self.baseline.get(key):
                changed[key] = copy.deepcopy(value)
        return changed

    def _validate_items(self, names: set[str] | None = None) -> dict[str, str]:
        errors: dict[str, str] = {}
        for item in self.form_items:
            if self.effective_readonly(item):
                continue
            if names is not None and item.name not in names:
                continue
            message = renderer_for(item).validate(item, self.values.get(item.name), self.locale)
            if message:
                errors[item.name] = message
        return errors

    def validate(self) -> dict[str, str]:
        """Per-field errors; empty means valid.

        Create mode checks every editable form field. Update mode checks the
        edited ones only, values still equal to the stored record are left to
        the record service.
        """
        names = None if self.is_create else set(self.diff())
        self.errors = self._validate_items(names)
        return dict(self.errors)

    def _unbind(self, description: EntityDescription, values: dict[str, Any]) -> dict[str, Any]:
        payload = {}
        for key, value in values.items():
            item = description.get(key)
            payload[key] = renderer_for(item).unbind(item, value) if item else value
        return payload

    # ── Submission ─────────────────────────────────────────────────────

    def _invalid(self, errors: dict[str, str], changed: dict[str, Any] | None = None) -> SubmitResult:
        message = format_error(FieldValidationError(errors))
        logger.debug("Submit for %s/%s blocked: %s", self.entity, self.record_id, message)
        return SubmitResult(SubmitStatus.INVALID, changed=changed or {}, errors=errors, message=message)

    async def submit(self) -> SubmitResult:
        if self.submitting:
            logger.debug("Submit for %s/%s already in flight", self.entity, self.record_id)
            return SubmitResult(SubmitStatus.BUSY)
        if not self.loaded or self.description is None:
            return SubmitResult(SubmitStatus.NOT_READY)
        description, baseline = self.description, self.baseline
        self.submitting = True
        try:
            # Only update mode keeps a baseline
            if baseline is None:
                return await self._submit_create(description)
            return await self._submit_update(description, baseline)
        finally:
            self.submitting = False

    async def _submit_update(
        self, description: EntityDescription, baseline: dict[str, Any]
    ) -> SubmitResult:
        changed = self.diff()
        if not changed:
            self.tips = ""
            await self.notices.publish(
                NoticeLevel.INFO,
                t("notice.unchanged", self.locale),
                t("notice.unchanged_detail", self.locale),
                entity=self.entity,
            )
            return SubmitResult(SubmitStatus.UNCHANGED)

        errors = self.validate()
        if errors:
            return self._invalid(errors, changed)

        payload = self._unbind(description, changed)
        try:
            await self._client.update_record(self.entity, self.record_id, payload)
        except EntityConsoleError as exc:
            await self.notices.error(t("notice.submit_failed", self.locale), exc, entity=self.entity)
            return SubmitResult(SubmitStatus.FAILED, changed=changed, message=format_error(exc))

        # Accepted values become the new baseline
        for key, value in changed.items():
            baseline[key] = copy.deepcopy(value)
        self.tips = t("notice.updated", self.locale, fields=",".join(changed))
        logger.info(
            "Updated %s/%s: %s",
            self.entity,
            self.record_id,
            ",".join(changed),
            extra={"entity": self.entity, "record_id": self.record_id},
        )
        await self.notices.publish(NoticeLevel.SUCCESS, self.tips, entity=self.entity)
        return SubmitResult(SubmitStatus.UPDATED, changed=changed, message=self.tips)

    async def _submit_create(self, description: EntityDescription) -> SubmitResult:
        errors = self.validate()
        if errors:
            return self._invalid(errors)

        values = {item.name: self.values.get(item.name) for item in self.form_items}
        for key in sorted(self._companions):
            values.setdefault(key, self.values.get(key))
        payload = self._unbind(description, values)

        try:
            response = await self._client.create_record(self.entity, payload)
        except EntityConsoleError as exc:
            await self.notices.error(t("notice.submit_failed", self.locale), exc, entity=self.entity)
            return SubmitResult(SubmitStatus.FAILED, changed=payload, message=format_error(exc))

        self.tips = t("notice.created", self.locale)
        logger.info(
            "Created %s record %s",
            self.entity,
            response.get("id", "?"),
            extra={"entity": self.entity, "record_id": response.get("id")},
        )
        await self.notices.publish(NoticeLevel.SUCCESS, self.tips, entity=self.entity)
        return SubmitResult(SubmitStatus.CREATED, changed=payload, response=response, message=self.tips)
