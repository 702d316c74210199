"""Localized labels used by the list/editor engines."""

from __future__ import annotations

from entity_console.config import settings

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "status.enabled": "Enabled",
        "status.disabled": "Disabled",
        "op.label": "Operations",
        "op.edit": "Edit",
        "op.view": "View",
        "datetime.pick_date": "Pick a date",
        "select.placeholder": "Please select",
        "file.placeholder": "Choose a file",
        "notice.description_failed": "Failed to load entity description",
        "notice.page_failed": "Failed to load records",
        "notice.record_failed": "Failed to load record",
        "notice.submit_failed": "Failed to save record",
        "notice.unchanged": "Nothing changed",
        "notice.unchanged_detail": "The record has not been modified, edit it before submitting",
        "notice.created": "Record created",
        "notice.updated": "Record updated, fields: {fields}",
        "validation.required": "Field required",
        "validation.json": "Invalid JSON",
    },
    "zh": {
        "status.enabled": "启用",
        "status.disabled": "禁用",
        "op.label": "操作",
        "op.edit": "编辑",
        "op.view": "查看",
        "datetime.pick_date": "请选择日期",
        "select.placeholder": "请选择",
        "file.placeholder": "请选择文件",
        "notice.description_failed": "获取实体描述信息失败",
        "notice.page_failed": "加载数据失败",
        "notice.record_failed": "获取数据失败",
        "notice.submit_failed": "保存数据失败",
        "notice.unchanged": "数据未修改",
        "notice.unchanged_detail": "当前的数据未有修改，请修改后再提交",
        "notice.created": "已成功创建数据。",
        "notice.updated": "已成功更新数据，字段为：{fields}。",
        "validation.required": "字段不能为空",
        "validation.json": "JSON格式不正确",
    },
}


def t(key: str, locale: str | None = None, **kwargs: str) -> str:
    """Translate ``key``; unknown locales fall back to English, unknown keys to the key."""
    catalog = MESSAGES.get(locale or settings.LOCALE, MESSAGES["en"])
    text = catalog.get(key) or MESSAGES["en"].get(key, key)
    if kwargs:
        text = text.format(**kwargs)
    return text
