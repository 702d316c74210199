from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from entity_console.models.base import Base, TimestampMixin


class Preference(Base, TimestampMixin):
    """One persisted UI preference, e.g. ``pageSize`` or ``columnVisibility:users``."""

    __tablename__ = "preferences"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
