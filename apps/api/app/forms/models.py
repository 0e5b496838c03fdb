from __future__ import annotations

from enum import Enum
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.workflow.models import HistoryRecordMixin, WorkflowEntityMixin


class FormType(str, Enum):
    NEW = "NEW"
    EDIT = "EDIT"
    REMOVE = "REMOVE"


class FormProviderType(str, Enum):
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    OTHER = "OTHER"


class WaterObjectType(str, Enum):
    RIVER = "RIVER"
    CANAL = "CANAL"
    INTERMEDIATE_WATER_BODY = "INTERMEDIATE_WATER_BODY"
    TERRITORIAL_WATER_BODY = "TERRITORIAL_WATER_BODY"
    NATURAL_LAKE = "NATURAL_LAKE"
    PONDED_LAKE = "PONDED_LAKE"
    POND = "POND"
    ISOLATED_WATER_BODY = "ISOLATED_WATER_BODY"
    EARTH_DAM = "EARTH_DAM"
    WATER_EXCESS_CULVERT = "WATER_EXCESS_CULVERT"
    HYDRO_POWER_PLANT = "HYDRO_POWER_PLANT"
    FISH_PASS = "FISH_PASS"


class Form(WorkflowEntityMixin, Base):
    __tablename__ = "forms"

    type: Mapped[str] = mapped_column(String(16), nullable=False, default=FormType.NEW.value)
    object_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    object_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cadastral_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    files: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    provider_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    provided_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assignee_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    __table_args__ = (Index("ix_forms_status", "status", "deleted_at"),)


class FormHistory(HistoryRecordMixin, Base):
    __tablename__ = "form_histories"

    parent_id: Mapped[int] = mapped_column("form_id", ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
