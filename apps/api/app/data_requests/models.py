from __future__ import annotations

from enum import Enum
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.workflow.models import HistoryRecordMixin, WorkflowEntityMixin


class RequestObjectType(str, Enum):
    CADASTRAL_ID = "CADASTRAL_ID"


class RequestPurpose(str, Enum):
    TERRITORIAL_PLANNING = "TERRITORIAL_PLANNING"
    TEACHING = "TEACHING"
    SCIENTIFIC_INVESTIGATION = "SCIENTIFIC_INVESTIGATION"
    OTHER = "OTHER"


class RequestDelivery(str, Enum):
    EMAIL = "EMAIL"
    PORTAL = "PORTAL"


class DataRequest(WorkflowEntityMixin, Base):
    __tablename__ = "requests"

    purpose: Mapped[str | None] = mapped_column(String(64), nullable=True)
    purpose_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery: Mapped[str | None] = mapped_column(String(32), nullable=True)
    objects: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    notify_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    generated_file: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    __table_args__ = (Index("ix_requests_status", "status", "deleted_at"),)


class DataRequestHistory(HistoryRecordMixin, Base):
    __tablename__ = "request_histories"

    parent_id: Mapped[int] = mapped_column(
        "request_id",
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
