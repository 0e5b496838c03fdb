from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    comment: str | None
    created_by: int | None
    created_at: datetime


class HistoryPage(BaseModel):
    rows: list[HistoryRead]
    total: int
    page: int
    page_size: int
    total_pages: int


class PermissionFlags(BaseModel):
    can_edit: bool = False
    can_validate: bool = False


class DeleteResult(BaseModel):
    success: bool = True


class StatusUpdate(BaseModel):
    """Common fields of an update call that drive the workflow."""

    status: str | None = None
    comment: str | None = Field(default=None, max_length=4000)
