from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.forms.models import FormProviderType, FormType, WaterObjectType
from app.workflow.schemas import StatusUpdate


class FormCreate(BaseModel):
    type: FormType = FormType.NEW
    object_type: WaterObjectType | None = None
    object_name: str | None = Field(default=None, max_length=255)
    cadastral_id: str | None = Field(default=None, max_length=64)
    description: str | None = None
    geom: dict[str, Any] | None = None
    files: list[dict[str, Any]] = Field(default_factory=list)
    provider_type: FormProviderType | None = None
    provided_by: str | None = None
    data: dict[str, Any] | None = None
    status: str | None = None


class FormUpdate(StatusUpdate):
    object_type: WaterObjectType | None = None
    object_name: str | None = Field(default=None, max_length=255)
    cadastral_id: str | None = Field(default=None, max_length=64)
    description: str | None = None
    geom: dict[str, Any] | None = None
    files: list[dict[str, Any]] | None = None
    provider_type: FormProviderType | None = None
    provided_by: str | None = None
    data: dict[str, Any] | None = None


class FormAssigneeUpdate(BaseModel):
    assignee_id: int | None = None


class FormAssigneeResult(BaseModel):
    success: bool
    assignee_id: int | None


class AssigneeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str | None
    last_name: str | None
    email: str | None


class FormRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    type: str
    object_type: str | None
    object_name: str | None
    cadastral_id: str | None
    description: str | None
    geom: dict[str, Any] | None
    files: list[Any] | None
    provider_type: str | None
    provided_by: str | None
    data: dict[str, Any] | None
    assignee_id: int | None
    tenant_id: int | None
    created_by: int | None
    created_at: datetime
    updated_at: datetime | None
    responded_at: datetime | None
    row_version: int
    can_edit: bool = False
    can_validate: bool = False
    can_assign: bool = False


class FormPage(BaseModel):
    rows: list[FormRead]
    total: int
    page: int
    page_size: int
    total_pages: int
