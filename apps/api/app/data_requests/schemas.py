from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.data_requests.models import RequestDelivery, RequestObjectType, RequestPurpose
from app.workflow.schemas import StatusUpdate


class RequestObjectRef(BaseModel):
    id: str = Field(min_length=1)
    type: RequestObjectType = RequestObjectType.CADASTRAL_ID


class RequestData(BaseModel):
    extended: bool = False


class DataRequestCreate(BaseModel):
    purpose: RequestPurpose | None = None
    purpose_value: str | None = None
    delivery: RequestDelivery | None = None
    objects: list[RequestObjectRef] = Field(default_factory=list)
    notify_email: str | None = None
    geom: dict[str, Any] | None = None
    data: RequestData | None = None
    status: str | None = None


class DataRequestUpdate(StatusUpdate):
    purpose: RequestPurpose | None = None
    purpose_value: str | None = None
    delivery: RequestDelivery | None = None
    objects: list[RequestObjectRef] | None = None
    notify_email: str | None = None
    geom: dict[str, Any] | None = None
    data: RequestData | None = None


class DataRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    purpose: str | None
    purpose_value: str | None
    delivery: str | None
    objects: list[dict[str, Any]]
    notify_email: str | None
    generated_file: str | None
    data: dict[str, Any] | None
    tenant_id: int | None
    created_by: int | None
    created_at: datetime
    updated_at: datetime | None
    responded_at: datetime | None
    row_version: int
    can_edit: bool = False
    can_validate: bool = False


class DataRequestPage(BaseModel):
    rows: list[DataRequestRead]
    total: int
    page: int
    page_size: int
    total_pages: int


class GenerationResult(BaseModel):
    generating: bool
    job_id: str | None = None
