from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.orm import Session

from app.api.errors import workflow_error_response
from app.core.database import get_db
from app.data_requests.schemas import (
    DataRequestCreate,
    DataRequestPage,
    DataRequestRead,
    DataRequestUpdate,
    GenerationResult,
)
from app.data_requests.service import DataRequestService, get_request_service
from app.users.api import get_current_actor
from app.workflow.actors import Actor
from app.workflow.errors import WorkflowError
from app.workflow.schemas import DeleteResult, HistoryPage


router = APIRouter(prefix="/api/requests", tags=["requests"])


@router.post("", response_model=DataRequestRead, status_code=status.HTTP_201_CREATED)
def create_request(
    request: Request,
    dto: DataRequestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> DataRequestRead | JSONResponse:
    try:
        return service.create_request(db, actor, dto)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_create")


@router.get("", response_model=DataRequestPage)
def list_requests(
    request: Request,
    status_filter: list[str] | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> DataRequestPage | JSONResponse:
    try:
        return service.list_requests(db, actor, status=status_filter, page=page, page_size=page_size)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_list")


@router.get("/{request_id}/geom", response_model=None)
def get_request_geom(
    request: Request,
    request_id: int,
    db: Session = Depends(get_db),
    service: DataRequestService = Depends(get_request_service),
) -> dict[str, Any] | JSONResponse:
    try:
        return service.get_geom(db, request_id)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_geom")


@router.get("/{request_id}/html", response_class=HTMLResponse, response_model=None)
def get_request_html(
    request: Request,
    request_id: int,
    secret: str | None = Query(default=None),
    screenshots: str | None = Query(default=None),
    db: Session = Depends(get_db),
    service: DataRequestService = Depends(get_request_service),
) -> HTMLResponse | JSONResponse:
    try:
        return HTMLResponse(content=service.render_html(db, request_id, secret, screenshots))
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_html")


@router.get("/{request_id}", response_model=DataRequestRead)
def get_request(
    request: Request,
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> DataRequestRead | JSONResponse:
    try:
        return service.get_request(db, actor, request_id)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_get")


@router.patch("/{request_id}", response_model=DataRequestRead)
def update_request(
    request: Request,
    request_id: int,
    dto: DataRequestUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> DataRequestRead | JSONResponse:
    try:
        return service.update_request(db, actor, request_id, dto)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_update")


@router.post("/{request_id}/generate", response_model=GenerationResult)
def generate_request_pdf(
    request: Request,
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> GenerationResult | JSONResponse:
    try:
        return service.generate(db, actor, request_id)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_generate")


@router.patch("/{request_id}/regenerate-pdf", response_model=GenerationResult)
def regenerate_request_pdf(
    request: Request,
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> GenerationResult | JSONResponse:
    try:
        return service.regenerate_pdf(db, actor, request_id)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_regenerate")


@router.get("/{request_id}/history", response_model=HistoryPage)
def get_request_history(
    request: Request,
    request_id: int,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> HistoryPage | JSONResponse:
    try:
        return service.get_history(db, actor, request_id, page=page, page_size=page_size)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_history")


@router.delete("/{request_id}", response_model=DeleteResult)
def delete_request(
    request: Request,
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: DataRequestService = Depends(get_request_service),
) -> DeleteResult | JSONResponse:
    try:
        service.delete_request(db, actor, request_id)
        return DeleteResult()
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="request_delete")
