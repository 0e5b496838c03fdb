from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.errors import workflow_error_response
from app.core.database import get_db
from app.forms.schemas import (
    AssigneeRead,
    FormAssigneeResult,
    FormAssigneeUpdate,
    FormCreate,
    FormPage,
    FormRead,
    FormUpdate,
)
from app.forms.service import FormService, get_form_service
from app.users.api import get_current_actor
from app.workflow.actors import Actor
from app.workflow.errors import WorkflowError
from app.workflow.schemas import DeleteResult, HistoryPage


router = APIRouter(prefix="/api/forms", tags=["forms"])


@router.post("", response_model=FormRead, status_code=status.HTTP_201_CREATED)
def create_form(
    request: Request,
    dto: FormCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> FormRead | JSONResponse:
    try:
        return service.create_form(db, actor, dto)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="form_create")


@router.get("", response_model=FormPage)
def list_forms(
    request: Request,
    status_filter: list[str] | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> FormPage | JSONResponse:
    try:
        return service.list_forms(db, actor, status=status_filter, page=page, page_size=page_size)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="form_list")


@router.get("/assignees", response_model=list[AssigneeRead])
def list_assignees(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> list[AssigneeRead]:
    return service.get_assignees(db, actor)


@router.get("/{form_id}", response_model=FormRead)
def get_form(
    request: Request,
    form_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> FormRead | JSONResponse:
    try:
        return service.get_form(db, actor, form_id)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="form_get")


@router.patch("/{form_id}", response_model=FormRead)
def update_form(
    request: Request,
    form_id: int,
    dto: FormUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> FormRead | JSONResponse:
    try:
        return service.update_form(db, actor, form_id, dto)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="form_update")


@router.patch("/{form_id}/assignee", response_model=FormAssigneeResult)
def set_assignee(
    request: Request,
    form_id: int,
    dto: FormAssigneeUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> FormAssigneeResult | JSONResponse:
    try:
        return service.set_assignee(db, actor, form_id, dto.assignee_id)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="form_assignee")


@router.get("/{form_id}/history", response_model=HistoryPage)
def get_form_history(
    request: Request,
    form_id: int,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> HistoryPage | JSONResponse:
    try:
        return service.get_history(db, actor, form_id, page=page, page_size=page_size)
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="form_history")


@router.delete("/{form_id}", response_model=DeleteResult)
def delete_form(
    request: Request,
    form_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: FormService = Depends(get_form_service),
) -> DeleteResult | JSONResponse:
    try:
        service.delete_form(db, actor, form_id)
        return DeleteResult()
    except WorkflowError as exc:
        return workflow_error_response(request, exc, operation="form_delete")
