from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from app.data_requests.models import DataRequest, RequestPurpose
from app.data_requests.repository import DataRequestStore, request_history
from app.data_requests.schemas import (
    DataRequestCreate,
    DataRequestPage,
    DataRequestRead,
    DataRequestUpdate,
    GenerationResult,
)
from app.documents.pipeline import DocumentPipeline, get_document_pipeline
from app.documents.secrets import verify_request_secret
from app.platform.spatial import GeometryError, normalize_geometry, to_feature_collection
from app.users.service import UserService, user_service
from app.workflow.actors import Actor, TransitionContext
from app.workflow.controller import EntityWorkflow, Reaction, WorkflowController
from app.workflow.errors import EntityNotFoundError, WorkflowAuthorizationError, WorkflowValidationError
from app.workflow.notifications import NotificationDispatcher, file_generated_notification, request_notification
from app.workflow.permissions import EntitySnapshot, evaluate_permissions, is_owned_by
from app.workflow.schemas import HistoryPage, HistoryRead
from app.workflow.statuses import WorkflowStatus
from app.workflow.transitions import REQUEST_SYSTEM_CREATION_STATUSES


logger = logging.getLogger("app.data_requests")

UPDATABLE_FIELDS = frozenset(
    {
        "purpose",
        "purpose_value",
        "delivery",
        "objects",
        "notify_email",
        "geom",
        "data",
        "generated_file",
    }
)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


@dataclass(slots=True)
class DataRequestService:
    store: DataRequestStore = field(default_factory=DataRequestStore)
    users: UserService = field(default_factory=lambda: user_service)
    dispatcher: NotificationDispatcher = field(default_factory=NotificationDispatcher)
    pipeline: DocumentPipeline | None = None
    controller: WorkflowController[DataRequest] = field(init=False)

    def __post_init__(self) -> None:
        self.controller = WorkflowController(
            EntityWorkflow(
                entity_type="request",
                store=self.store,
                history=request_history,
                updatable_fields=UPDATABLE_FIELDS,
                evaluate=evaluate_permissions,
                system_creation_statuses=REQUEST_SYSTEM_CREATION_STATUSES,
                auto_approve_admin_creations=True,
                prepare=self._prepare,
                on_created=self._on_created,
                on_status_changed=self._on_status_changed,
                on_file_generated=self._on_file_generated,
            )
        )

    @property
    def documents(self) -> DocumentPipeline:
        if self.pipeline is None:
            self.pipeline = get_document_pipeline()
        return self.pipeline

    def _prepare(
        self,
        session: Session,
        entity: DataRequest | None,
        values: dict[str, Any],
        ctx: TransitionContext,
    ) -> dict[str, Any]:
        values = {key: _enum_value(value) for key, value in values.items()}

        purpose = values.get("purpose", entity.purpose if entity is not None else None)
        purpose_value = values.get("purpose_value", entity.purpose_value if entity is not None else None)
        if purpose == RequestPurpose.OTHER.value and not (purpose_value or "").strip():
            raise WorkflowValidationError("Purpose value must be provided", details={"field": "purpose_value"})

        if entity is None and ctx.actor is not None:
            if not values.get("notify_email"):
                values["notify_email"] = ctx.actor.user.email
            if ctx.actor.tenant_profile is not None:
                values["tenant_id"] = ctx.actor.tenant_profile.id

        if "objects" in values:
            values["objects"] = [
                {"id": str(item["id"]), "type": _enum_value(item.get("type"))} for item in values["objects"] or []
            ]

        raw_geom = values.pop("geom", None)
        if raw_geom:
            try:
                values["geom"] = normalize_geometry(raw_geom)
            except GeometryError as exc:
                raise WorkflowValidationError(str(exc), details={"field": "geom"})
        return values

    def _notify(self, session: Session, request: DataRequest) -> None:
        self.dispatcher.dispatch(
            request_notification(
                request_id=request.id,
                status=request.status,
                creator=self.users.recipient(session, request.created_by),
                notify_email=request.notify_email,
            )
        )

    def _start_generation(self, request: DataRequest) -> str:
        return self.documents.initiate(request)

    def _invalidate(self, session: Session, request: DataRequest) -> None:
        if not request.generated_file:
            return
        self.documents.discard(request.generated_file)
        self.store.update(
            session,
            request.id,
            expected_version=request.row_version,
            changes={"generated_file": None},
            user_id=None,
        )
        logger.info("request.file_invalidated", extra={"entity_type": "request", "entity_id": request.id})

    def _on_created(self, session: Session, request: DataRequest, ctx: TransitionContext) -> list[Reaction]:
        reactions: list[Reaction] = []
        if request.status == WorkflowStatus.APPROVED.value:
            reactions.append(("document_pipeline", lambda: self._start_generation(request)))
        reactions.append(("notification", lambda: self._notify(session, request)))
        return reactions

    def _on_status_changed(
        self,
        session: Session,
        request: DataRequest,
        previous: EntitySnapshot,
        ctx: TransitionContext,
    ) -> list[Reaction]:
        reactions: list[Reaction] = []
        if request.status == WorkflowStatus.SUBMITTED.value:
            reactions.append(("document_invalidation", lambda: self._invalidate(session, request)))
        elif request.status == WorkflowStatus.APPROVED.value and not request.generated_file:
            reactions.append(("document_pipeline", lambda: self._start_generation(request)))
        reactions.append(("notification", lambda: self._notify(session, request)))
        return reactions

    def _on_file_generated(self, session: Session, request: DataRequest) -> list[Reaction]:
        return [
            (
                "notification",
                lambda: self.dispatcher.dispatch(
                    file_generated_notification(
                        request_id=request.id,
                        creator=self.users.recipient(session, request.created_by),
                        notify_email=request.notify_email,
                    )
                ),
            )
        ]

    def to_read(self, request: DataRequest, actor: Actor | None) -> DataRequestRead:
        permissions = evaluate_permissions(EntitySnapshot.of(request), actor)
        show_file = actor is None or actor.is_admin or request.status == WorkflowStatus.APPROVED.value
        return DataRequestRead.model_validate(request).model_copy(
            update={
                "can_edit": permissions.edit,
                "can_validate": permissions.validate,
                "generated_file": request.generated_file if show_file else None,
            }
        )

    def create_request(self, session: Session, actor: Actor | None, dto: DataRequestCreate) -> DataRequestRead:
        ctx = TransitionContext(actor=actor)
        request = self.controller.create(session, dto.model_dump(mode="python", exclude_none=True), ctx)
        return self.to_read(request, actor)

    def update_request(
        self,
        session: Session,
        actor: Actor | None,
        request_id: int,
        dto: DataRequestUpdate,
    ) -> DataRequestRead:
        ctx = TransitionContext(actor=actor, comment=dto.comment)
        patch = dto.model_dump(mode="python", exclude_unset=True, exclude={"comment"})
        request = self.controller.update(session, request_id, patch, ctx)
        return self.to_read(request, actor)

    def save_generated_file(self, session: Session, request_id: int, url: str) -> DataRequest:
        """Record a rendered document; called by workers with no actor."""
        return self.controller.update(session, request_id, {"generated_file": url}, TransitionContext(actor=None))

    def get_request(self, session: Session, actor: Actor | None, request_id: int) -> DataRequestRead:
        return self.to_read(self.store.resolve(session, request_id, actor=actor), actor)

    def list_requests(
        self,
        session: Session,
        actor: Actor | None,
        *,
        status: list[str] | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> DataRequestPage:
        filters = {"status": status} if status else None
        total = self.store.count(session, actor=actor, filters=filters)
        rows = self.store.find(
            session,
            actor=actor,
            filters=filters,
            limit=page_size,
            offset=max(page - 1, 0) * page_size,
        )
        return DataRequestPage(
            rows=[self.to_read(row, actor) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )

    def get_history(
        self,
        session: Session,
        actor: Actor | None,
        request_id: int,
        *,
        page: int = 1,
        page_size: int = 10,
    ) -> HistoryPage:
        rows, total = self.controller.get_history(
            session, request_id, TransitionContext(actor=actor), page=page, page_size=page_size
        )
        return HistoryPage(
            rows=[HistoryRead.model_validate(row) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )

    def delete_request(self, session: Session, actor: Actor, request_id: int) -> None:
        request = self.store.resolve(session, request_id, actor=actor)
        if not (is_owned_by(EntitySnapshot.of(request), actor) or actor.is_admin):
            raise WorkflowAuthorizationError("No rights to delete request", details={"id": request_id})
        self.store.soft_delete(session, request, user_id=actor.user.id)
        logger.info("request.deleted", extra={"entity_type": "request", "entity_id": request_id, "actor_id": actor.user.id})

    def generate(self, session: Session, actor: Actor | None, request_id: int) -> GenerationResult:
        request = self.store.resolve(session, request_id, actor=actor)
        if request.status != WorkflowStatus.APPROVED.value:
            raise WorkflowValidationError("Request is not approved", details={"status": request.status})
        if request.generated_file:
            return GenerationResult(generating=False)
        return GenerationResult(generating=True, job_id=self._start_generation(request))

    def regenerate_pdf(self, session: Session, actor: Actor, request_id: int) -> GenerationResult:
        if not actor.is_admin:
            raise WorkflowAuthorizationError("Only administrators can regenerate documents", details={"id": request_id})
        request = self.store.resolve(session, request_id, actor=actor)
        if request.status != WorkflowStatus.APPROVED.value:
            raise WorkflowValidationError("Request is not approved", details={"status": request.status})

        if request.generated_file:
            self.documents.discard(request.generated_file)
            request = self.store.update(
                session,
                request_id,
                expected_version=request.row_version,
                changes={"generated_file": None},
                user_id=actor.user.id,
            )
        job_id = self._start_generation(request)
        logger.info(
            "request.regeneration_started",
            extra={"entity_type": "request", "entity_id": request_id, "actor_id": actor.user.id, "job_id": job_id},
        )
        return GenerationResult(generating=True, job_id=job_id)

    def get_geom(self, session: Session, request_id: int) -> dict[str, Any]:
        request = self.store.resolve(session, request_id)
        return to_feature_collection([(request.id, request.geom)])

    def render_html(self, session: Session, request_id: int, secret: str | None, screenshots: str | None = None) -> str:
        request = self.store.find_one(session, request_id)
        if request is None or not verify_request_secret(request.id, request.created_at, secret):
            raise EntityNotFoundError("request not found", details={"id": request_id})
        try:
            resolved = self.documents.render_screenshots(request, screenshots)
        except ValueError as exc:
            raise WorkflowValidationError(str(exc), details={"field": "screenshots"}) from exc
        return self.documents.render_html(request, resolved)


request_service = DataRequestService()


def get_request_service() -> DataRequestService:
    return request_service
