from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from app.forms.models import Form, FormType
from app.forms.repository import FormStore, form_history
from app.forms.schemas import AssigneeRead, FormAssigneeResult, FormCreate, FormPage, FormRead, FormUpdate
from app.platform.spatial import GeometryError, normalize_geometry
from app.users.models import User
from app.users.service import UserService, user_service
from app.workflow.actors import Actor, TransitionContext
from app.workflow.assignment import check_assignee_change, is_regular_admin
from app.workflow.controller import EntityWorkflow, Reaction, WorkflowController
from app.workflow.errors import WorkflowAuthorizationError, WorkflowValidationError
from app.workflow.notifications import NotificationDispatcher, assignee_notification, form_notification
from app.workflow.permissions import EntitySnapshot, evaluate_form_permissions, is_owned_by
from app.workflow.schemas import HistoryPage, HistoryRead
from app.workflow.statuses import UserType
from app.workflow.transitions import FORM_SYSTEM_CREATION_STATUSES


logger = logging.getLogger("app.forms")

UPDATABLE_FIELDS = frozenset(
    {
        "object_type",
        "object_name",
        "cadastral_id",
        "description",
        "geom",
        "files",
        "provider_type",
        "provided_by",
        "data",
    }
)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


@dataclass(slots=True)
class FormService:
    store: FormStore = field(default_factory=FormStore)
    users: UserService = field(default_factory=lambda: user_service)
    dispatcher: NotificationDispatcher = field(default_factory=NotificationDispatcher)
    controller: WorkflowController[Form] = field(init=False)

    def __post_init__(self) -> None:
        self.controller = WorkflowController(
            EntityWorkflow(
                entity_type="form",
                store=self.store,
                history=form_history,
                updatable_fields=UPDATABLE_FIELDS,
                evaluate=evaluate_form_permissions,
                system_creation_statuses=FORM_SYSTEM_CREATION_STATUSES,
                prepare=self._prepare,
                on_created=self._on_created,
                on_status_changed=self._on_status_changed,
            )
        )

    def _prepare(self, session: Session, entity: Form | None, values: dict[str, Any], ctx: TransitionContext) -> dict[str, Any]:
        values = {key: _enum_value(value) for key, value in values.items()}
        raw_geom = values.pop("geom", None)

        if entity is None:
            form_type = values.get("type") or FormType.NEW.value
            values["type"] = form_type
            if form_type == FormType.NEW.value and not raw_geom:
                raise WorkflowValidationError("Geometry must be provided", details={"field": "geom"})
            if ctx.actor is not None:
                if not values.get("provided_by"):
                    values["provided_by"] = ctx.actor.user.full_name or None
                if ctx.actor.tenant_profile is not None:
                    values["tenant_id"] = ctx.actor.tenant_profile.id

        if raw_geom:
            try:
                values["geom"] = normalize_geometry(raw_geom)
            except GeometryError as exc:
                raise WorkflowValidationError(str(exc), details={"field": "geom"})
        return values

    def _notify(self, session: Session, form: Form) -> None:
        self.dispatcher.dispatch(
            form_notification(
                form_id=form.id,
                status=form.status,
                form_type=form.type,
                object_name=form.object_name,
                object_id=form.cadastral_id,
                creator=self.users.recipient(session, form.created_by),
            )
        )

    def _on_created(self, session: Session, form: Form, ctx: TransitionContext) -> list[Reaction]:
        return [("notification", lambda: self._notify(session, form))]

    def _on_status_changed(
        self,
        session: Session,
        form: Form,
        previous: EntitySnapshot,
        ctx: TransitionContext,
    ) -> list[Reaction]:
        return [("notification", lambda: self._notify(session, form))]

    def to_read(self, form: Form, actor: Actor | None) -> FormRead:
        permissions = evaluate_form_permissions(EntitySnapshot.of(form), actor)
        return FormRead.model_validate(form).model_copy(
            update={
                "can_edit": permissions.edit,
                "can_validate": permissions.validate,
                "can_assign": permissions.assign,
            }
        )

    def create_form(self, session: Session, actor: Actor | None, dto: FormCreate) -> FormRead:
        ctx = TransitionContext(actor=actor)
        form = self.controller.create(session, dto.model_dump(mode="python", exclude_none=True), ctx)
        return self.to_read(form, actor)

    def update_form(self, session: Session, actor: Actor | None, form_id: int, dto: FormUpdate) -> FormRead:
        ctx = TransitionContext(actor=actor, comment=dto.comment)
        patch = dto.model_dump(mode="python", exclude_unset=True, exclude={"comment"})
        form = self.controller.update(session, form_id, patch, ctx)
        return self.to_read(form, actor)

    def get_form(self, session: Session, actor: Actor | None, form_id: int) -> FormRead:
        return self.to_read(self.store.resolve(session, form_id, actor=actor), actor)

    def list_forms(
        self,
        session: Session,
        actor: Actor | None,
        *,
        status: list[str] | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> FormPage:
        filters = {"status": status} if status else None
        total = self.store.count(session, actor=actor, filters=filters)
        rows = self.store.find(
            session,
            actor=actor,
            filters=filters,
            limit=page_size,
            offset=max(page - 1, 0) * page_size,
        )
        return FormPage(
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
        form_id: int,
        *,
        page: int = 1,
        page_size: int = 10,
    ) -> HistoryPage:
        rows, total = self.controller.get_history(session, form_id, TransitionContext(actor=actor), page=page, page_size=page_size)
        return HistoryPage(
            rows=[HistoryRead.model_validate(row) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )

    def get_assignees(self, session: Session, actor: Actor) -> list[AssigneeRead]:
        if actor.auth.type == UserType.USER:
            return []
        if is_regular_admin(actor):
            own = self.users.get(session, actor.user.id)
            return [AssigneeRead.model_validate(own)] if own is not None else []
        return [AssigneeRead.model_validate(user) for user in self.users.list_admins(session)]

    def set_assignee(
        self,
        session: Session,
        actor: Actor | None,
        form_id: int,
        assignee_id: int | None,
    ) -> FormAssigneeResult:
        form = self.store.resolve(session, form_id, actor=actor)
        snapshot = EntitySnapshot.of(form)
        if actor is None:
            candidate_ids = {user.id for user in self.users.list_admins(session)}
        else:
            candidate_ids = {item.id for item in self.get_assignees(session, actor)}

        error = check_assignee_change(snapshot, actor, assignee_id, candidate_ids=candidate_ids)
        if error is not None:
            logger.info(
                "form.assignee.rejected",
                extra={"entity_type": "form", "entity_id": form_id, "status": "rejected", "error": error},
            )
            raise WorkflowValidationError(error, details={"assignee_id": assignee_id})

        updated = self.store.update(
            session,
            form_id,
            expected_version=form.row_version,
            changes={"assignee_id": assignee_id},
            user_id=actor.user.id if actor is not None else None,
        )
        logger.info(
            "form.assignee.changed",
            extra={"entity_type": "form", "entity_id": form_id, "actor_id": actor.user.id if actor else None},
        )

        if assignee_id is not None:
            try:
                assignee: User | None = self.users.get(session, assignee_id)
                self.dispatcher.dispatch(
                    assignee_notification(form_id=form_id, assignee_email=assignee.email if assignee else None)
                )
            except Exception as exc:
                logger.exception(
                    "workflow.side_effect_failed",
                    extra={"entity_type": "form", "entity_id": form_id, "side_effect": "notification", "error": str(exc)[:500]},
                )
        return FormAssigneeResult(success=True, assignee_id=updated.assignee_id)

    def delete_form(self, session: Session, actor: Actor, form_id: int) -> None:
        form = self.store.resolve(session, form_id, actor=actor)
        if not (is_owned_by(EntitySnapshot.of(form), actor) or actor.is_admin):
            raise WorkflowAuthorizationError("No rights to delete form", details={"id": form_id})
        self.store.soft_delete(session, form, user_id=actor.user.id)
        logger.info("form.deleted", extra={"entity_type": "form", "entity_id": form_id, "actor_id": actor.user.id})


form_service = FormService()


def get_form_service() -> FormService:
    return form_service
