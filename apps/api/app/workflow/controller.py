from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session

from app import events
from app.core.events import entity_event_name
from app.metrics import observe_rejected_transition, observe_side_effect_failure, observe_transition
from app.otel import get_tracer
from app.platform.store import EntityStore
from app.workflow.actors import TransitionContext
from app.workflow.errors import WorkflowAuthorizationError, WorkflowValidationError
from app.workflow.history import HistoryTrail
from app.workflow.models import WorkflowEntityMixin, utcnow
from app.workflow.permissions import EntitySnapshot, evaluate_permissions
from app.workflow.statuses import HISTORY_TYPE_BY_STATUS, HistoryType, WorkflowStatus, coerce_status
from app.workflow.transitions import FORM_SYSTEM_CREATION_STATUSES, PermissionEvaluator, assert_status_transition


logger = logging.getLogger("app.workflow")
tracer = get_tracer("app.workflow")

ModelT = TypeVar("ModelT", bound=WorkflowEntityMixin)

AUTO_APPROVE_COMMENT = "Automatically approved request."

Reaction = tuple[str, Callable[[], Any]]


def _no_reactions(*_: Any) -> list[Reaction]:
    return []


def _keep_values(session: Session, entity: Any, values: dict[str, Any], ctx: TransitionContext) -> dict[str, Any]:
    return values


@dataclass(slots=True)
class EntityWorkflow(Generic[ModelT]):
    """The per-entity-type functions the controller calls at fixed points.

    ``prepare`` runs before validation with ``entity`` set to ``None`` on
    creation; it normalizes geometry and applies field defaults and raises
    :class:`WorkflowValidationError` for malformed payloads. The ``on_*`` hooks
    run after commit and return named reactions that the controller executes
    one by one, each isolated from the others.
    """

    entity_type: str
    store: EntityStore[ModelT]
    history: HistoryTrail[Any]
    updatable_fields: frozenset[str]
    evaluate: PermissionEvaluator = evaluate_permissions
    system_creation_statuses: Collection[WorkflowStatus] = FORM_SYSTEM_CREATION_STATUSES
    auto_approve_admin_creations: bool = False
    prepare: Callable[[Session, ModelT | None, dict[str, Any], TransitionContext], dict[str, Any]] = _keep_values
    on_created: Callable[[Session, ModelT, TransitionContext], list[Reaction]] = _no_reactions
    on_status_changed: Callable[[Session, ModelT, EntitySnapshot, TransitionContext], list[Reaction]] = _no_reactions
    on_file_generated: Callable[[Session, ModelT], list[Reaction]] | None = None


@dataclass(slots=True)
class WorkflowController(Generic[ModelT]):
    workflow: EntityWorkflow[ModelT]

    @property
    def entity_type(self) -> str:
        return self.workflow.entity_type

    def create(self, session: Session, values: Mapping[str, Any], ctx: TransitionContext) -> ModelT:
        workflow = self.workflow
        actor = ctx.actor
        ctx.status_changed = False
        if workflow.auto_approve_admin_creations and actor is not None and actor.is_admin:
            ctx.auto_approve = True

        with tracer.start_as_current_span("workflow.transition") as span:
            span.set_attribute("workflow.entity_type", self.entity_type)
            span.set_attribute("workflow.action", "create")

            payload = self._guard(workflow.prepare, session, None, dict(values), ctx)
            proposed = payload.pop("status", None)
            self._guard(
                assert_status_transition,
                None,
                proposed,
                actor,
                system_creation_statuses=workflow.system_creation_statuses,
                evaluate=workflow.evaluate,
            )

            if ctx.auto_approve:
                status = WorkflowStatus.APPROVED
            else:
                status = coerce_status(proposed) or WorkflowStatus.CREATED
                ctx.auto_approve = status == WorkflowStatus.APPROVED
            payload["status"] = status.value

            entity = workflow.store.create(session, payload, user_id=ctx.user_id)
            span.set_attribute("workflow.status", status.value)

        observe_transition(self.entity_type, status.value)
        logger.info(
            "workflow.entity.created",
            extra={
                "entity_type": self.entity_type,
                "entity_id": entity.id,
                "status": status.value,
                "actor_id": ctx.user_id,
            },
        )
        self._publish("created", entity, ctx, {"status": status.value})

        reactions: list[Reaction] = [
            ("history", lambda: workflow.history.append(session, entity.id, HistoryType.CREATED, created_by=ctx.user_id)),
        ]
        if status == WorkflowStatus.APPROVED:
            reactions.append(
                (
                    "history",
                    lambda: workflow.history.append(
                        session,
                        entity.id,
                        HistoryType.APPROVED,
                        comment=AUTO_APPROVE_COMMENT,
                        created_by=ctx.user_id,
                    ),
                )
            )
        self._react(session, entity.id, reactions)
        self._react(session, entity.id, self._collect(workflow.on_created, session, entity, ctx))
        return entity

    def update(
        self,
        session: Session,
        entity_id: int,
        patch: Mapping[str, Any],
        ctx: TransitionContext,
    ) -> ModelT:
        workflow = self.workflow
        actor = ctx.actor
        ctx.status_changed = True

        with tracer.start_as_current_span("workflow.transition") as span:
            span.set_attribute("workflow.entity_type", self.entity_type)
            span.set_attribute("workflow.action", "update")
            span.set_attribute("workflow.entity_id", entity_id)

            entity = workflow.store.resolve(session, entity_id, actor=actor)
            previous = EntitySnapshot.of(entity)
            previous_file = getattr(entity, "generated_file", None)
            expected_version = entity.row_version

            permissions = workflow.evaluate(previous, actor)
            payload = dict(patch)
            # human updates always carry a status; a bare field patch means "resubmit"
            if not payload.get("status") and actor is not None:
                if not (permissions.edit or permissions.validate):
                    observe_rejected_transition(self.entity_type, "forbidden")
                    raise WorkflowAuthorizationError(
                        f"No rights to update {self.entity_type}",
                        details={"id": entity_id, "status": previous.status.value if previous.status else None},
                    )
                payload["status"] = WorkflowStatus.SUBMITTED.value

            payload = self._guard(workflow.prepare, session, entity, payload, ctx)
            proposed = payload.get("status") or None
            if proposed is not None:
                self._guard(
                    assert_status_transition,
                    previous,
                    proposed,
                    actor,
                    system_creation_statuses=workflow.system_creation_statuses,
                    evaluate=workflow.evaluate,
                )

            changes = {key: value for key, value in payload.items() if key in workflow.updatable_fields}
            new_status = coerce_status(proposed)
            if new_status is not None:
                changes["status"] = new_status.value
                if actor is not None and actor.is_admin and entity.responded_at is None:
                    changes["responded_at"] = utcnow()

            updated = workflow.store.update(
                session,
                entity_id,
                expected_version=expected_version,
                changes=changes,
                user_id=ctx.user_id,
            )
            span.set_attribute("workflow.status", updated.status)

        current = EntitySnapshot.of(updated)
        status_changed = current.status != previous.status
        file_generated = (
            workflow.on_file_generated is not None
            and not previous_file
            and bool(getattr(updated, "generated_file", None))
        )

        self._publish(
            "updated",
            updated,
            ctx,
            {
                "status": updated.status,
                "previous_status": previous.status.value if previous.status else None,
                "row_version": updated.row_version,
            },
        )

        if status_changed and current.status is not None:
            observe_transition(self.entity_type, current.status.value)
            logger.info(
                "workflow.transition.accepted",
                extra={
                    "entity_type": self.entity_type,
                    "entity_id": updated.id,
                    "status": current.status.value,
                    "previous_status": previous.status.value if previous.status else None,
                    "actor_id": ctx.user_id,
                },
            )
            history_type = HISTORY_TYPE_BY_STATUS[current.status]
            self._react(
                session,
                updated.id,
                [
                    (
                        "history",
                        lambda: workflow.history.append(
                            session,
                            updated.id,
                            history_type,
                            comment=ctx.comment,
                            created_by=ctx.user_id,
                        ),
                    )
                ],
            )
            self._react(session, updated.id, self._collect(workflow.on_status_changed, session, updated, previous, ctx))

        if file_generated and workflow.on_file_generated is not None:
            self._react(
                session,
                updated.id,
                [("history", lambda: workflow.history.append(session, updated.id, HistoryType.FILE_GENERATED))],
            )
            self._react(session, updated.id, self._collect(workflow.on_file_generated, session, updated))

        return updated

    def get_history(
        self,
        session: Session,
        entity_id: int,
        ctx: TransitionContext,
        *,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Any], int]:
        self.workflow.store.resolve(session, entity_id, actor=ctx.actor)
        return self.workflow.history.list(session, entity_id, page=page, page_size=page_size)

    def _guard(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except WorkflowValidationError as exc:
            observe_rejected_transition(self.entity_type, "validation")
            logger.info(
                "workflow.transition.rejected",
                extra={"entity_type": self.entity_type, "status": "rejected", "error": exc.message},
            )
            raise

    def _collect(self, hook: Callable[..., list[Reaction]], session: Session, *args: Any) -> list[Reaction]:
        try:
            return list(hook(session, *args))
        except Exception as exc:
            session.rollback()
            observe_side_effect_failure(self.entity_type, "reactions")
            logger.exception(
                "workflow.side_effect_failed",
                extra={"entity_type": self.entity_type, "side_effect": "reactions", "error": str(exc)[:500]},
            )
            return []

    def _react(self, session: Session, entity_id: int, reactions: list[Reaction]) -> None:
        for name, reaction in reactions:
            try:
                reaction()
            except Exception as exc:
                session.rollback()
                observe_side_effect_failure(self.entity_type, name)
                logger.exception(
                    "workflow.side_effect_failed",
                    extra={
                        "entity_type": self.entity_type,
                        "entity_id": entity_id,
                        "side_effect": name,
                        "error": str(exc)[:500],
                    },
                )

    def _publish(self, action: str, entity: ModelT, ctx: TransitionContext, payload: dict[str, Any]) -> None:
        envelope = events.build_envelope(
            entity_event_name(self.entity_type, action),
            entity_type=self.entity_type,
            entity_id=entity.id,
            actor_user_id=ctx.user_id,
            payload=payload,
        )
        try:
            events.publish(envelope)
        except Exception as exc:
            observe_side_effect_failure(self.entity_type, "event")
            logger.exception(
                "workflow.side_effect_failed",
                extra={"entity_type": self.entity_type, "entity_id": entity.id, "side_effect": "event", "error": str(exc)[:500]},
            )
