from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.workflow.actors import Actor
from app.workflow.statuses import PENDING_STATUSES, UserType, WorkflowStatus, coerce_status, is_terminal


@dataclass(frozen=True, slots=True)
class EntitySnapshot:
    """Workflow-relevant fields of a Form or Request at one point in time."""

    id: int | None
    status: WorkflowStatus | None
    created_by: int | None = None
    tenant_id: int | None = None
    assignee_id: int | None = None

    @classmethod
    def of(cls, entity: Any) -> EntitySnapshot:
        return cls(
            id=getattr(entity, "id", None),
            status=coerce_status(getattr(entity, "status", None)),
            created_by=getattr(entity, "created_by", None),
            tenant_id=getattr(entity, "tenant_id", None),
            assignee_id=getattr(entity, "assignee_id", None),
        )


@dataclass(frozen=True, slots=True)
class Permissions:
    edit: bool = False
    validate: bool = False
    assign: bool = False

    @classmethod
    def none(cls) -> Permissions:
        return cls()

    @classmethod
    def all(cls) -> Permissions:
        return cls(edit=True, validate=True, assign=True)


def is_owned_by(entity: EntitySnapshot, actor: Actor) -> bool:
    if entity.tenant_id is not None:
        return actor.tenant_profile is not None and actor.tenant_profile.id == entity.tenant_id
    return actor.user.id == entity.created_by


def evaluate_permissions(entity: EntitySnapshot | None, actor: Actor | None) -> Permissions:
    """Compute edit/validate rights of ``actor`` over ``entity``.

    A missing actor stands for a system-originated call. It gets every right on
    a live entity and on a not-yet-created one. Terminal entities grant nothing
    to anybody.
    """
    if entity is None or entity.id is None:
        return Permissions.all() if actor is None else Permissions.none()

    if is_terminal(entity.status):
        return Permissions.none()

    if actor is None:
        return Permissions.all()

    if is_owned_by(entity, actor):
        return Permissions(edit=entity.status == WorkflowStatus.RETURNED)

    if actor.is_admin:
        return Permissions(validate=entity.status in PENDING_STATUSES)

    return Permissions.none()


def evaluate_form_permissions(entity: EntitySnapshot | None, actor: Actor | None) -> Permissions:
    """Same as :func:`evaluate_permissions`, plus the form assignment right."""
    base = evaluate_permissions(entity, actor)
    if actor is None or entity is None or entity.id is None or is_terminal(entity.status):
        return base

    is_creator = actor.user.id == entity.created_by
    can_override = actor.is_super_admin or (entity.assignee_id is not None and entity.assignee_id == actor.user.id)
    assign = (
        not is_creator
        and actor.auth.type != UserType.USER
        and (actor.administers_groups or entity.assignee_id is None or can_override)
    )
    return Permissions(edit=base.edit, validate=base.validate, assign=assign)
