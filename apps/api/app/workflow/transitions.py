from __future__ import annotations

from collections.abc import Callable, Collection

from app.workflow.actors import Actor
from app.workflow.errors import WorkflowValidationError
from app.workflow.permissions import EntitySnapshot, Permissions, evaluate_permissions
from app.workflow.statuses import ADJUDICATION_STATUSES, WorkflowStatus, coerce_status

PermissionEvaluator = Callable[[EntitySnapshot | None, Actor | None], Permissions]

FORM_SYSTEM_CREATION_STATUSES = frozenset({WorkflowStatus.CREATED})
REQUEST_SYSTEM_CREATION_STATUSES = frozenset({WorkflowStatus.CREATED, WorkflowStatus.APPROVED})


def _value_of(proposed: str | WorkflowStatus) -> str:
    return proposed.value if isinstance(proposed, WorkflowStatus) else str(proposed)


def check_status_transition(
    entity: EntitySnapshot | None,
    proposed: str | WorkflowStatus | None,
    actor: Actor | None,
    *,
    system_creation_statuses: Collection[WorkflowStatus] = FORM_SYSTEM_CREATION_STATUSES,
    evaluate: PermissionEvaluator = evaluate_permissions,
) -> str | None:
    """Return ``None`` when ``proposed`` is acceptable, otherwise the rejection message."""
    if proposed is None or proposed == "":
        return None

    error = f"Cannot set status with value {_value_of(proposed)}"
    status = coerce_status(proposed)
    if status is None:
        return error

    if entity is None or entity.id is None:
        allowed = system_creation_statuses if actor is None else (WorkflowStatus.CREATED,)
        return None if status in allowed else error

    permissions = evaluate(entity, actor)
    if permissions.edit:
        return None if status == WorkflowStatus.SUBMITTED else error
    if permissions.validate:
        return None if status in ADJUDICATION_STATUSES else error
    return error


def assert_status_transition(
    entity: EntitySnapshot | None,
    proposed: str | WorkflowStatus | None,
    actor: Actor | None,
    *,
    system_creation_statuses: Collection[WorkflowStatus] = FORM_SYSTEM_CREATION_STATUSES,
    evaluate: PermissionEvaluator = evaluate_permissions,
) -> None:
    error = check_status_transition(
        entity,
        proposed,
        actor,
        system_creation_statuses=system_creation_statuses,
        evaluate=evaluate,
    )
    if error is not None:
        raise WorkflowValidationError(error, details={"status": _value_of(proposed) if proposed else None})
