from __future__ import annotations

from collections.abc import Collection

from app.workflow.actors import Actor
from app.workflow.permissions import EntitySnapshot, evaluate_form_permissions
from app.workflow.statuses import UserType, is_terminal


def is_regular_admin(actor: Actor) -> bool:
    return not actor.is_super_admin and not actor.administers_groups


def check_assignee_change(
    entity: EntitySnapshot,
    actor: Actor | None,
    assignee_id: int | None,
    *,
    candidate_ids: Collection[int],
) -> str | None:
    """Return ``None`` if ``actor`` may set the form assignee to ``assignee_id``.

    ``assignee_id`` of ``None`` means unassign. ``candidate_ids`` are the users
    the actor is allowed to pick from.
    """
    if entity.id is None or is_terminal(entity.status):
        return "Assignee cannot be set."
    if actor is not None and actor.auth.type == UserType.USER:
        return "Assignee cannot be set."

    current = entity.assignee_id
    if actor is not None and is_regular_admin(actor):
        if current is not None and assignee_id is not None:
            return "Assignee already exists."
        if assignee_id is None and current is not None and current != actor.user.id:
            return "Cannot unassign others."

    if assignee_id is None and current is None:
        return "Already unassigned."
    if assignee_id is not None and assignee_id == entity.created_by:
        return "Cannot assign to creator."

    if actor is not None and not evaluate_form_permissions(entity, actor).assign:
        return "Assignee cannot be set."
    if assignee_id is not None and assignee_id not in candidate_ids:
        return "Assignee must be an administrator."
    return None
