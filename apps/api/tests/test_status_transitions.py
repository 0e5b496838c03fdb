from __future__ import annotations

import pytest

from app.workflow.actors import Actor, ActorUser, AuthIdentity
from app.workflow.errors import WorkflowValidationError
from app.workflow.permissions import EntitySnapshot
from app.workflow.statuses import HISTORY_TYPE_BY_STATUS, HistoryType, UserType, WorkflowStatus, coerce_status
from app.workflow.transitions import (
    FORM_SYSTEM_CREATION_STATUSES,
    REQUEST_SYSTEM_CREATION_STATUSES,
    assert_status_transition,
    check_status_transition,
)


OWNER = Actor(user=ActorUser(id=1, type=UserType.USER), auth=AuthIdentity(id="owner", type=UserType.USER))
ADMIN = Actor(user=ActorUser(id=2, type=UserType.ADMIN), auth=AuthIdentity(id="admin", type=UserType.ADMIN))


def _entity(status: WorkflowStatus) -> EntitySnapshot:
    return EntitySnapshot(id=5, status=status, created_by=OWNER.user.id)


def test_missing_status_is_always_accepted() -> None:
    assert check_status_transition(None, None, OWNER) is None
    assert check_status_transition(_entity(WorkflowStatus.APPROVED), "", ADMIN) is None


def test_unknown_status_is_rejected() -> None:
    assert check_status_transition(None, "DRAFT", None) == "Cannot set status with value DRAFT"


def test_user_creation_only_accepts_created() -> None:
    assert check_status_transition(None, WorkflowStatus.CREATED, OWNER) is None
    assert check_status_transition(None, "APPROVED", ADMIN) == "Cannot set status with value APPROVED"


def test_system_creation_statuses_differ_per_entity() -> None:
    assert (
        check_status_transition(None, "APPROVED", None, system_creation_statuses=FORM_SYSTEM_CREATION_STATUSES)
        == "Cannot set status with value APPROVED"
    )
    assert check_status_transition(None, "APPROVED", None, system_creation_statuses=REQUEST_SYSTEM_CREATION_STATUSES) is None


def test_owner_resubmits_returned_entity() -> None:
    assert check_status_transition(_entity(WorkflowStatus.RETURNED), "SUBMITTED", OWNER) is None
    assert check_status_transition(_entity(WorkflowStatus.RETURNED), "APPROVED", OWNER) == "Cannot set status with value APPROVED"


@pytest.mark.parametrize("target", ["APPROVED", "REJECTED", "RETURNED"])
def test_admin_adjudicates_pending_entity(target: str) -> None:
    assert check_status_transition(_entity(WorkflowStatus.CREATED), target, ADMIN) is None
    assert check_status_transition(_entity(WorkflowStatus.SUBMITTED), target, ADMIN) is None


def test_admin_cannot_submit_or_touch_returned_entity() -> None:
    assert check_status_transition(_entity(WorkflowStatus.SUBMITTED), "SUBMITTED", ADMIN) is not None
    assert check_status_transition(_entity(WorkflowStatus.RETURNED), "APPROVED", ADMIN) is not None


def test_terminal_entities_reject_every_status() -> None:
    for target in WorkflowStatus:
        assert check_status_transition(_entity(WorkflowStatus.APPROVED), target, None) is not None
        assert check_status_transition(_entity(WorkflowStatus.REJECTED), target, ADMIN) is not None


def test_assert_status_transition_raises_validation_error() -> None:
    with pytest.raises(WorkflowValidationError) as exc_info:
        assert_status_transition(_entity(WorkflowStatus.CREATED), "SUBMITTED", OWNER)
    assert exc_info.value.message == "Cannot set status with value SUBMITTED"
    assert exc_info.value.details == {"status": "SUBMITTED"}
    assert exc_info.value.status_code == 422


def test_history_type_mapping_and_coercion() -> None:
    assert HISTORY_TYPE_BY_STATUS[WorkflowStatus.SUBMITTED] == HistoryType.UPDATED
    assert HISTORY_TYPE_BY_STATUS[WorkflowStatus.RETURNED] == HistoryType.RETURNED
    assert coerce_status("approved") is None
    assert coerce_status("APPROVED") == WorkflowStatus.APPROVED
