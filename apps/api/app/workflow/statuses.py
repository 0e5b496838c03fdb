from __future__ import annotations

from enum import Enum


class WorkflowStatus(str, Enum):
    CREATED = "CREATED"
    SUBMITTED = "SUBMITTED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"
    APPROVED = "APPROVED"


class HistoryType(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"
    APPROVED = "APPROVED"
    FILE_GENERATED = "FILE_GENERATED"


class UserType(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class TenantRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


TERMINAL_STATUSES = frozenset({WorkflowStatus.APPROVED, WorkflowStatus.REJECTED})
PENDING_STATUSES = frozenset({WorkflowStatus.CREATED, WorkflowStatus.SUBMITTED})
ADJUDICATION_STATUSES = frozenset({WorkflowStatus.REJECTED, WorkflowStatus.RETURNED, WorkflowStatus.APPROVED})

HISTORY_TYPE_BY_STATUS: dict[WorkflowStatus, HistoryType] = {
    WorkflowStatus.CREATED: HistoryType.CREATED,
    WorkflowStatus.SUBMITTED: HistoryType.UPDATED,
    WorkflowStatus.REJECTED: HistoryType.REJECTED,
    WorkflowStatus.RETURNED: HistoryType.RETURNED,
    WorkflowStatus.APPROVED: HistoryType.APPROVED,
}


def coerce_status(value: str | WorkflowStatus | None) -> WorkflowStatus | None:
    """Return the enum member for ``value`` or ``None`` when it is empty or unknown."""
    if value is None or value == "":
        return None
    if isinstance(value, WorkflowStatus):
        return value
    try:
        return WorkflowStatus(str(value))
    except ValueError:
        return None


def is_terminal(status: str | WorkflowStatus | None) -> bool:
    return coerce_status(status) in TERMINAL_STATUSES
