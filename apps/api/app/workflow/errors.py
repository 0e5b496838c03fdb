from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base error for workflow failures surfaced synchronously to callers."""

    status_code = 400
    code = "workflow_error"

    def __init__(self, message: str, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class WorkflowValidationError(WorkflowError):
    """Raised for client-caused problems: illegal status, missing geometry, bad assignee."""

    status_code = 422
    code = "validation_error"


class WorkflowAuthorizationError(WorkflowError):
    """Raised when the actor lacks rights for the requested mutation."""

    status_code = 403
    code = "forbidden"


class EntityNotFoundError(WorkflowError):
    status_code = 404
    code = "not_found"


class WorkflowConflictError(WorkflowError):
    """Raised when the entity changed between validation and commit."""

    status_code = 409
    code = "row_version_conflict"


class DocumentPipelineError(RuntimeError):
    """Raised inside document workers; drives queue retries, never reaches HTTP callers."""
