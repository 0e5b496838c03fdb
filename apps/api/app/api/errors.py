from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi.responses import JSONResponse
from starlette.requests import Request

from app.context import get_correlation_id
from app.workflow.errors import WorkflowError


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def workflow_error_response(request: Request, exc: WorkflowError, *, operation: str) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=f"{operation}_failed",
        message=exc.message,
        details=exc.details,
    )
