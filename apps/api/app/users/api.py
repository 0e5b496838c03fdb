from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.core.auth import AuthUser, get_current_user
from app.core.database import get_db
from app.users.service import user_service
from app.workflow.actors import Actor
from app.workflow.errors import WorkflowAuthorizationError


def get_current_actor(
    request: Request,
    auth_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Actor:
    context = getattr(request.state, "context", None)
    profile_id = getattr(context, "profile_id", None)
    correlation_id = get_correlation_id() or getattr(context, "request_id", None)
    try:
        return user_service.build_actor(db, auth_user, profile_id=profile_id, correlation_id=correlation_id)
    except WorkflowAuthorizationError as exc:
        code = status.HTTP_401_UNAUTHORIZED if auth_user.is_anonymous else status.HTTP_403_FORBIDDEN
        raise HTTPException(status_code=code, detail=exc.message)
