from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from app.core.config import get_settings
from app.data_requests.api import router as requests_router
from app.forms.api import router as forms_router
from app.metrics import generate_metrics_payload, metrics_content_type
from app.users.api import get_current_actor
from app.workflow.actors import Actor

router = APIRouter()
router.include_router(forms_router)
router.include_router(requests_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(actor: Actor = Depends(get_current_actor)) -> dict[str, object]:
    return {
        "id": actor.user.id,
        "type": actor.user.type.value,
        "auth_type": actor.auth.type.value,
        "email": actor.user.email,
        "full_name": actor.user.full_name,
        "admin_of_groups": list(actor.auth.admin_of_groups),
        "profile": actor.tenant_profile.id if actor.tenant_profile else None,
    }


@router.get("/metrics", tags=["system"])
def metrics(actor: Actor = Depends(get_current_actor)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator rights required")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
