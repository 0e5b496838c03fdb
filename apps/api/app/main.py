from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.context import RequestContextMiddleware
from app.core.events import ENTITY_EVENT_ACTIONS, InternalEvent, entity_event_name, event_bus
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("app.lifecycle")
_subscriptions_registered = False

WORKFLOW_ENTITY_TYPES = ("form", "request")


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system.started", extra={"status": event.payload.get("service")})


def _on_entity_event(event: InternalEvent) -> None:
    envelope = event.payload
    logger.info(
        "workflow.event",
        extra={
            "entity_type": envelope.get("entity_type"),
            "entity_id": envelope.get("entity_id"),
            "status": (envelope.get("payload") or {}).get("status"),
            "actor_id": envelope.get("actor_user_id"),
        },
    )


def workflow_event_names() -> list[str]:
    return [
        entity_event_name(entity_type, action)
        for entity_type in WORKFLOW_ENTITY_TYPES
        for action in ENTITY_EVENT_ACTIONS
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in workflow_event_names():
            event_bus.subscribe(event_name, _on_entity_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.app_debug, lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

if settings.otel_enabled:
    setup_otel("api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
