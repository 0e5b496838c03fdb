from celery import Celery
from celery.signals import setup_logging

from app.core.config import get_settings
from app.logging import configure_logging

settings = get_settings()

celery_app = Celery(
    "water_registry_api",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.workflow.tasks", "app.documents.tasks"],
)
celery_app.conf.update(
    worker_concurrency=settings.document_worker_concurrency,
    task_acks_late=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:  # type: ignore[no-untyped-def]
    # keeps Celery from installing its own root handler so worker logs stay JSON
    configure_logging()
