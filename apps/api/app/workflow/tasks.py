from __future__ import annotations

import logging
from typing import Any

from app.core.celery_app import celery_app
from app.core.config import get_settings
from app.metrics import observe_notification
from app.otel import job_span
from app.platform.mailer import NotifierError, get_notifier


logger = logging.getLogger("app.workflow.tasks")
settings = get_settings()


@celery_app.task(
    bind=True,
    name="app.workflow.tasks.send_email",
    autoretry_for=(NotifierError,),
    max_retries=max(settings.document_task_attempts - 1, 0),
    default_retry_delay=settings.document_task_backoff_seconds,
)
def send_email(self, recipient: str, template: str, variables: dict[str, Any]) -> None:
    with job_span("notification.send", job_id=getattr(self.request, "id", None), template=template):
        try:
            get_notifier().send(recipient, template, variables)
        except NotifierError:
            observe_notification(template, "failed")
            logger.warning("notification.send_failed", extra={"template": template, "status": "retrying"})
            raise
    observe_notification(template, "sent")
