from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from app.context import reset_job_id, set_job_id
from app.core.celery_app import celery_app
from app.core.config import get_settings
from app.core.database import SessionLocal
from app.documents.pipeline import GENERATE_PDF_TASK, SAVE_SCREENSHOT_TASK, get_document_pipeline
from app.metrics import observe_document_job
from app.otel import job_span
from app.workflow.errors import DocumentPipelineError


logger = logging.getLogger("app.documents.tasks")
settings = get_settings()

RETRYABLE_ERRORS = (DocumentPipelineError, httpx.HTTPError)


def _job_id(task: Any) -> str | None:
    request = getattr(task, "request", None)
    return getattr(request, "id", None)


@celery_app.task(
    bind=True,
    name=SAVE_SCREENSHOT_TASK,
    autoretry_for=RETRYABLE_ERRORS,
    max_retries=max(settings.document_task_attempts - 1, 0),
    default_retry_delay=settings.document_task_backoff_seconds,
)
def save_screenshot(self, url: str, hash: str) -> dict[str, str]:  # noqa: A002
    job_id = _job_id(self)
    token = set_job_id(job_id)
    started = time.perf_counter()
    try:
        with job_span("document.screenshot", job_id=job_id, **{"document.hash": hash}):
            result = get_document_pipeline().save_screenshot(url, hash)
    except RETRYABLE_ERRORS as exc:
        observe_document_job("screenshot", "failed", time.perf_counter() - started)
        logger.warning("document.screenshot_failed", extra={"task_name": SAVE_SCREENSHOT_TASK, "error": str(exc)[:500]})
        raise
    finally:
        reset_job_id(token)
    observe_document_job("screenshot", "completed", time.perf_counter() - started)
    return result


@celery_app.task(
    bind=True,
    name=GENERATE_PDF_TASK,
    autoretry_for=RETRYABLE_ERRORS,
    max_retries=max(settings.document_task_attempts - 1, 0),
    default_retry_delay=settings.document_task_backoff_seconds,
)
def generate_and_save_pdf(self, children: list[dict[str, Any] | None], request_id: int) -> str:
    from app.data_requests.service import get_request_service

    job_id = _job_id(self)
    token = set_job_id(job_id)
    started = time.perf_counter()
    session = SessionLocal()
    try:
        with job_span("document.pdf", job_id=job_id, **{"request.id": request_id, "document.children": len(children)}):
            url = get_document_pipeline().generate_pdf(
                session,
                request_id,
                children,
                on_generated=get_request_service().save_generated_file,
            )
    except RETRYABLE_ERRORS as exc:
        observe_document_job("pdf", "failed", time.perf_counter() - started)
        logger.warning(
            "document.pdf_failed",
            extra={"task_name": GENERATE_PDF_TASK, "entity_type": "request", "entity_id": request_id, "error": str(exc)[:500]},
        )
        raise
    finally:
        session.close()
        reset_job_id(token)
    observe_document_job("pdf", "completed", time.perf_counter() - started)
    return url
