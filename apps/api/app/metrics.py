from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

workflow_transitions_total = Counter(
    "workflow_transitions_total",
    "Accepted workflow status transitions",
    ["entity_type", "status"],
)

workflow_rejected_transitions_total = Counter(
    "workflow_rejected_transitions_total",
    "Rejected workflow mutations by reason",
    ["entity_type", "reason"],
)

workflow_history_records_total = Counter(
    "workflow_history_records_total",
    "Appended history records",
    ["entity_type", "history_type"],
)

workflow_side_effect_failures_total = Counter(
    "workflow_side_effect_failures_total",
    "Best-effort side effects that failed after commit",
    ["entity_type", "side_effect"],
)

notifications_total = Counter(
    "notifications_total",
    "Notifications by template and outcome",
    ["template", "status"],
)

document_jobs_total = Counter(
    "document_jobs_total",
    "Document pipeline jobs by step and status",
    ["job_type", "status"],
)

document_job_duration_seconds = Histogram(
    "document_job_duration_seconds",
    "Document pipeline job duration in seconds",
    ["job_type"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_transition(entity_type: str, status: str) -> None:
    workflow_transitions_total.labels(entity_type=entity_type, status=status).inc()


def observe_rejected_transition(entity_type: str, reason: str) -> None:
    workflow_rejected_transitions_total.labels(entity_type=entity_type, reason=reason).inc()


def observe_history_record(entity_type: str, history_type: str) -> None:
    workflow_history_records_total.labels(entity_type=entity_type, history_type=history_type).inc()


def observe_side_effect_failure(entity_type: str, side_effect: str) -> None:
    workflow_side_effect_failures_total.labels(entity_type=entity_type, side_effect=side_effect).inc()


def observe_notification(template: str, status: str) -> None:
    notifications_total.labels(template=template, status=status).inc()


def observe_document_job(job_type: str, status: str, duration: float) -> None:
    document_jobs_total.labels(job_type=job_type, status=status).inc()
    document_job_duration_seconds.labels(job_type=job_type).observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
