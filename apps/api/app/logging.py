from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from app.context import get_correlation_id, get_log_context
from app.core.config import get_settings


_BASE_RECORD_KEYS = set(logging.makeLogRecord({}).__dict__.keys())
# structured keys accepted through ``extra=``; anything else stays out of the payload
_FIELD_KEYS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "entity_type",
        "entity_id",
        "status",
        "previous_status",
        "history_type",
        "actor_id",
        "template",
        "side_effect",
        "task_name",
        "error",
    }
)
_NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "kombu")
_MAX_ERROR_LENGTH = 500


class LogContextFilter(logging.Filter):
    """Stamps correlation and job ids from the current context onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if value and not getattr(record, key, None):
                setattr(record, key, value)
        return True


_DEFAULT_RECORD_FACTORY = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    # only correlation_id: job_id is also passed through ``extra=``, which may not overwrite attributes
    record = _DEFAULT_RECORD_FACTORY(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def __init__(self, *, service: str, environment: str) -> None:
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "service": self.service,
            "env": self.environment,
            "correlation_id": getattr(record, "correlation_id", None),
        }
        job_id = getattr(record, "job_id", None)
        if job_id:
            payload["job_id"] = job_id

        fields = {key: value for key, value in record.__dict__.items() if key in _FIELD_KEYS and key not in _BASE_RECORD_KEYS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)
        if fields:
            payload["fields"] = fields
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None, *, stream: TextIO | None = None) -> None:
    """Route every logger through one JSON stdout handler. Safe to call from the API and from workers."""
    root_logger = logging.getLogger()
    if getattr(root_logger, "_registry_configured", False):
        return

    settings = get_settings()
    resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(JsonLogFormatter(service=settings.app_name, environment=settings.app_env))
    handler.addFilter(LogContextFilter())

    root_logger.handlers.clear()
    root_logger.filters.clear()
    root_logger.setLevel(resolved)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    root_logger._registry_configured = True  # type: ignore[attr-defined]
