from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from app.core.config import Settings, get_settings


logger = logging.getLogger("app.mailer")


class NotifierError(RuntimeError):
    pass


class Notifier(Protocol):
    def send(self, recipient: str, template: str, variables: dict[str, Any]) -> None:
        ...


class PostmarkNotifier:
    """Sends template e-mails through the Postmark ``withTemplate`` endpoint."""

    def __init__(self, api_key: str, sender: str, *, api_url: str, timeout: float = 30.0) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout

    def send(self, recipient: str, template: str, variables: dict[str, Any]) -> None:
        payload = {
            "From": self.sender,
            "To": recipient.lower(),
            "TemplateAlias": template,
            "TemplateModel": variables,
        }
        headers = {
            "Accept": "application/json",
            "X-Postmark-Server-Token": self.api_key,
        }
        resp = httpx.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        if resp.status_code >= 400:
            raise NotifierError(f"Postmark error: {resp.status_code} {resp.text}")
        logger.info("notification.sent", extra={"template": template, "status": "sent"})


class NullNotifier:
    def send(self, recipient: str, template: str, variables: dict[str, Any]) -> None:
        logger.info("notification.suppressed", extra={"template": template, "status": "suppressed"})


def get_notifier(settings: Settings | None = None) -> Notifier:
    settings = settings or get_settings()
    if settings.emails_enabled and settings.postmark_api_key:
        return PostmarkNotifier(
            settings.postmark_api_key,
            settings.email_sender,
            api_url=settings.postmark_api_url,
            timeout=settings.http_timeout_seconds,
        )
    return NullNotifier()
