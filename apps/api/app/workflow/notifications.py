from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.core.config import Settings, get_settings
from app.metrics import observe_notification
from app.platform.tasks import TaskQueue, TaskSpec, get_task_queue
from app.workflow.statuses import ADJUDICATION_STATUSES, WorkflowStatus, coerce_status


logger = logging.getLogger("app.workflow.notifications")

SEND_EMAIL_TASK = "app.workflow.tasks.send_email"

STATUS_TITLES: dict[WorkflowStatus, str] = {
    WorkflowStatus.CREATED: "Submitted",
    WorkflowStatus.SUBMITTED: "Resubmitted",
    WorkflowStatus.APPROVED: "Approved",
    WorkflowStatus.REJECTED: "Rejected",
    WorkflowStatus.RETURNED: "Returned for correction",
}

FORM_TYPE_TEXT = {
    "NEW": "registration",
    "EDIT": "editing",
    "REMOVE": "deregistration",
}

FORM_ADMIN_PATH = "teikimo-anketos"
FORM_USER_PATH = "duomenu-teikimas"
REQUEST_PATH = "prasymai"


@dataclass(frozen=True, slots=True)
class Recipient:
    email: str | None
    is_admin: bool = False


@dataclass(frozen=True, slots=True)
class Notification:
    recipient: str
    template: str
    variables: dict[str, Any] = field(default_factory=dict)


def _host(settings: Settings, is_admin: bool) -> str:
    return (settings.admin_host if is_admin else settings.app_host).rstrip("/")


def _status_variables(status: WorkflowStatus) -> dict[str, str]:
    title = STATUS_TITLES[status]
    return {"title": title, "titleText": title.lower()}


def form_notification(
    *,
    form_id: int,
    status: str | WorkflowStatus | None,
    form_type: str | None,
    object_name: str | None,
    object_id: str | None,
    creator: Recipient | None,
    settings: Settings | None = None,
) -> Notification | None:
    """Decide who hears about a form reaching ``status``.

    New forms go to the admin triage inbox. Adjudication outcomes go to the
    creator. Resubmissions notify nobody. Forms without an object name are
    skipped because the message cannot identify them.
    """
    settings = settings or get_settings()
    status = coerce_status(status)
    if status is None or not object_name:
        return None

    if status == WorkflowStatus.CREATED:
        recipient: Recipient | None = Recipient(settings.notify_admin_email, is_admin=True)
    elif status in ADJUDICATION_STATUSES:
        recipient = creator
    else:
        return None
    if recipient is None or not recipient.email:
        return None

    path = FORM_ADMIN_PATH if recipient.is_admin else FORM_USER_PATH
    variables = _status_variables(status)
    variables.update(
        {
            "typeText": FORM_TYPE_TEXT.get(form_type or "", "submission"),
            "objectName": f"{object_name}, {object_id}" if object_id else object_name,
            "actionUrl": f"{_host(settings, recipient.is_admin)}/{path}/{form_id}",
        }
    )
    return Notification(recipient=recipient.email, template=settings.template_form_update, variables=variables)


def request_notification(
    *,
    request_id: int,
    status: str | WorkflowStatus | None,
    creator: Recipient | None,
    notify_email: str | None = None,
    settings: Settings | None = None,
) -> Notification | None:
    """Approval is announced later, once the generated file exists."""
    settings = settings or get_settings()
    status = coerce_status(status)
    if status is None or status in {WorkflowStatus.CREATED, WorkflowStatus.SUBMITTED, WorkflowStatus.APPROVED}:
        return None

    email = notify_email or (creator.email if creator else None)
    if not email:
        return None
    is_admin = bool(creator and creator.is_admin)
    variables = _status_variables(status)
    variables["actionUrl"] = f"{_host(settings, is_admin)}/{REQUEST_PATH}/{request_id}"
    return Notification(recipient=email, template=settings.template_request_update, variables=variables)


def file_generated_notification(
    *,
    request_id: int,
    creator: Recipient | None,
    notify_email: str | None = None,
    settings: Settings | None = None,
) -> Notification | None:
    settings = settings or get_settings()
    email = notify_email or (creator.email if creator else None)
    if not email:
        return None
    is_admin = bool(creator and creator.is_admin)
    return Notification(
        recipient=email,
        template=settings.template_request_file_generated,
        variables={"actionUrl": f"{_host(settings, is_admin)}/{REQUEST_PATH}/{request_id}"},
    )


def assignee_notification(
    *,
    form_id: int,
    assignee_email: str | None,
    settings: Settings | None = None,
) -> Notification | None:
    settings = settings or get_settings()
    if not assignee_email:
        return None
    return Notification(
        recipient=assignee_email,
        template=settings.template_form_assignee,
        variables={"actionUrl": f"{_host(settings, True)}/{FORM_ADMIN_PATH}/{form_id}"},
    )


class NotificationDispatcher:
    """Hands decided notifications to the background queue without waiting on delivery."""

    def __init__(self, queue: TaskQueue | None = None) -> None:
        self._queue = queue

    @property
    def queue(self) -> TaskQueue:
        if self._queue is None:
            self._queue = get_task_queue()
        return self._queue

    def dispatch(self, notification: Notification | None) -> bool:
        if notification is None:
            return False
        try:
            self.queue.enqueue(
                TaskSpec(
                    SEND_EMAIL_TASK,
                    kwargs={
                        "recipient": notification.recipient,
                        "template": notification.template,
                        "variables": notification.variables,
                    },
                )
            )
        except Exception as exc:
            observe_notification(notification.template, "failed")
            logger.exception(
                "notification.dispatch_failed",
                extra={"template": notification.template, "error": str(exc)[:500]},
            )
            return False
        observe_notification(notification.template, "queued")
        logger.info("notification.queued", extra={"template": notification.template, "status": "queued"})
        return True
