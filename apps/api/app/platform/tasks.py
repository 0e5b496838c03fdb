from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from celery import chord, group


logger = logging.getLogger("app.tasks")


@dataclass(frozen=True, slots=True)
class TaskSpec:
    name: str
    kwargs: dict[str, Any] = field(default_factory=dict)


class TaskQueue(Protocol):
    def enqueue(self, task: TaskSpec) -> str:
        ...

    def enqueue_flow(self, parent: TaskSpec, children: list[TaskSpec]) -> str:
        """Run ``children`` independently, then ``parent`` with their results as first argument."""
        ...


class CeleryTaskQueue:
    """Submits tasks by name so callers never import worker modules."""

    def __init__(self, app=None) -> None:  # type: ignore[no-untyped-def]
        if app is None:
            from app.core.celery_app import celery_app

            app = celery_app
        self.app = app

    def enqueue(self, task: TaskSpec) -> str:
        result = self.app.send_task(task.name, kwargs=task.kwargs)
        logger.info("task.enqueued", extra={"task_name": task.name, "job_id": result.id})
        return str(result.id)

    def enqueue_flow(self, parent: TaskSpec, children: list[TaskSpec]) -> str:
        parent_signature = self.app.signature(parent.name, kwargs=parent.kwargs)
        if not children:
            result = parent_signature.clone(args=([],)).apply_async()
        else:
            header = group(self.app.signature(child.name, kwargs=child.kwargs) for child in children)
            result = chord(header)(parent_signature)
        logger.info(
            "task.flow_enqueued",
            extra={"task_name": parent.name, "job_id": result.id, "status": f"children={len(children)}"},
        )
        return str(result.id)


_queue: TaskQueue | None = None


def get_task_queue() -> TaskQueue:
    global _queue
    if _queue is None:
        _queue = CeleryTaskQueue()
    return _queue
