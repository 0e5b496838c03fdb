from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from app.context import get_log_context
from app.core.events import event_bus


def build_envelope(
    event_type: str,
    *,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None,
    payload: dict[str, Any],
) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "entity_type": entity_type,
        "entity_id": entity_id,
        "actor_user_id": actor_user_id,
        "payload": payload,
    }


def publish(envelope: dict[str, Any]) -> None:
    """Stamp the request (or worker job) ids onto the envelope and fan it out on the in-process bus."""
    for key, value in get_log_context().items():
        if envelope.get(key) is None and value is not None:
            envelope[key] = value
    envelope.setdefault("correlation_id", None)

    event_bus.publish(envelope["event_type"], envelope)
