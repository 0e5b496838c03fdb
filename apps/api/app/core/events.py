from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]

# Envelope types emitted by the workflow controller: "<entity_type>.<action>".
ENTITY_EVENT_ACTIONS = ("created", "updated")


def entity_event_name(entity_type: str, action: str) -> str:
    if action not in ENTITY_EVENT_ACTIONS:
        raise ValueError(f"Unknown entity event action: {action}")
    return f"{entity_type}.{action}"


class InProcessEventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler not in self._subscribers[event_name]:
            self._subscribers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_name: str, payload: dict[str, Any]) -> InternalEvent:
        event = InternalEvent(name=event_name, payload=payload)
        for handler in list(self._subscribers.get(event_name, [])):
            handler(event)
        return event


event_bus = InProcessEventBus()
