from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger("leadpool.events")


@dataclass(frozen=True)
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out to subscribers in the publishing thread.

    Subscribers register for an exact event name or for a name prefix such as
    ``"customer."``. A failing subscriber is logged and skipped; it never
    reaches the publisher, which is usually a post-commit hook.
    """

    def __init__(self) -> None:
        self._exact: dict[str, list[EventHandler]] = defaultdict(list)
        self._prefixed: list[tuple[str, EventHandler]] = []

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._exact[event_name].append(handler)

    def subscribe_prefix(self, prefix: str, handler: EventHandler) -> None:
        self._prefixed.append((prefix, handler))

    def handlers_for(self, event_name: str) -> list[EventHandler]:
        handlers = list(self._exact.get(event_name, []))
        handlers.extend(handler for prefix, handler in self._prefixed if event_name.startswith(prefix))
        return handlers

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = InternalEvent(name=event_name, payload=payload)
        delivered = 0
        for handler in self.handlers_for(event_name):
            try:
                handler(event)
            except Exception as exc:
                logger.exception("event.handler_failed", extra={"event_name": event_name, "error": str(exc)})
                continue
            delivered += 1
        return delivered


event_bus = InProcessEventBus()
