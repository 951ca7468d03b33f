from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], None]


class EventBus:
    """Synchronous in-process publish/subscribe.

    A failing handler is logged and never stops the remaining handlers or
    reaches the emitter.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def emit(self, event_name: str, payload: dict[str, Any]) -> int:
        handlers = self.handlers_for(event_name)
        if not handlers:
            logger.debug("no handlers for event=%s", event_name)
            return 0
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception(
                    "event handler failed event=%s handler=%s",
                    event_name,
                    getattr(handler, "__name__", repr(handler)),
                    extra={"order_id": payload.get("order_id"), "trigger": payload.get("trigger")},
                )
        return delivered

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        if handler in self._handlers.get(event_name, []):
            self._handlers[event_name].remove(handler)

    def handlers_for(self, event_name: str) -> list[Handler]:
        return list(self._handlers.get(event_name, []))


event_bus = EventBus()
