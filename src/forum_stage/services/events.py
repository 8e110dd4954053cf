"""In-process event hooks for side systems (badges, user stats, webhooks).

Handlers are fire-and-forget: a failing handler is logged and never breaks
the action that triggered the event.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventBus:
    """Named events with any number of subscribed handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Handler:
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        if handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def trigger(self, event: str, *args: Any, **kwargs: Any) -> None:
        logger.debug("Event %s", event)
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(*args, **kwargs)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, event)


_EVENT_BUS: EventBus | None = None


def get_event_bus() -> EventBus:
    """Return the process-wide event bus."""
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = EventBus()
    return _EVENT_BUS
