"""
Event Bus Infrastructure

Architectural Intent:
- In-memory event bus connecting the fleet manager's agent lifecycle to
  the cloud client factory
- Supports async subscription handlers
- Subscriptions can be undone, either through the returned callable or
  unsubscribe()
"""

import logging
from typing import Callable, Awaitable
from cirrus.domain.events.event_base import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            event_type = type(event)
            # copy: handlers may unsubscribe while being dispatched
            for handler in list(self._handlers.get(event_type, ())):
                await handler(event)

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers or handler not in handlers:
            logger.debug("Handler for %s was not subscribed", event_type.__name__)
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event_type]

    def subscriber_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, ()))
