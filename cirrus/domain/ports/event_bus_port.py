"""
Event Bus Port

Architectural Intent:
- Abstract interface for publishing and observing domain events
- Subscribers receive a handle to undo their subscription, so a component
  that registers in its constructor can unregister on teardown
"""

from typing import Protocol, Callable, Awaitable, runtime_checkable
from cirrus.domain.events.event_base import DomainEvent

Handler = Callable[[DomainEvent], Awaitable[None]]


@runtime_checkable
class EventBusPort(Protocol):
    async def publish(self, events: list[DomainEvent]) -> None: ...

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]: ...

    def unsubscribe(self, event_type: type, handler: Handler) -> None: ...
