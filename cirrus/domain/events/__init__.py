"""
Domain Events Package

Architectural Intent:
- Events are the only channel between the build server's agent lifecycle
  and the cloud client layer
"""

from cirrus.domain.events.event_base import DomainEvent
from cirrus.domain.events.agent_events import (
    AgentAuthorizedEvent,
    AgentRegisteredEvent,
    AgentMatchedEvent,
    InstanceStartedEvent,
    InstanceTerminatedEvent,
)

__all__ = [
    "DomainEvent",
    "AgentAuthorizedEvent",
    "AgentRegisteredEvent",
    "AgentMatchedEvent",
    "InstanceStartedEvent",
    "InstanceTerminatedEvent",
]
