"""
Agent and Instance Lifecycle Events

Architectural Intent:
- AgentAuthorizedEvent / AgentRegisteredEvent are raised by the fleet
  manager; the cloud client factory reacts to them
- AgentMatchedEvent is raised by the factory once an agent has been linked
  to the instance that spawned it, so the fleet manager can update its own
  bookkeeping
- Instance events let observers follow provisioning without polling
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional

from cirrus.domain.entities.agent import AgentDescription
from cirrus.domain.events.event_base import DomainEvent


@dataclass(frozen=True, kw_only=True)
class AgentAuthorizedEvent(DomainEvent):
    agent: AgentDescription
    was_enabled: bool = True
    was_authorized: bool = False


@dataclass(frozen=True, kw_only=True)
class AgentRegisteredEvent(DomainEvent):
    agent: AgentDescription
    running_build_id: int = -1


@dataclass(frozen=True, kw_only=True)
class AgentMatchedEvent(DomainEvent):
    agent_id: str
    profile_id: str
    instance_id: str

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            agent_id=self.agent_id,
            profile_id=self.profile_id,
            instance_id=self.instance_id,
        )
        return data


@dataclass(frozen=True, kw_only=True)
class InstanceStartedEvent(DomainEvent):
    profile_id: str
    instance_id: str
    image_id: str


@dataclass(frozen=True, kw_only=True)
class InstanceTerminatedEvent(DomainEvent):
    profile_id: str
    instance_id: str
    error: Optional[str] = None
