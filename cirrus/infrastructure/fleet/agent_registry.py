"""
Agent Registry

Architectural Intent:
- Build-server side registry of connected agents and their configuration
- Publishes lifecycle events (registration, authorization) on the bus
- Applies AgentMatchedEvent by writing the profile-id marker into the
  agent's configuration, so the agent is never matched twice
"""

from __future__ import annotations
from typing import Optional
import logging

from cirrus.domain.constants import PROFILE_ID_PARAM
from cirrus.domain.entities.agent import AgentDescription
from cirrus.domain.events.agent_events import (
    AgentAuthorizedEvent,
    AgentMatchedEvent,
    AgentRegisteredEvent,
)
from cirrus.domain.ports.event_bus_port import EventBusPort

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Registry of all agents connected to the build server."""

    def __init__(self, event_bus: EventBusPort) -> None:
        self._agents: dict[str, AgentDescription] = {}
        self._event_bus = event_bus
        self._unsubscribe = event_bus.subscribe(AgentMatchedEvent, self._on_agent_matched)

    async def register(
        self, agent: AgentDescription, running_build_id: int = -1
    ) -> AgentDescription:
        """Register a new agent or return the existing record."""
        existing = self._agents.get(agent.agent_id)
        if existing is not None:
            return existing
        self._agents[agent.agent_id] = agent
        logger.info("Agent registered: %s", agent.agent_id)
        await self._event_bus.publish(
            [AgentRegisteredEvent(aggregate_id=agent.agent_id, agent=agent, running_build_id=running_build_id)]
        )
        return agent

    async def authorize(self, agent_id: str) -> None:
        """Authorize an agent and announce the change with its previous state."""
        await self._set_authorized(agent_id, True)

    async def unauthorize(self, agent_id: str) -> None:
        await self._set_authorized(agent_id, False)

    async def _set_authorized(self, agent_id: str, authorized: bool) -> None:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise KeyError(f"Unknown agent: {agent_id}")
        was_authorized = agent.authorized
        agent.authorized = authorized
        await self._event_bus.publish(
            [
                AgentAuthorizedEvent(
                    aggregate_id=agent_id,
                    agent=agent,
                    was_enabled=agent.enabled,
                    was_authorized=was_authorized,
                )
            ]
        )

    async def _on_agent_matched(self, event: AgentMatchedEvent) -> None:
        agent = self._agents.get(event.agent_id)
        if agent is None:
            logger.warning("Matched agent %s is not registered", event.agent_id)
            return
        agent.configuration_parameters[PROFILE_ID_PARAM] = event.profile_id
        logger.info("Agent %s belongs to profile %s", event.agent_id, event.profile_id)

    def get(self, agent_id: str) -> Optional[AgentDescription]:
        return self._agents.get(agent_id)

    def get_all(self) -> list[AgentDescription]:
        return list(self._agents.values())

    def remove(self, agent_id: str) -> None:
        self._agents.pop(agent_id, None)

    def close(self) -> None:
        self._unsubscribe()

    @property
    def total_count(self) -> int:
        return len(self._agents)
