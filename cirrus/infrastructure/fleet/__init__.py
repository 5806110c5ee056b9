"""
Fleet Manager Infrastructure

Architectural Intent:
- In-memory build-server side collaborators: profile registry and agent
  registry
"""

from cirrus.infrastructure.fleet.cloud_manager import InMemoryCloudManager
from cirrus.infrastructure.fleet.agent_registry import AgentRegistry

__all__ = ["InMemoryCloudManager", "AgentRegistry"]
