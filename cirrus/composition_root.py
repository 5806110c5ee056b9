"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the Cirrus cloud client layer
- Single place where connector, bus, registries and factory are wired
- No adapter instantiation should occur outside this module (except CLI)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- The factory receives the bus and the cloud manager explicitly; nothing
  registers itself in a process-wide singleton
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import partial
from typing import Mapping, Optional

from cirrus.application.client_factory import AzureCloudClientFactory
from cirrus.application.cloud_client import CloudClient
from cirrus.domain.entities.cloud_profile import CloudProfile
from cirrus.infrastructure.config import CirrusConfig, load_config
from cirrus.infrastructure.connector.azure_api_connector import AzureApiConnector
from cirrus.infrastructure.event_bus import EventBus
from cirrus.infrastructure.fleet.agent_registry import AgentRegistry
from cirrus.infrastructure.fleet.cloud_manager import InMemoryCloudManager
from cirrus.infrastructure.logging import get_secret_filter
from cirrus.infrastructure.telemetry.metrics import CloudMetrics


@dataclass
class CirrusContainer:
    """DI container holding all wired dependencies."""

    config: CirrusConfig
    event_bus: EventBus
    cloud_manager: InMemoryCloudManager
    agent_registry: AgentRegistry
    metrics: CloudMetrics
    factory: AzureCloudClientFactory

    def add_profile(self, profile: CloudProfile) -> CloudClient:
        """Register a profile and build its client (degraded if broken)."""
        self.cloud_manager.add_profile(profile)
        client = self.factory.create_client_for_profile(profile)
        self.cloud_manager.register_client(profile.profile_id, client)
        return client

    def update_profile(self, profile_id: str, parameters: Mapping[str, str]) -> CloudClient:
        """Replace a profile's parameters and rebuild its client."""
        profile = self.cloud_manager.get_profile(profile_id)
        if profile is None:
            raise KeyError(f"Unknown profile: {profile_id}")
        return self.add_profile(profile.replace_parameters(parameters))

    def close(self) -> None:
        self.factory.close()
        self.agent_registry.close()
        self.cloud_manager.shutdown()


def create_container(config: Optional[CirrusConfig] = None) -> CirrusContainer:
    """Create and wire all dependencies."""
    config = config or load_config()
    timeout = config.provider.timeout_seconds

    event_bus = EventBus()
    cloud_manager = InMemoryCloudManager()
    agent_registry = AgentRegistry(event_bus)
    metrics = CloudMetrics(enabled=config.telemetry.enabled)

    factory = AzureCloudClientFactory(
        cloud_manager,
        event_bus,
        config.storage.state_root,
        connect=partial(AzureApiConnector.connect, timeout=timeout),
        ambiguity_policy=config.matching.ambiguity_policy,
        metrics=metrics,
        secret_filter=get_secret_filter(),
        provider_timeout=timeout * 2,
    )

    return CirrusContainer(
        config=config,
        event_bus=event_bus,
        cloud_manager=cloud_manager,
        agent_registry=agent_registry,
        metrics=metrics,
        factory=factory,
    )
