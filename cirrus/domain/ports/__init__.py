"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
"""

from cirrus.domain.ports.cloud_api_port import CloudApiPort
from cirrus.domain.ports.event_bus_port import EventBusPort
from cirrus.domain.ports.cloud_manager_port import CloudManagerPort

__all__ = [
    "CloudApiPort",
    "EventBusPort",
    "CloudManagerPort",
]
