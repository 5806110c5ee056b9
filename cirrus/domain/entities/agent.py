"""
Agent Description

Architectural Intent:
- The build server's view of a connected worker
- Its free-form configuration parameters are the only link back to the
  cloud instance that spawned it
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from cirrus.domain.constants import INSTANCE_NAME_PARAM, PROFILE_ID_PARAM


@dataclass
class AgentDescription:
    agent_id: str
    name: str = ""
    configuration_parameters: dict[str, str] = field(default_factory=dict)
    authorized: bool = False
    enabled: bool = True

    @property
    def instance_name(self) -> Optional[str]:
        return self.configuration_parameters.get(INSTANCE_NAME_PARAM)

    @property
    def profile_id(self) -> Optional[str]:
        return self.configuration_parameters.get(PROFILE_ID_PARAM)

    @property
    def has_instance_marker(self) -> bool:
        return INSTANCE_NAME_PARAM in self.configuration_parameters

    @property
    def has_profile_marker(self) -> bool:
        return PROFILE_ID_PARAM in self.configuration_parameters
