"""
Cloud Image Template

Architectural Intent:
- Declarative description of a VM image a profile may launch
- Immutable once built; the only change ever applied is password injection,
  which produces a new template
- The source name is the join key between the plaintext image list and the
  secured password map, and is unique within a profile

Security:
- The password is excluded from repr() and to_dict() so a template can be
  logged or persisted without leaking the secret
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class CloneBehaviour(Enum):
    START_STOP = "START_STOP"
    FRESH_CLONE = "FRESH_CLONE"
    ON_DEMAND_CLONE = "ON_DEMAND_CLONE"

    @property
    def is_clone(self) -> bool:
        return self is not CloneBehaviour.START_STOP


# images_data payload key -> field name
_PAYLOAD_KEYS = {
    "sourceName": "source_name",
    "serviceName": "service_name",
    "vmNamePrefix": "vm_name_prefix",
    "vmSize": "vm_size",
    "osType": "os_type",
    "behaviour": "behaviour",
    "maxInstances": "max_instances",
    "username": "username",
}


@dataclass(frozen=True)
class CloudImageTemplate:
    source_name: str
    service_name: str = ""
    vm_name_prefix: str = ""
    vm_size: str = "Small"
    os_type: str = "Linux"
    behaviour: CloneBehaviour = CloneBehaviour.START_STOP
    max_instances: int = 1
    username: str = ""
    password: Optional[str] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.source_name:
            raise ValueError("Image source name cannot be empty")
        if self.max_instances < 0:
            raise ValueError(f"max_instances must be >= 0, got {self.max_instances}")

    @property
    def image_id(self) -> str:
        return self.source_name

    @property
    def name_prefix(self) -> str:
        return self.vm_name_prefix or self.source_name

    @property
    def requires_password(self) -> bool:
        """Creating a fresh VM needs an admin password; starting an existing one does not."""
        return self.behaviour.is_clone

    @property
    def has_password(self) -> bool:
        return bool(self.password)

    def with_password(self, password: str) -> "CloudImageTemplate":
        return replace(self, password=password)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CloudImageTemplate":
        """Build a template from one entry of the images_data payload.

        Accepts both the camelCase keys the settings page writes and
        snake_case keys. Unknown keys are ignored. A password is never read
        from this payload.
        """
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _PAYLOAD_KEYS.get(key, key)
            if name in _PAYLOAD_KEYS.values() and value is not None:
                values[name] = value

        if "behaviour" in values:
            values["behaviour"] = CloneBehaviour(str(values["behaviour"]).upper())
        if "max_instances" in values:
            values["max_instances"] = int(values["max_instances"])
        return CloudImageTemplate(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceName": self.source_name,
            "serviceName": self.service_name,
            "vmNamePrefix": self.vm_name_prefix,
            "vmSize": self.vm_size,
            "osType": self.os_type,
            "behaviour": self.behaviour.value,
            "maxInstances": self.max_instances,
            "username": self.username,
        }
