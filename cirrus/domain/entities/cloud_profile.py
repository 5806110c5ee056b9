from __future__ import annotations
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from cirrus.domain.constants import CLOUD_CODE


@dataclass(frozen=True)
class CloudProfile:
    """
    Operator-configured unit of provisioning policy.

    Parameters are only ever changed by replacing the whole set.
    """
    profile_id: str
    parameters: Mapping[str, str] = field(default_factory=dict)
    name: str = ""
    cloud_code: str = CLOUD_CODE

    def __post_init__(self) -> None:
        if not self.profile_id:
            raise ValueError("Profile id cannot be empty")
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def replace_parameters(self, parameters: Mapping[str, str]) -> "CloudProfile":
        return replace(self, parameters=dict(parameters))
