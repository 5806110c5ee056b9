"""
Cloud Manager Port

Architectural Intent:
- The fleet manager owns profiles and the live client of each profile
- The cloud client layer only reads from it
"""

from typing import Protocol, runtime_checkable, Any, Optional

from cirrus.domain.entities.cloud_profile import CloudProfile


@runtime_checkable
class CloudManagerPort(Protocol):
    def list_profiles(self) -> list[CloudProfile]:
        """Registered profiles, in registration order."""
        ...

    def get_client_if_exists(self, profile_id: str) -> Optional[Any]:
        """The live client of a profile, or None."""
        ...
