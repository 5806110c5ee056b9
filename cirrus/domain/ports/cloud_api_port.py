"""
Cloud API Port

Architectural Intent:
- Port interface for the provider's control API
- Every call is remote, slow and fallible: callers apply a timeout and must
  not hold locks across it

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- Payloads are plain dicts shaped like the provider's role/deployment records
"""

from typing import Protocol, runtime_checkable, Any

from cirrus.domain.entities.cloud_image import CloudImageTemplate


@runtime_checkable
class CloudApiPort(Protocol):
    """Port for cloud provider instance operations."""

    subscription_id: str

    async def list_instances(self, service_name: str) -> list[dict[str, Any]]:
        """List the roles (VMs) deployed under a cloud service."""
        ...

    async def create_instance(
        self, image: CloudImageTemplate, name: str, user_data: str = ""
    ) -> dict[str, Any]:
        """Create and start a VM from the image. Returns the role record."""
        ...

    async def start_instance(self, service_name: str, name: str) -> dict[str, Any]:
        ...

    async def stop_instance(self, service_name: str, name: str) -> dict[str, Any]:
        ...

    async def delete_instance(self, service_name: str, name: str) -> bool:
        """Delete a VM. Returns True if it existed."""
        ...
