"""
Cloud Instance

Architectural Intent:
- A running or transitioning VM created from exactly one image template
- Holds a weak back-reference to its owning client: the instance can find
  its client, it never keeps the client alive
- Identity (instance_id) is the VM name, which is also the value the agent
  reports in its instance-name marker
"""

from __future__ import annotations
import weakref
from datetime import datetime, UTC
from typing import Any, Optional

from cirrus.domain.value_objects.instance_status import InstanceStatus
from cirrus.domain.value_objects.typed_error import TypedCloudErrorInfo


class CloudInstance:
    __slots__ = (
        "_instance_id",
        "_image_id",
        "_status",
        "_start_time",
        "_network_identity",
        "_error",
        "_agent_id",
        "_client_ref",
        "__weakref__",
    )

    def __init__(
        self,
        instance_id: str,
        image_id: str,
        client: Any = None,
        status: InstanceStatus = InstanceStatus.SCHEDULED_TO_START,
        start_time: Optional[datetime] = None,
        network_identity: Optional[str] = None,
    ):
        if not instance_id:
            raise ValueError("Instance id cannot be empty")
        self._instance_id = instance_id
        self._image_id = image_id
        self._status = status
        self._start_time = start_time or datetime.now(UTC)
        self._network_identity = network_identity
        self._error: Optional[TypedCloudErrorInfo] = None
        self._agent_id: Optional[str] = None
        self._client_ref = weakref.ref(client) if client is not None else None

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def name(self) -> str:
        return self._instance_id

    @property
    def image_id(self) -> str:
        return self._image_id

    @property
    def status(self) -> InstanceStatus:
        return self._status

    @property
    def start_time(self) -> datetime:
        return self._start_time

    @property
    def network_identity(self) -> Optional[str]:
        return self._network_identity

    @property
    def error(self) -> Optional[TypedCloudErrorInfo]:
        return self._error

    @property
    def agent_id(self) -> Optional[str]:
        return self._agent_id

    @property
    def client(self) -> Any:
        """Owning client, or None once the client has been garbage collected."""
        return self._client_ref() if self._client_ref is not None else None

    def set_status(self, status: InstanceStatus) -> None:
        self._status = status
        if status is not InstanceStatus.ERROR:
            self._error = None

    def set_network_identity(self, identity: Optional[str]) -> None:
        self._network_identity = identity

    def set_error(self, error: TypedCloudErrorInfo) -> None:
        self._error = error
        self._status = InstanceStatus.ERROR

    def attach_agent(self, agent_id: str) -> None:
        """The single mutation performed by agent matching."""
        self._agent_id = agent_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self._instance_id,
            "image_id": self._image_id,
            "status": self._status.value,
            "start_time": self._start_time.isoformat(),
            "network_identity": self._network_identity,
            "agent_id": self._agent_id,
            "error": self._error.to_dict() if self._error else None,
        }

    def __repr__(self) -> str:
        return (
            f"CloudInstance(instance_id={self._instance_id!r}, "
            f"image_id={self._image_id!r}, status={self._status.name})"
        )
