from enum import Enum


class InstanceStatus(Enum):
    """Lifecycle state of a cloud instance."""
    SCHEDULED_TO_START = "scheduled_to_start"
    STARTING = "starting"
    RUNNING = "running"
    SCHEDULED_TO_STOP = "scheduled_to_stop"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def is_live(self) -> bool:
        return self not in (InstanceStatus.STOPPED, InstanceStatus.ERROR)

    @staticmethod
    def from_power_state(power_state: str) -> "InstanceStatus":
        """Map an Azure role power state onto an instance status."""
        return _POWER_STATES.get(power_state, InstanceStatus.ERROR)


_POWER_STATES = {
    "Starting": InstanceStatus.STARTING,
    "Started": InstanceStatus.RUNNING,
    "Stopping": InstanceStatus.STOPPING,
    "Stopped": InstanceStatus.STOPPED,
    "Unknown": InstanceStatus.ERROR,
}
