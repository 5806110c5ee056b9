from cirrus.domain.value_objects.typed_error import TypedCloudErrorInfo
from cirrus.domain.value_objects.instance_status import InstanceStatus

__all__ = ["TypedCloudErrorInfo", "InstanceStatus"]
