"""
Cloud Client

Architectural Intent:
- One client per profile: owns the profile's image templates and the
  instances started from them
- Carries the profile's error records; a client with errors and no images
  is degraded but stays registered so operators can see what is wrong
- Provider failures never escape: they are recorded on the instance or on
  the client and the rest of the client keeps working

Design Decisions:
- The instance collection is guarded by an RLock; the lock is never held
  across a provider call (take a snapshot, release, then await)
- Every provider call is bounded by asyncio.wait_for
- Instances are reported to a shared InstanceIndex so agent matching can
  look them up by identity, and written to the on-disk instance index so a
  restarted server picks them up again
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Awaitable, Iterable, Mapping, Optional
import asyncio
import itertools
import logging
import threading

from cirrus.domain.constants import SECURE_PREFIX
from cirrus.domain.entities.agent import AgentDescription
from cirrus.domain.entities.cloud_image import CloudImageTemplate, CloneBehaviour
from cirrus.domain.entities.cloud_instance import CloudInstance
from cirrus.domain.errors import ConfigurationError, ProviderError, ProviderTimeoutError
from cirrus.domain.events.agent_events import InstanceStartedEvent, InstanceTerminatedEvent
from cirrus.domain.events.event_base import DomainEvent
from cirrus.domain.ports.cloud_api_port import CloudApiPort
from cirrus.domain.ports.event_bus_port import EventBusPort
from cirrus.domain.services.agent_matching import InstanceIndex
from cirrus.domain.value_objects import typed_error
from cirrus.domain.value_objects.instance_status import InstanceStatus
from cirrus.domain.value_objects.typed_error import TypedCloudErrorInfo
from cirrus.infrastructure.state_store import InstanceStateStore
from cirrus.infrastructure.telemetry.metrics import CloudMetrics

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT = 60.0


class CloudClient:
    def __init__(
        self,
        profile_parameters: Mapping[str, str],
        images: Iterable[CloudImageTemplate],
        connector: Optional[CloudApiPort],
        max_instance_count: int,
        state_directory: Path | str,
        profile_id: str = "default",
        index: Optional[InstanceIndex] = None,
        event_bus: Optional[EventBusPort] = None,
        metrics: Optional[CloudMetrics] = None,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT,
    ):
        self._profile_id = profile_id
        self._parameters = {
            k: v for k, v in profile_parameters.items() if not k.startswith(SECURE_PREFIX)
        }
        self._images: dict[str, CloudImageTemplate] = {}
        for image in images:
            if image.image_id in self._images:
                raise ValueError(f"Duplicate image source name: {image.image_id}")
            self._images[image.image_id] = image

        self._connector = connector
        self._max_instance_count = max(0, max_instance_count)
        self._store = InstanceStateStore(state_directory)
        self._index = index if index is not None else InstanceIndex()
        self._event_bus = event_bus
        self._metrics = metrics
        self._provider_timeout = provider_timeout

        self._instances: dict[str, CloudInstance] = {}
        # names whose start call is still in flight
        self._pending: set[str] = set()
        self._errors: list[TypedCloudErrorInfo] = []
        self._lock = threading.RLock()
        self._persist_lock = threading.Lock()
        self._disposed = False
        self._initialized = False

        self._restore_instances()
        logger.debug(
            "Cloud client %s created with %d image(s), limit %d",
            profile_id,
            len(self._images),
            self._max_instance_count,
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def profile_id(self) -> str:
        return self._profile_id

    @property
    def parameters(self) -> dict[str, str]:
        """Profile parameters without secure: entries."""
        return dict(self._parameters)

    @property
    def connector(self) -> Optional[CloudApiPort]:
        return self._connector

    @property
    def max_instance_count(self) -> int:
        return self._max_instance_count

    @property
    def images(self) -> list[CloudImageTemplate]:
        return list(self._images.values())

    def find_image_by_id(self, image_id: str) -> Optional[CloudImageTemplate]:
        return self._images.get(image_id)

    @property
    def instances(self) -> list[CloudInstance]:
        with self._lock:
            return list(self._instances.values())

    def find_instance_by_id(self, instance_id: str) -> Optional[CloudInstance]:
        with self._lock:
            return self._instances.get(instance_id)

    def find_instance_by_agent(self, agent: AgentDescription) -> Optional[CloudInstance]:
        instance_name = agent.instance_name
        if not instance_name:
            return None
        return self.find_instance_by_id(instance_name)

    @property
    def errors(self) -> list[TypedCloudErrorInfo]:
        with self._lock:
            return list(self._errors)

    @property
    def error_info(self) -> Optional[TypedCloudErrorInfo]:
        with self._lock:
            return self._errors[0] if self._errors else None

    @property
    def has_errors(self) -> bool:
        with self._lock:
            return bool(self._errors)

    def update_errors(self, errors: Iterable[TypedCloudErrorInfo]) -> None:
        """Replace the error set. Later calls overwrite, they never accumulate."""
        with self._lock:
            self._errors = list(errors)
        if self._errors:
            logger.warning(
                "Profile %s has %d error(s): %s",
                self._profile_id,
                len(self._errors),
                "; ".join(str(e) for e in self._errors),
            )

    @property
    def is_degraded(self) -> bool:
        return not self._images and self.has_errors

    @property
    def is_initialized(self) -> bool:
        return self._initialized or self.is_degraded

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def _live_instances(self, image_id: Optional[str] = None) -> list[CloudInstance]:
        with self._lock:
            return [
                i for i in self._instances.values()
                if i.status.is_live and (image_id is None or i.image_id == image_id)
            ]

    def can_start_new_instance(self, image: CloudImageTemplate) -> bool:
        if self._disposed or self._connector is None or self.is_degraded:
            return False
        if self._images.get(image.image_id) != image:
            return False
        if self._max_instance_count <= 0:
            return False
        with self._lock:
            if len(self._live_instances()) >= self._max_instance_count:
                return False
            image_live = self._live_instances(image.image_id)
            if image.behaviour is CloneBehaviour.START_STOP:
                return not image_live
            return len(image_live) < image.max_instances

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    async def start_new_instance(
        self, image: CloudImageTemplate, user_data: str = ""
    ) -> CloudInstance:
        """Start a VM from the image.

        Raises ConfigurationError when the profile or image limits forbid a
        new instance. Every other failure is recorded on the returned
        instance.
        """
        with self._lock:
            if not self.can_start_new_instance(image):
                raise ConfigurationError(
                    f"Cannot start a new instance of {image.image_id} in profile {self._profile_id}"
                )
            image = self._images[image.image_id]
            name = self._allocate_name(image)
            instance = self._instances.get(name)
            if instance is None:
                instance = CloudInstance(name, image.image_id, client=self)
                self._instances[name] = instance
            instance.set_status(InstanceStatus.SCHEDULED_TO_START)
            self._index.add(self._profile_id, instance)
            self._pending.add(name)

        try:
            await self._start(image, instance, user_data)
        finally:
            with self._lock:
                self._pending.discard(name)
        self._persist()
        return instance

    async def _start(
        self, image: CloudImageTemplate, instance: CloudInstance, user_data: str
    ) -> None:
        name = instance.instance_id
        if image.requires_password and not image.has_password:
            self._fail_instance(
                instance,
                TypedCloudErrorInfo(
                    type=typed_error.PASSWORD,
                    message=f"Image {image.image_id} requires a password and none is set",
                ),
            )
            return

        instance.set_status(InstanceStatus.STARTING)
        try:
            if image.behaviour is CloneBehaviour.START_STOP:
                role = await self._provider_call(
                    self._connector.start_instance(image.service_name, name)
                )
            else:
                role = await self._provider_call(
                    self._connector.create_instance(image, name, user_data)
                )
        except ProviderError as e:
            logger.error("Failed to start %s in profile %s: %s", name, self._profile_id, e)
            self._fail_instance(instance, TypedCloudErrorInfo.from_exception(e))
        else:
            self._apply_role(instance, role)
            logger.info("Started instance %s (profile %s)", name, self._profile_id)
            if self._metrics:
                self._metrics.record_instance_started(self._profile_id, image.image_id)
            await self._publish(
                InstanceStartedEvent(
                    aggregate_id=self._profile_id,
                    profile_id=self._profile_id,
                    instance_id=name,
                    image_id=image.image_id,
                )
            )

    async def restart_instance(self, instance: CloudInstance) -> None:
        image = self._images.get(instance.image_id)
        if image is None or self.find_instance_by_id(instance.instance_id) is not instance:
            raise ConfigurationError(f"Instance {instance.instance_id} does not belong to this client")

        instance.set_status(InstanceStatus.STARTING)
        try:
            await self._provider_call(
                self._connector.stop_instance(image.service_name, instance.instance_id)
            )
            role = await self._provider_call(
                self._connector.start_instance(image.service_name, instance.instance_id)
            )
        except ProviderError as e:
            logger.error("Failed to restart %s: %s", instance.instance_id, e)
            self._fail_instance(instance, TypedCloudErrorInfo.from_exception(e))
        else:
            self._apply_role(instance, role)
        self._persist()

    async def terminate_instance(self, instance: CloudInstance) -> None:
        image = self._images.get(instance.image_id)
        if self.find_instance_by_id(instance.instance_id) is not instance:
            raise ConfigurationError(f"Instance {instance.instance_id} does not belong to this client")

        if image is None or self._connector is None:
            self._forget(instance)
            self._persist()
            return

        instance.set_status(InstanceStatus.STOPPING)
        try:
            if image.behaviour is CloneBehaviour.START_STOP:
                role = await self._provider_call(
                    self._connector.stop_instance(image.service_name, instance.instance_id)
                )
                self._apply_role(instance, role)
            else:
                await self._provider_call(
                    self._connector.delete_instance(image.service_name, instance.instance_id)
                )
                self._forget(instance)
        except ProviderError as e:
            logger.error("Failed to terminate %s: %s", instance.instance_id, e)
            instance.set_error(TypedCloudErrorInfo.from_exception(e))
            await self._publish_terminated(instance, str(e))
        else:
            logger.info("Terminated instance %s (profile %s)", instance.instance_id, self._profile_id)
            await self._publish_terminated(instance, None)
        self._persist()

    async def sync_instances(self) -> None:
        """Reconcile tracked instances with what the provider reports.

        Instances the provider no longer knows are dropped, statuses are
        refreshed and VMs created from this profile's images but not yet
        tracked are adopted. Failed instances with no VM behind them are
        dropped; instances whose start is still in flight are left alone. A
        provider failure becomes a client error and leaves the instances
        untouched.
        """
        if self._connector is None or self._disposed:
            return

        with self._lock:
            settled = {name for name in self._instances if name not in self._pending}

        services = sorted({image.service_name for image in self._images.values()})
        remote: dict[str, dict[str, Any]] = {}
        try:
            for service_name in services:
                for role in await self._provider_call(self._connector.list_instances(service_name)):
                    remote[role.get("RoleName", "")] = role
        except ProviderError as e:
            logger.error("Instance sync failed for profile %s: %s", self._profile_id, e)
            self._record_provider_error(TypedCloudErrorInfo.from_exception(e))
            return

        with self._lock:
            for instance in list(self._instances.values()):
                name = instance.instance_id
                # a start finishing while the listing was awaited is not drift
                if name in self._pending or name not in settled:
                    continue
                role = remote.get(name)
                if role is not None:
                    self._apply_role(instance, role)
                    continue
                if instance.status is InstanceStatus.ERROR:
                    logger.info("Dropping failed instance %s with no VM behind it", name)
                else:
                    logger.info("Instance %s disappeared from the provider, dropping it", name)
                self._forget(instance)

            for name, role in remote.items():
                if name in self._instances:
                    continue
                image = self._image_for_role(name, role)
                if image is None:
                    continue
                instance = CloudInstance(name, image.image_id, client=self)
                self._apply_role(instance, role)
                self._instances[name] = instance
                self._index.add(self._profile_id, instance)
                logger.info("Adopted instance %s into profile %s", name, self._profile_id)

            self._errors = [e for e in self._errors if e.type != typed_error.PROVIDER]
            self._initialized = True

        self._persist()

    async def link_agent(self, instance: CloudInstance, agent_id: str) -> None:
        """Record which agent runs on the instance. The only write matching performs.

        The state file is written off the event loop.
        """
        instance.attach_agent(agent_id)
        await asyncio.to_thread(self._persist)

    def dispose(self) -> None:
        """Detach from the index; instances keep running remotely."""
        self._disposed = True
        for instance in self.instances:
            self._index.remove(self._profile_id, instance.instance_id, instance)
        logger.debug("Cloud client %s disposed", self._profile_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _allocate_name(self, image: CloudImageTemplate) -> str:
        if image.behaviour is CloneBehaviour.START_STOP:
            return image.source_name
        for n in itertools.count(1):
            name = f"{image.name_prefix}-{n}"
            if name not in self._instances and not self._index.contains(name):
                return name
        raise AssertionError("unreachable")

    def _image_for_role(self, name: str, role: dict[str, Any]) -> Optional[CloudImageTemplate]:
        service_name = role.get("ServiceName", "")
        for image in self._images.values():
            if image.service_name != service_name:
                continue
            if image.behaviour is CloneBehaviour.START_STOP:
                if name == image.source_name:
                    return image
            elif name.startswith(f"{image.name_prefix}-") and name[len(image.name_prefix) + 1:].isdigit():
                return image
        return None

    async def _provider_call(self, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self._provider_timeout)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                f"Provider call timed out after {self._provider_timeout:.1f}s"
            ) from None

    @staticmethod
    def _apply_role(instance: CloudInstance, role: dict[str, Any]) -> None:
        instance.set_status(InstanceStatus.from_power_state(role.get("PowerState", "Unknown")))
        instance.set_network_identity(role.get("IpAddress"))

    def _fail_instance(self, instance: CloudInstance, error: TypedCloudErrorInfo) -> None:
        instance.set_error(error)
        if self._metrics:
            self._metrics.record_instance_failed(self._profile_id, error.type)

    def _forget(self, instance: CloudInstance) -> None:
        with self._lock:
            if self._instances.get(instance.instance_id) is instance:
                del self._instances[instance.instance_id]
        self._index.remove(self._profile_id, instance.instance_id, instance)

    def _record_provider_error(self, error: TypedCloudErrorInfo) -> None:
        with self._lock:
            self._errors = [e for e in self._errors if e.type != typed_error.PROVIDER]
            self._errors.append(error)

    def _restore_instances(self) -> None:
        for record in self._store.load(self._profile_id):
            image = self._images.get(record.get("image_id", ""))
            instance_id = record.get("instance_id")
            if image is None or not instance_id:
                continue
            try:
                status = InstanceStatus(record.get("status"))
            except ValueError:
                status = InstanceStatus.ERROR
            instance = CloudInstance(
                instance_id,
                image.image_id,
                client=self,
                status=status,
                network_identity=record.get("network_identity"),
            )
            if record.get("agent_id"):
                instance.attach_agent(record["agent_id"])
            self._instances[instance_id] = instance
            self._index.add(self._profile_id, instance)
        if self._instances:
            logger.info(
                "Restored %d instance(s) for profile %s", len(self._instances), self._profile_id
            )

    def _persist(self) -> None:
        # snapshot and write as one step; link_agent writes from a worker thread
        with self._persist_lock:
            records = [instance.to_dict() for instance in self.instances]
            try:
                self._store.save(self._profile_id, records)
            except OSError as e:
                logger.error("Cannot write instance index for %s: %s", self._profile_id, e)

    async def _publish(self, event: DomainEvent) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish([event])

    async def _publish_terminated(self, instance: CloudInstance, error: Optional[str]) -> None:
        await self._publish(
            InstanceTerminatedEvent(
                aggregate_id=self._profile_id,
                profile_id=self._profile_id,
                instance_id=instance.instance_id,
                error=error,
            )
        )
