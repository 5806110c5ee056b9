"""
Azure Cloud Client Factory

Architectural Intent:
- Builds the CloudClient of a profile from its parameters, or a degraded
  client carrying typed errors when the parameters cannot work
- Owns the azureIdx state directory shared by every client it builds
- Listens for agent authorization and links newly authorized cloud agents
  to the instance that spawned them

Design Decisions:
- The event bus is injected; subscriptions are taken in the constructor and
  released by close()
- Configuration failures never raise out of client construction: they
  become TypedCloudErrorInfo records on a degraded client, so the profile
  still shows up with its errors
- Credential, subscription and parse errors are fatal for a profile; a bad
  max-instance-count is reported but only disables provisioning (limit 0)
"""

from __future__ import annotations
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional
import logging

from cirrus.application.cloud_client import CloudClient, DEFAULT_PROVIDER_TIMEOUT
from cirrus.application.image_data_parser import parse_image_parameters
from cirrus.domain.constants import (
    CLOUD_CODE,
    DISPLAY_NAME,
    MANAGEMENT_CERTIFICATE,
    MAX_INSTANCES_COUNT,
    SETTINGS_PAGE,
    STATE_DIRECTORY_NAME,
    SUBSCRIPTION_ID,
)
from cirrus.domain.entities.agent import AgentDescription
from cirrus.domain.entities.cloud_image import CloudImageTemplate
from cirrus.domain.entities.cloud_profile import CloudProfile
from cirrus.domain.errors import ConfigurationError
from cirrus.domain.events.agent_events import (
    AgentAuthorizedEvent,
    AgentMatchedEvent,
    AgentRegisteredEvent,
)
from cirrus.domain.ports.cloud_api_port import CloudApiPort
from cirrus.domain.ports.cloud_manager_port import CloudManagerPort
from cirrus.domain.ports.event_bus_port import EventBusPort
from cirrus.domain.services.agent_matching import (
    AgentInstanceMatcher,
    InstanceIndex,
    POLICY_FIRST,
    is_match_candidate,
)
from cirrus.domain.value_objects import typed_error
from cirrus.domain.value_objects.typed_error import TypedCloudErrorInfo
from cirrus.infrastructure.connector.azure_api_connector import (
    AzureApiConnector,
    validate_subscription_id,
)
from cirrus.infrastructure.connector.certificate import load_management_certificate
from cirrus.infrastructure.logging import SecretRedactingFilter
from cirrus.infrastructure.state_store import InstanceStateStore
from cirrus.infrastructure.telemetry.metrics import CloudMetrics

logger = logging.getLogger(__name__)

ConnectFn = Callable[[Optional[str], Optional[str]], CloudApiPort]

FATAL_ERROR_TYPES = frozenset(
    {typed_error.CERTIFICATE, typed_error.SUBSCRIPTION, typed_error.PARSE}
)


def parse_max_instance_count(value: Optional[str]) -> tuple[int, Optional[TypedCloudErrorInfo]]:
    """Absent, non-numeric or negative values give 0 (provisioning disabled)."""
    if value is None or not str(value).strip():
        return 0, None
    try:
        count = int(str(value).strip())
    except ValueError:
        return 0, TypedCloudErrorInfo(
            type=typed_error.CONFIG,
            message=f"Max instance count {value!r} is not a number",
        )
    if count < 0:
        return 0, TypedCloudErrorInfo(
            type=typed_error.CONFIG,
            message=f"Max instance count must not be negative, got {count}",
        )
    return count, None


class AzureCloudClientFactory:
    def __init__(
        self,
        cloud_manager: CloudManagerPort,
        event_bus: EventBusPort,
        state_root: Path | str,
        connect: ConnectFn = AzureApiConnector.connect,
        ambiguity_policy: str = POLICY_FIRST,
        metrics: Optional[CloudMetrics] = None,
        secret_filter: Optional[SecretRedactingFilter] = None,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT,
    ):
        self._cloud_manager = cloud_manager
        self._event_bus = event_bus
        self._connect = connect
        self._metrics = metrics
        self._secret_filter = secret_filter
        self._provider_timeout = provider_timeout

        self._state_directory = Path(state_root) / STATE_DIRECTORY_NAME
        InstanceStateStore(self._state_directory).ensure_directory()

        self._index = InstanceIndex()
        self._matcher = AgentInstanceMatcher(cloud_manager, self._index, ambiguity_policy)

        self._unsubscribers = [
            event_bus.subscribe(AgentAuthorizedEvent, self._on_agent_authorized),
            event_bus.subscribe(AgentRegisteredEvent, self._on_agent_registered),
        ]

    # ------------------------------------------------------------------
    # Fleet manager facing descriptors
    # ------------------------------------------------------------------

    @property
    def cloud_code(self) -> str:
        return CLOUD_CODE

    @property
    def display_name(self) -> str:
        return DISPLAY_NAME

    @property
    def edit_profile_url(self) -> str:
        return SETTINGS_PAGE

    @property
    def state_directory(self) -> Path:
        return self._state_directory

    @property
    def instance_index(self) -> InstanceIndex:
        return self._index

    def initial_parameter_values(self) -> dict[str, str]:
        return {}

    def properties_processor(self) -> Callable[[Mapping[str, str]], dict[str, str]]:
        """Validator for the settings form: parameter name -> problem."""
        field_for_type = {
            typed_error.CERTIFICATE: MANAGEMENT_CERTIFICATE,
            typed_error.SUBSCRIPTION: SUBSCRIPTION_ID,
            typed_error.CONFIG: MAX_INSTANCES_COUNT,
            typed_error.PARSE: "images_data",
        }

        def process(params: Mapping[str, str]) -> dict[str, str]:
            invalid: dict[str, str] = {}
            for error in self.check_client_params(params):
                invalid.setdefault(field_for_type.get(error.type, error.type), error.message)
            return invalid

        return process

    def can_be_agent_of_type(self, agent: AgentDescription) -> bool:
        return agent.has_instance_marker

    # ------------------------------------------------------------------
    # Client construction
    # ------------------------------------------------------------------

    def check_client_params(self, params: Mapping[str, str]) -> list[TypedCloudErrorInfo]:
        """Pre-flight validation run before a client is built."""
        errors: list[TypedCloudErrorInfo] = []
        try:
            validate_subscription_id(params.get(SUBSCRIPTION_ID))
        except ConfigurationError as e:
            errors.append(TypedCloudErrorInfo.from_exception(e))
        try:
            load_management_certificate(params.get(MANAGEMENT_CERTIFICATE))
        except ConfigurationError as e:
            errors.append(TypedCloudErrorInfo.from_exception(e))

        _, count_error = parse_max_instance_count(params.get(MAX_INSTANCES_COUNT))
        if count_error is not None:
            errors.append(count_error)

        try:
            parse_image_parameters(params)
        except ConfigurationError as e:
            errors.append(TypedCloudErrorInfo.from_exception(e))
        return errors

    def parse_image_data(self, params: Mapping[str, str]) -> list[CloudImageTemplate]:
        return parse_image_parameters(params)

    def create_new_client(
        self,
        state: CloudProfile,
        images: Iterable[CloudImageTemplate],
        params: Mapping[str, str],
    ) -> CloudClient:
        self._register_secrets(params)
        max_count, count_error = parse_max_instance_count(params.get(MAX_INSTANCES_COUNT))
        if count_error is not None:
            logger.warning("Profile %s: %s", state.profile_id, count_error.message)

        try:
            connector = self._connect(params.get(SUBSCRIPTION_ID), params.get(MANAGEMENT_CERTIFICATE))
        except ConfigurationError as e:
            logger.error("Profile %s cannot connect to Azure: %s", state.profile_id, e)
            errors = [TypedCloudErrorInfo.from_exception(e)]
            if count_error is not None:
                errors.append(count_error)
            client = self._build_client(state, params, [], None, max_count)
            client.update_errors(errors)
            return client

        client = self._build_client(state, params, images, connector, max_count)
        if count_error is not None:
            client.update_errors([count_error])
        return client

    def create_degraded_client(
        self,
        state: CloudProfile,
        params: Mapping[str, str],
        profile_errors: Iterable[TypedCloudErrorInfo],
    ) -> CloudClient:
        """Client with no images whose only purpose is to show profile errors."""
        self._register_secrets(params)
        errors = list(profile_errors)
        max_count, _ = parse_max_instance_count(params.get(MAX_INSTANCES_COUNT))
        try:
            connector = self._connect(params.get(SUBSCRIPTION_ID), params.get(MANAGEMENT_CERTIFICATE))
        except ConfigurationError as e:
            connector = None
            connect_error = TypedCloudErrorInfo.from_exception(e)
            if connect_error not in errors:
                errors.append(connect_error)

        client = self._build_client(state, params, [], connector, max_count)
        client.update_errors(errors)
        return client

    def create_client_for_profile(self, profile: CloudProfile) -> CloudClient:
        """Pre-flight check, parse images and build the profile's client."""
        params = profile.parameters
        errors = self.check_client_params(params)
        fatal = [e for e in errors if e.type in FATAL_ERROR_TYPES]
        if fatal:
            return self.create_degraded_client(profile, params, errors)
        return self.create_new_client(profile, self.parse_image_data(params), params)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _build_client(
        self,
        state: CloudProfile,
        params: Mapping[str, str],
        images: Iterable[CloudImageTemplate],
        connector: Optional[CloudApiPort],
        max_count: int,
    ) -> CloudClient:
        return CloudClient(
            params,
            images,
            connector,
            max_count,
            self._state_directory,
            profile_id=state.profile_id,
            index=self._index,
            event_bus=self._event_bus,
            metrics=self._metrics,
            provider_timeout=self._provider_timeout,
        )

    def _register_secrets(self, params: Mapping[str, str]) -> None:
        if self._secret_filter is not None:
            self._secret_filter.add_profile_parameters(params)

    # ------------------------------------------------------------------
    # Agent lifecycle
    # ------------------------------------------------------------------

    async def _on_agent_authorized(self, event: AgentAuthorizedEvent) -> None:
        agent = event.agent
        try:
            result = self._matcher.match(agent, event.was_authorized)
            if result is None:
                if is_match_candidate(agent, event.was_authorized) and self._metrics:
                    self._metrics.record_agent_unmatched()
                return

            await result.client.link_agent(result.instance, agent.agent_id)
            logger.info(
                "Agent %s linked to instance %s of profile %s",
                agent.agent_id,
                result.instance.instance_id,
                result.profile_id,
            )
            if self._metrics:
                self._metrics.record_agent_matched(result.profile_id)
            await self._event_bus.publish(
                [
                    AgentMatchedEvent(
                        aggregate_id=agent.agent_id,
                        agent_id=agent.agent_id,
                        profile_id=result.profile_id,
                        instance_id=result.instance.instance_id,
                    )
                ]
            )
        except Exception as e:
            logger.error("Matching agent %s to a cloud instance failed: %s", agent.agent_id, e)

    async def _on_agent_registered(self, event: AgentRegisteredEvent) -> None:
        # hook for shutdown timeout, server name and terminate-after-first-build
        logger.debug(
            "Agent %s registered (running build %s)",
            event.agent.agent_id,
            event.running_build_id,
        )
