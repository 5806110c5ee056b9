"""Tests for AzureCloudClientFactory."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from cirrus.application.client_factory import (
    AzureCloudClientFactory,
    parse_max_instance_count,
)
from cirrus.application.cloud_client import CloudClient
from cirrus.domain.entities.agent import AgentDescription
from cirrus.domain.entities.cloud_profile import CloudProfile
from cirrus.domain.events.agent_events import (
    AgentAuthorizedEvent,
    AgentMatchedEvent,
    AgentRegisteredEvent,
)
from cirrus.domain.value_objects.typed_error import TypedCloudErrorInfo
from cirrus.infrastructure.event_bus import EventBus
from cirrus.infrastructure.fleet.cloud_manager import InMemoryCloudManager
from cirrus.infrastructure.logging import SecretRedactingFilter


IMAGES = [{"sourceName": "webA", "serviceName": "svc", "behaviour": "FRESH_CLONE", "maxInstances": 2}]


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def factory(bus, tmp_path):
    return AzureCloudClientFactory(InMemoryCloudManager(), bus, tmp_path)


class TestDescriptors:
    def test_identity(self, factory):
        assert factory.cloud_code == "azure"
        assert factory.display_name == "Azure"
        assert factory.edit_profile_url == "azure-settings.html"
        assert factory.initial_parameter_values() == {}

    def test_state_directory_created(self, factory, tmp_path):
        assert factory.state_directory == tmp_path / "azureIdx"
        assert factory.state_directory.is_dir()

    def test_state_directory_creation_idempotent(self, bus, tmp_path):
        (tmp_path / "azureIdx").mkdir()
        AzureCloudClientFactory(InMemoryCloudManager(), bus, tmp_path)
        AzureCloudClientFactory(InMemoryCloudManager(), bus, tmp_path)
        assert (tmp_path / "azureIdx").is_dir()

    def test_can_be_agent_of_type(self, factory):
        cloud_agent = AgentDescription("a", configuration_parameters={"env.AZURE_INSTANCE_NAME": "web-1"})
        assert factory.can_be_agent_of_type(cloud_agent)
        assert not factory.can_be_agent_of_type(AgentDescription("b"))


class TestMaxInstanceCount:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, 0), ("", 0), ("7", 7), (" 3 ", 3), ("abc", 0), ("-2", 0), ("1.5", 0)],
    )
    def test_parse(self, value, expected):
        count, _ = parse_max_instance_count(value)
        assert count == expected

    def test_invalid_reports_config_error(self):
        _, error = parse_max_instance_count("lots")
        assert error.type == "config"

    def test_absent_has_no_error(self):
        assert parse_max_instance_count(None) == (0, None)


class TestCheckClientParams:
    def test_valid_params(self, factory, make_params):
        assert factory.check_client_params(make_params(images=IMAGES)) == []

    def test_pkcs12_certificate_accepted(self, factory, make_params, pkcs12_certificate):
        params = make_params(managementCertificate=pkcs12_certificate)
        assert factory.check_client_params(params) == []

    def test_bad_subscription(self, factory, make_params):
        errors = factory.check_client_params(make_params(subscriptionId="not-a-guid"))
        assert [e.type for e in errors] == ["subscription"]

    def test_bad_certificate(self, factory, make_params):
        errors = factory.check_client_params(make_params(managementCertificate="garbage!"))
        assert [e.type for e in errors] == ["certificate"]

    def test_all_problems_reported(self, factory, make_params):
        params = make_params(
            images="[oops",
            subscriptionId=None,
            managementCertificate=None,
            maxInstancesCount="many",
        )
        types = sorted(e.type for e in factory.check_client_params(params))
        assert types == ["certificate", "config", "parse", "subscription"]

    def test_properties_processor(self, factory, make_params):
        process = factory.properties_processor()
        invalid = process(make_params(subscriptionId="nope", maxInstancesCount="x"))
        assert set(invalid) == {"subscriptionId", "maxInstancesCount"}
        assert process(make_params()) == {}


class TestCreateNewClient:
    def test_builds_client(self, factory, make_params):
        params = make_params(images=IMAGES, passwords={"webA": "secret1"})
        images = factory.parse_image_data(params)
        client = factory.create_new_client(CloudProfile("p1", params), images, params)
        assert isinstance(client, CloudClient)
        assert client.profile_id == "p1"
        assert client.max_instance_count == 5
        assert client.images[0].password == "secret1"
        assert not client.has_errors

    def test_unparsable_max_count_gives_zero_ceiling(self, factory, make_params):
        params = make_params(images=IMAGES, maxInstancesCount="plenty")
        client = factory.create_new_client(
            CloudProfile("p1", params), factory.parse_image_data(params), params
        )
        assert client.max_instance_count == 0
        assert not client.is_degraded
        assert not client.can_start_new_instance(client.images[0])

    def test_absent_max_count_gives_zero_ceiling(self, factory, make_params):
        params = make_params(images=IMAGES, maxInstancesCount=None)
        client = factory.create_new_client(CloudProfile("p1", params), [], params)
        assert client.max_instance_count == 0
        assert not client.has_errors

    def test_invalid_certificate_gives_degraded_client(self, factory, make_params, expired_certificate):
        params = make_params(images=IMAGES, managementCertificate=expired_certificate)
        client = factory.create_new_client(
            CloudProfile("p1", params), factory.parse_image_data(params), params
        )
        assert client.is_degraded
        assert client.images == []
        assert client.connector is None
        assert client.errors[0].type == "certificate"

    def test_connect_failure_keeps_count_error(self, factory, make_params, expired_certificate):
        params = make_params(
            images=IMAGES, managementCertificate=expired_certificate, maxInstancesCount="lots"
        )
        client = factory.create_new_client(CloudProfile("p1", params), [], params)
        assert [e.type for e in client.errors] == ["certificate", "config"]
        assert client.error_info.type == "certificate"

    def test_registers_secrets_for_redaction(self, bus, tmp_path, make_params):
        redactor = SecretRedactingFilter()
        factory = AzureCloudClientFactory(
            InMemoryCloudManager(), bus, tmp_path, secret_filter=redactor
        )
        params = make_params(images=IMAGES, passwords={"webA": "hunter22"})
        factory.create_new_client(CloudProfile("p1", params), [], params)
        record = logging.LogRecord("cirrus", logging.INFO, "x.py", 1, "pw=%s", ("hunter22",), None)
        redactor.filter(record)
        assert "hunter22" not in record.getMessage()


class TestCreateDegradedClient:
    def test_errors_attached_without_images(self, factory, make_params):
        params = make_params(images=IMAGES)
        errors = [TypedCloudErrorInfo("parse", "bad images")]
        client = factory.create_degraded_client(CloudProfile("p1", params), params, errors)
        assert client.images == []
        assert client.errors == errors
        assert client.is_degraded
        assert client.connector is not None

    def test_connector_failure_added(self, factory, make_params):
        params = make_params(subscriptionId="bad")
        errors = [TypedCloudErrorInfo("parse", "bad images")]
        client = factory.create_degraded_client(CloudProfile("p1", params), params, errors)
        assert [e.type for e in client.errors] == ["parse", "subscription"]


class TestCreateClientForProfile:
    def test_healthy_profile(self, factory, make_params):
        profile = CloudProfile("p1", make_params(images=IMAGES))
        client = factory.create_client_for_profile(profile)
        assert [i.source_name for i in client.images] == ["webA"]
        assert not client.has_errors

    def test_parse_error_degrades(self, factory, make_params):
        profile = CloudProfile("p1", make_params(images="[{"))
        client = factory.create_client_for_profile(profile)
        assert client.is_degraded
        assert [e.type for e in client.errors] == ["parse"]

    def test_bad_max_count_reported_not_degraded(self, factory, make_params):
        profile = CloudProfile("p1", make_params(images=IMAGES, maxInstancesCount="x"))
        client = factory.create_client_for_profile(profile)
        assert not client.is_degraded
        assert [e.type for e in client.errors] == ["config"]
        assert client.max_instance_count == 0


class TestSubscriptions:
    def test_subscribes_on_construction(self, bus, factory):
        assert bus.subscriber_count(AgentAuthorizedEvent) == 1
        assert bus.subscriber_count(AgentRegisteredEvent) == 1

    def test_close_unsubscribes(self, bus, factory):
        factory.close()
        factory.close()
        assert bus.subscriber_count(AgentAuthorizedEvent) == 0
        assert bus.subscriber_count(AgentRegisteredEvent) == 0

    @pytest.mark.asyncio
    async def test_registered_event_is_noop(self, bus, factory):
        await bus.publish([AgentRegisteredEvent(agent=AgentDescription("a1"), running_build_id=3)])


# ---------------------------------------------------------------------------
# Agent authorization handler
# ---------------------------------------------------------------------------

def _authorized(agent_id, instance_name):
    agent = AgentDescription(
        agent_id,
        configuration_parameters={"env.AZURE_INSTANCE_NAME": instance_name},
        authorized=True,
    )
    return AgentAuthorizedEvent(agent=agent, was_authorized=False)


class TestAgentAuthorizedHandler:
    @pytest.fixture
    def manager(self):
        return InMemoryCloudManager()

    async def _running(self, manager, bus, tmp_path, make_params):
        factory = AzureCloudClientFactory(manager, bus, tmp_path)
        profile = manager.add_profile(
            CloudProfile("p1", make_params(images=IMAGES, passwords={"webA": "secret1"}))
        )
        client = factory.create_client_for_profile(profile)
        manager.register_client("p1", client)
        instance = await client.start_new_instance(client.images[0])
        return client, instance

    @pytest.mark.asyncio
    async def test_link_failure_logged_not_raised(
        self, bus, manager, tmp_path, make_params, monkeypatch, caplog
    ):
        client, instance = await self._running(manager, bus, tmp_path, make_params)
        monkeypatch.setattr(client, "link_agent", AsyncMock(side_effect=RuntimeError("disk gone")))

        with caplog.at_level(logging.ERROR, logger="cirrus"):
            await bus.publish([_authorized("a1", instance.instance_id)])

        assert "Matching agent a1" in caplog.text
        assert "disk gone" in caplog.text
        assert instance.agent_id is None

        monkeypatch.undo()
        await bus.publish([_authorized("a2", instance.instance_id)])
        assert instance.agent_id == "a2"

    @pytest.mark.asyncio
    async def test_cloud_manager_failure_logged_not_raised(
        self, bus, manager, tmp_path, make_params, monkeypatch, caplog
    ):
        _, instance = await self._running(manager, bus, tmp_path, make_params)
        matched = []

        async def capture(event):
            matched.append(event)

        bus.subscribe(AgentMatchedEvent, capture)
        monkeypatch.setattr(
            manager, "list_profiles", MagicMock(side_effect=RuntimeError("registry offline"))
        )

        with caplog.at_level(logging.ERROR, logger="cirrus"):
            await bus.publish([_authorized("a1", instance.instance_id)])

        assert "registry offline" in caplog.text
        assert matched == []

        monkeypatch.undo()
        await bus.publish([_authorized("a2", instance.instance_id)])
        assert [e.agent_id for e in matched] == ["a2"]
        assert matched[0].profile_id == "p1"
