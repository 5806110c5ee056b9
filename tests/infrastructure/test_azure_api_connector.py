"""
Tests for the Azure API connector and management certificate loading.

Coverage strategy
-----------------
  1. connect() accepts PEM and base64 PKCS#12 certificates.
  2. Every certificate problem surfaces as InvalidCertificateError.
  3. Subscription ids must be GUIDs.
  4. The simulated deployment registry supports the full role lifecycle.
  5. Slow calls hit the timeout and raise ProviderTimeoutError.
"""

import pytest

from cirrus.domain.entities.cloud_image import CloudImageTemplate, CloneBehaviour
from cirrus.domain.errors import (
    ConfigurationError,
    InvalidCertificateError,
    InvalidSubscriptionError,
    ProviderError,
    ProviderTimeoutError,
)
from cirrus.domain.ports.cloud_api_port import CloudApiPort
from cirrus.infrastructure.connector.azure_api_connector import (
    AzureApiConnector,
    validate_subscription_id,
)
from cirrus.infrastructure.connector.certificate import load_management_certificate

IMAGE = CloudImageTemplate(
    source_name="webA", service_name="svc", vm_size="Medium", behaviour=CloneBehaviour.FRESH_CLONE
)


class TestCertificateLoading:
    def test_pem(self, pem_certificate):
        cert = load_management_certificate(pem_certificate)
        assert len(cert.thumbprint) == 40
        assert "cirrus-test" in cert.subject

    def test_pkcs12(self, pkcs12_certificate, pem_certificate):
        from_pkcs12 = load_management_certificate(pkcs12_certificate)
        from_pem = load_management_certificate(pem_certificate)
        assert from_pkcs12.subject == from_pem.subject

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty(self, value):
        with pytest.raises(InvalidCertificateError, match="empty"):
            load_management_certificate(value)

    def test_not_base64(self):
        with pytest.raises(InvalidCertificateError):
            load_management_certificate("this is %% not a certificate")

    def test_base64_but_not_pkcs12(self):
        with pytest.raises(InvalidCertificateError):
            load_management_certificate("aGVsbG8gd29ybGQ=")

    def test_expired(self, expired_certificate):
        with pytest.raises(InvalidCertificateError, match="expired"):
            load_management_certificate(expired_certificate)

    def test_missing_key(self, certificate_only):
        with pytest.raises(InvalidCertificateError, match="private key"):
            load_management_certificate(certificate_only)

    def test_key_mismatch(self, mismatched_certificate):
        with pytest.raises(InvalidCertificateError, match="does not match"):
            load_management_certificate(mismatched_certificate)

    def test_corrupt_pem_block(self):
        value = "-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----"
        with pytest.raises(InvalidCertificateError):
            load_management_certificate(value)


class TestConnect:
    def test_connect_pem(self, subscription_id, pem_certificate):
        connector = AzureApiConnector.connect(subscription_id, pem_certificate)
        assert connector.subscription_id == subscription_id
        assert connector.thumbprint

    def test_satisfies_port(self, subscription_id, pem_certificate):
        assert isinstance(AzureApiConnector.connect(subscription_id, pem_certificate), CloudApiPort)

    def test_invalid_certificate_kind(self, subscription_id, expired_certificate):
        with pytest.raises(InvalidCertificateError) as exc_info:
            AzureApiConnector.connect(subscription_id, expired_certificate)
        assert isinstance(exc_info.value, ConfigurationError)
        assert exc_info.value.error_type == "certificate"

    def test_invalid_subscription(self, pem_certificate):
        with pytest.raises(InvalidSubscriptionError):
            AzureApiConnector.connect("subscription-1", pem_certificate)

    def test_subscription_normalized(self):
        assert validate_subscription_id(" AAAABBBB-CCCC-DDDD-EEEE-FFFFFFFFFFFF ") == (
            "aaaabbbb-cccc-dddd-eeee-ffffffffffff"
        )

    def test_connectors_not_shared(self, subscription_id, pem_certificate):
        a = AzureApiConnector.connect(subscription_id, pem_certificate)
        b = AzureApiConnector.connect(subscription_id, pem_certificate)
        assert a is not b


class TestProviderOperations:
    @pytest.fixture
    def connector(self, subscription_id, pem_certificate):
        return AzureApiConnector.connect(subscription_id, pem_certificate)

    @pytest.mark.asyncio
    async def test_empty_service(self, connector):
        assert await connector.list_instances("svc") == []

    @pytest.mark.asyncio
    async def test_create_lists_role(self, connector):
        role = await connector.create_instance(IMAGE, "web-1")
        assert role["RoleName"] == "web-1"
        assert role["PowerState"] == "Started"
        assert role["RoleSize"] == "Medium"
        assert connector.subscription_id in role["Url"]
        roles = await connector.list_instances("svc")
        assert [r["RoleName"] for r in roles] == ["web-1"]

    @pytest.mark.asyncio
    async def test_create_duplicate_fails(self, connector):
        await connector.create_instance(IMAGE, "web-1")
        with pytest.raises(ProviderError):
            await connector.create_instance(IMAGE, "web-1")

    @pytest.mark.asyncio
    async def test_stop_and_start(self, connector):
        await connector.create_instance(IMAGE, "web-1")
        stopped = await connector.stop_instance("svc", "web-1")
        assert stopped["PowerState"] == "Stopped"
        started = await connector.start_instance("svc", "web-1")
        assert started["PowerState"] == "Started"

    @pytest.mark.asyncio
    async def test_start_unknown_role(self, connector):
        with pytest.raises(ProviderError):
            await connector.start_instance("svc", "ghost")

    @pytest.mark.asyncio
    async def test_delete(self, connector):
        await connector.create_instance(IMAGE, "web-1")
        assert await connector.delete_instance("svc", "web-1") is True
        assert await connector.delete_instance("svc", "web-1") is False

    @pytest.mark.asyncio
    async def test_seeded_role(self, connector):
        connector.seed_role("svc", "fixed", os_type="Windows")
        roles = await connector.list_instances("svc")
        assert roles[0]["PowerState"] == "Stopped"
        assert roles[0]["OSType"] == "Windows"

    @pytest.mark.asyncio
    async def test_timeout(self, subscription_id, pem_certificate):
        slow = AzureApiConnector.connect(subscription_id, pem_certificate, timeout=0.01, latency=0.5)
        with pytest.raises(ProviderTimeoutError):
            await slow.list_instances("svc")
