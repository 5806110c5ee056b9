"""
Azure API Connector

Architectural Intent:
- Implements CloudApiPort against the Azure Service Management API
  (cloud services hosting VM roles, authenticated by a management
  certificate bound to one subscription)
- Simulates the REST call patterns without a network round trip: an
  in-memory deployment registry plays the role of the Azure backend, so
  the connector can be exercised in tests and local development with no
  Azure credentials
- When the real API is wired in, replace the _stub_* helpers with HTTPS
  calls signed by the management certificate; the public methods stay

Design Decisions:
- connect() validates the subscription id and the certificate before a
  connector exists; a connector is never partially functional
- Every provider call runs under asyncio.wait_for with the configured
  timeout; timeouts surface as ProviderTimeoutError, any other failure as
  ProviderError
- One connector per (subscription, certificate) pair, never shared
"""

from __future__ import annotations
from datetime import datetime, UTC
from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging
import uuid

from cirrus.domain.entities.cloud_image import CloudImageTemplate
from cirrus.domain.errors import (
    InvalidSubscriptionError,
    ProviderError,
    ProviderTimeoutError,
)
from cirrus.infrastructure.connector.certificate import (
    ManagementCertificate,
    load_management_certificate,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
MANAGEMENT_ENDPOINT = "https://management.core.windows.net"


# ---------------------------------------------------------------------------
# Internal helpers that mimic Service Management API payloads
# ---------------------------------------------------------------------------

def _make_role_url(subscription_id: str, service_name: str, name: str) -> str:
    return (
        f"{MANAGEMENT_ENDPOINT}/{subscription_id}/services/hostedservices/"
        f"{service_name}/deployments/{service_name}/roles/{name}"
    )


def _make_ip(index: int) -> str:
    return f"10.0.{(index // 250) % 256}.{index % 250 + 4}"


def _stub_role(
    subscription_id: str,
    service_name: str,
    name: str,
    role_size: str,
    os_type: str,
    ip_address: str,
    power_state: str = "Started",
) -> dict[str, Any]:
    """
    Simulate a RoleInstance entry of a Get Deployment response.

    The real call is
        GET {endpoint}/{subscription}/services/hostedservices/{service}/deploymentslots/Production
    and returns one RoleInstance per VM.
    """
    return {
        "RoleName": name,
        "InstanceName": name,
        "ServiceName": service_name,
        "RoleSize": role_size,
        "OSType": os_type,
        "IpAddress": ip_address,
        "PowerState": power_state,
        "InstanceStatus": "ReadyRole" if power_state == "Started" else "StoppedVM",
        "Url": _make_role_url(subscription_id, service_name, name),
        "CreatedAt": datetime.now(UTC).isoformat(),
    }


def _stub_operation_status(request_id: str) -> dict[str, str]:
    """Simulate Get Operation Status for an asynchronous management request."""
    return {"ID": request_id, "Status": "Succeeded", "HttpStatusCode": "200"}


def validate_subscription_id(subscription_id: Optional[str]) -> str:
    if not subscription_id or not subscription_id.strip():
        raise InvalidSubscriptionError("Subscription id is empty")
    try:
        return str(uuid.UUID(subscription_id.strip()))
    except ValueError:
        raise InvalidSubscriptionError(
            f"Subscription id {subscription_id!r} is not a GUID"
        ) from None


# ---------------------------------------------------------------------------
# Public connector
# ---------------------------------------------------------------------------

class AzureApiConnector:
    """
    Authenticated handle to the Azure management API for one subscription.

    Build it with connect(); the constructor assumes validated input.
    """

    def __init__(
        self,
        subscription_id: str,
        certificate: ManagementCertificate,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        latency: float = 0.0,
    ) -> None:
        self.subscription_id = subscription_id
        self._certificate = certificate
        self._timeout = timeout
        self._latency = latency

        # service name -> role name -> role record
        self._deployments: dict[str, dict[str, dict[str, Any]]] = {}
        self._created = 0

        logger.debug(
            "AzureApiConnector initialised (subscription=%s, thumbprint=%s, timeout=%.1fs)",
            subscription_id,
            certificate.thumbprint,
            timeout,
        )

    @classmethod
    def connect(
        cls,
        subscription_id: Optional[str],
        certificate: Optional[str],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        latency: float = 0.0,
    ) -> "AzureApiConnector":
        """Validate credentials and build a connector.

        Raises:
            InvalidSubscriptionError: subscription id is not a GUID.
            InvalidCertificateError: certificate cannot be used.
        """
        normalized = validate_subscription_id(subscription_id)
        management_certificate = load_management_certificate(certificate)
        return cls(normalized, management_certificate, timeout=timeout, latency=latency)

    @property
    def thumbprint(self) -> str:
        return self._certificate.thumbprint

    @property
    def timeout(self) -> float:
        return self._timeout

    def seed_role(self, service_name: str, name: str, power_state: str = "Stopped", **extra: Any) -> None:
        """Register a pre-existing VM, as start/stop images expect one."""
        role = _stub_role(
            self.subscription_id,
            service_name,
            name,
            extra.get("role_size", "Small"),
            extra.get("os_type", "Linux"),
            _make_ip(self._next_index()),
            power_state=power_state,
        )
        self._deployments.setdefault(service_name, {})[name] = role

    # ------------------------------------------------------------------
    # CloudApiPort implementation
    # ------------------------------------------------------------------

    async def list_instances(self, service_name: str) -> list[dict[str, Any]]:
        async def op() -> list[dict[str, Any]]:
            roles = self._deployments.get(service_name, {})
            return [dict(role) for role in roles.values()]

        roles = await self._call("list_instances", op)
        logger.debug("Deployment %s lists %d role(s)", service_name, len(roles))
        return roles

    async def create_instance(
        self, image: CloudImageTemplate, name: str, user_data: str = ""
    ) -> dict[str, Any]:
        async def op() -> dict[str, Any]:
            roles = self._deployments.setdefault(image.service_name, {})
            if name in roles:
                raise ProviderError(f"Role {name} already exists in {image.service_name}")
            role = _stub_role(
                self.subscription_id,
                image.service_name,
                name,
                image.vm_size,
                image.os_type,
                _make_ip(self._next_index()),
            )
            roles[name] = role
            status = _stub_operation_status(str(uuid.uuid4()))
            logger.debug("Add Role %s operation %s", name, status["Status"])
            return dict(role)

        logger.info(
            "Azure Add Role: service=%s name=%s size=%s source=%s",
            image.service_name,
            name,
            image.vm_size,
            image.source_name,
        )
        return await self._call("create_instance", op)

    async def start_instance(self, service_name: str, name: str) -> dict[str, Any]:
        return await self._set_power_state("start_instance", service_name, name, "Started")

    async def stop_instance(self, service_name: str, name: str) -> dict[str, Any]:
        return await self._set_power_state("stop_instance", service_name, name, "Stopped")

    async def delete_instance(self, service_name: str, name: str) -> bool:
        async def op() -> bool:
            roles = self._deployments.get(service_name, {})
            return roles.pop(name, None) is not None

        existed = await self._call("delete_instance", op)
        if not existed:
            logger.warning("Delete Role: %s not found in %s", name, service_name)
        return existed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_index(self) -> int:
        self._created += 1
        return self._created

    async def _set_power_state(
        self, operation: str, service_name: str, name: str, power_state: str
    ) -> dict[str, Any]:
        async def op() -> dict[str, Any]:
            role = self._deployments.get(service_name, {}).get(name)
            if role is None:
                raise ProviderError(f"Role {name} not found in {service_name}")
            role["PowerState"] = power_state
            role["InstanceStatus"] = "ReadyRole" if power_state == "Started" else "StoppedVM"
            return dict(role)

        logger.info("Azure %s: service=%s name=%s", operation, service_name, name)
        return await self._call(operation, op)

    async def _call(self, operation: str, op: Callable[[], Awaitable[Any]]) -> Any:
        async def invoke() -> Any:
            if self._latency:
                await asyncio.sleep(self._latency)
            return await op()

        try:
            return await asyncio.wait_for(invoke(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                f"{operation} timed out after {self._timeout:.1f}s"
            ) from None
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"{operation} failed: {e}") from e
