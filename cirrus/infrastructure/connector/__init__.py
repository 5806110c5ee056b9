from cirrus.infrastructure.connector.azure_api_connector import (
    AzureApiConnector,
    validate_subscription_id,
)
from cirrus.infrastructure.connector.certificate import (
    ManagementCertificate,
    load_management_certificate,
)

__all__ = [
    "AzureApiConnector",
    "validate_subscription_id",
    "ManagementCertificate",
    "load_management_certificate",
]
