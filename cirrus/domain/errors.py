"""
Domain Errors

Architectural Intent:
- One hierarchy for every failure the cloud client layer can raise
- Each error carries the TypedCloudErrorInfo type it maps onto, so the
  factory can turn any of them into a record on a degraded client
"""

from cirrus.domain.value_objects import typed_error


class CirrusError(Exception):
    error_type = typed_error.CONFIG


class ConfigurationError(CirrusError):
    """Profile parameters cannot produce a working client."""


class InvalidCertificateError(ConfigurationError):
    """The management certificate is malformed, expired or unusable."""
    error_type = typed_error.CERTIFICATE


class InvalidSubscriptionError(ConfigurationError):
    error_type = typed_error.SUBSCRIPTION


class ImageDataParseError(ConfigurationError):
    """The image list or the password map could not be decoded."""
    error_type = typed_error.PARSE


class ProviderError(CirrusError):
    """A remote call to the cloud provider failed."""
    error_type = typed_error.PROVIDER


class ProviderTimeoutError(ProviderError):
    pass
