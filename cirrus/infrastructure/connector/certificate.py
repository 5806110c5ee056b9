"""
Management Certificate Loading

Architectural Intent:
- Turns the managementCertificate profile parameter into a usable
  (certificate, private key) pair, or fails with InvalidCertificateError
- Accepts the base64 PKCS#12 blob found in Azure publish-settings files and
  PEM text holding a certificate and its private key

Security:
- Error messages describe what is wrong, never the certificate content
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Optional
import base64
import binascii
import re

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from cirrus.domain.errors import InvalidCertificateError

_PEM_BLOCK_RE = re.compile(
    r"-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \1-----", re.DOTALL
)
_KEY_TAGS = ("PRIVATE KEY", "RSA PRIVATE KEY", "EC PRIVATE KEY")


@dataclass(frozen=True)
class ManagementCertificate:
    certificate: x509.Certificate
    private_key: Any

    @property
    def thumbprint(self) -> str:
        """SHA-1 fingerprint, the identifier the management API uses."""
        return self.certificate.fingerprint(hashes.SHA1()).hex().upper()

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    @property
    def not_valid_after(self) -> datetime:
        return self.certificate.not_valid_after_utc


def _load_pem(text: str) -> tuple[Optional[x509.Certificate], Any]:
    certificate = None
    private_key = None
    for match in _PEM_BLOCK_RE.finditer(text):
        tag, block = match.group(1), match.group(0).encode()
        try:
            if tag == "CERTIFICATE" and certificate is None:
                certificate = x509.load_pem_x509_certificate(block)
            elif tag in _KEY_TAGS and private_key is None:
                private_key = serialization.load_pem_private_key(block, password=None)
        except (ValueError, TypeError) as e:
            raise InvalidCertificateError(f"Unreadable PEM block {tag}: {e}") from e
    return certificate, private_key


def _load_pkcs12(text: str) -> tuple[Optional[x509.Certificate], Any]:
    try:
        der = base64.b64decode("".join(text.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidCertificateError("Certificate is neither PEM nor base64 PKCS#12") from e

    last_error: Optional[Exception] = None
    for password in (None, b""):
        try:
            private_key, certificate, _ = pkcs12.load_key_and_certificates(der, password)
            return certificate, private_key
        except ValueError as e:
            last_error = e
    raise InvalidCertificateError(f"Unreadable PKCS#12 certificate: {last_error}")


def _public_der(key: Any) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_management_certificate(
    value: Optional[str], now: Optional[datetime] = None
) -> ManagementCertificate:
    """Parse and check a management certificate.

    Raises:
        InvalidCertificateError: if the value is empty, cannot be decoded,
            lacks a certificate or private key, is outside its validity
            window, or the key does not belong to the certificate.
    """
    if not value or not value.strip():
        raise InvalidCertificateError("Management certificate is empty")

    text = value.strip()
    if "-----BEGIN" in text:
        certificate, private_key = _load_pem(text)
    else:
        certificate, private_key = _load_pkcs12(text)

    if certificate is None:
        raise InvalidCertificateError("Management certificate contains no certificate")
    if private_key is None:
        raise InvalidCertificateError("Management certificate contains no private key")

    now = now or datetime.now(UTC)
    if now < certificate.not_valid_before_utc:
        raise InvalidCertificateError(
            f"Management certificate is not valid before {certificate.not_valid_before_utc.isoformat()}"
        )
    if now > certificate.not_valid_after_utc:
        raise InvalidCertificateError(
            f"Management certificate expired on {certificate.not_valid_after_utc.isoformat()}"
        )

    if _public_der(private_key.public_key()) != _public_der(certificate.public_key()):
        raise InvalidCertificateError("Private key does not match the management certificate")

    return ManagementCertificate(certificate=certificate, private_key=private_key)
