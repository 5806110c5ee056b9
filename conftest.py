"""Global test configuration.

Builds throwaway management certificates once per session, in the formats a
profile can carry them: PEM (certificate + key) and base64 PKCS#12 as found
in Azure publish-settings files.
"""

import base64
import datetime
import json

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

SUBSCRIPTION_ID = "aaaabbbb-cccc-dddd-eeee-ffffffffffff"


def _make_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _make_certificate(key, not_before_days=-1, not_after_days=365):
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "cirrus-test")])
    now = datetime.datetime.now(datetime.UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now + datetime.timedelta(days=not_before_days))
        .not_valid_after(now + datetime.timedelta(days=not_after_days))
        .sign(key, hashes.SHA256())
    )


def _pem(key, certificate) -> str:
    cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return (cert_pem + key_pem).decode()


@pytest.fixture(scope="session")
def signing_key():
    return _make_key()


@pytest.fixture(scope="session")
def pem_certificate(signing_key) -> str:
    return _pem(signing_key, _make_certificate(signing_key))


@pytest.fixture(scope="session")
def pkcs12_certificate(signing_key) -> str:
    blob = pkcs12.serialize_key_and_certificates(
        b"azure",
        signing_key,
        _make_certificate(signing_key),
        None,
        serialization.NoEncryption(),
    )
    return base64.b64encode(blob).decode()


@pytest.fixture(scope="session")
def expired_certificate(signing_key) -> str:
    return _pem(signing_key, _make_certificate(signing_key, -30, -1))


@pytest.fixture(scope="session")
def mismatched_certificate(signing_key) -> str:
    other_key = _make_key()
    certificate = _make_certificate(other_key)
    return _pem(signing_key, certificate)


@pytest.fixture(scope="session")
def certificate_only(signing_key) -> str:
    return _make_certificate(signing_key).public_bytes(serialization.Encoding.PEM).decode()


@pytest.fixture
def subscription_id() -> str:
    return SUBSCRIPTION_ID


@pytest.fixture
def make_params(pem_certificate):
    """Build a profile parameter map; keyword overrides replace entries,
    None removes them."""

    def build(images=None, passwords=None, **overrides):
        params = {
            "subscriptionId": SUBSCRIPTION_ID,
            "managementCertificate": pem_certificate,
            "maxInstancesCount": "5",
        }
        if images is not None:
            params["images_data"] = images if isinstance(images, str) else json.dumps(images)
        if passwords is not None:
            params["secure:passwords_data"] = (
                passwords if isinstance(passwords, str) else json.dumps(passwords)
            )
        for key, value in overrides.items():
            if value is None:
                params.pop(key, None)
            else:
                params[key] = value
        return params

    return build
