"""
Pytest Configuration and Fixtures for the iotcore_mqtt project.

This module generates throwaway PEM material (a CA, a device certificate
signed by it and the matching key) so tests never need real AWS credentials.
"""

import datetime
import sys
import logging
from dataclasses import dataclass
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from iotcore_mqtt.models import Device

DEVICE_CN = "my-device"
ENDPOINT = "myendpoint.iot.us-east-2.amazonaws.com"


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass main.py, this ensures our logs are formatted
    and visible during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    yield
    logger.removeHandler(handler)


# --- PEM material ---

def _name(common_name=None):
    attributes = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, "iotcore-mqtt tests")]
    if common_name is not None:
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    return x509.Name(attributes)


def make_key():
    return ec.generate_private_key(ec.SECP256R1())


def make_cert(subject_key, common_name=None, issuer_cert=None, issuer_key=None, ca=False):
    """Self-signed when no issuer is given."""
    now = datetime.datetime.now(datetime.timezone.utc)
    subject = _name(common_name)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_cert.subject if issuer_cert else subject)
        .public_key(subject_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    return builder.sign(issuer_key or subject_key, hashes.SHA256())


def cert_pem(cert) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def key_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@dataclass
class PKI:
    ca_cert: x509.Certificate
    ca_path: Path
    cert_path: Path
    key_path: Path
    other_key_path: Path
    directory: Path

    def write(self, name: str, data) -> Path:
        path = self.directory / name
        path.write_bytes(data if isinstance(data, bytes) else data.encode())
        return path


@pytest.fixture
def pki(tmp_path) -> PKI:
    """A CA, a device cert (CN=my-device) signed by it, its key and an unrelated key."""
    ca_key = make_key()
    ca_cert = make_cert(ca_key, common_name="Test Root CA", ca=True)
    device_key = make_key()
    device_cert = make_cert(device_key, common_name=DEVICE_CN, issuer_cert=ca_cert, issuer_key=ca_key)

    ca_path = tmp_path / "roots.pem"
    ca_path.write_bytes(cert_pem(ca_cert))
    cert_path = tmp_path / "my-device.x509"
    cert_path.write_bytes(cert_pem(device_cert))
    key_path = tmp_path / "my-device.pem"
    key_path.write_bytes(key_pem(device_key))
    other_key_path = tmp_path / "other.pem"
    other_key_path.write_bytes(key_pem(make_key()))

    return PKI(
        ca_cert=ca_cert,
        ca_path=ca_path,
        cert_path=cert_path,
        key_path=key_path,
        other_key_path=other_key_path,
        directory=tmp_path,
    )


@pytest.fixture
def device(pki) -> Device:
    return Device(
        endpoint=ENDPOINT,
        device_id=DEVICE_CN,
        ca_certs_path=str(pki.ca_path),
        cert_path=str(pki.cert_path),
        priv_key_path=str(pki.key_path),
    )


@pytest.fixture
def self_signed_cert_file(tmp_path):
    """Writes a fresh self-signed certificate and returns its path."""
    def _write(name: str, common_name=None) -> Path:
        path = tmp_path / name
        path.write_bytes(cert_pem(make_cert(make_key(), common_name=common_name)))
        return path
    return _write
