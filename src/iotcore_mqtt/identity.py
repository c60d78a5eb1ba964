"""
Device Identity from X.509 Certificates.

This module is responsible for:
- Reading a PEM file and decoding its first PEM block.
- Checking that the block is labelled CERTIFICATE and parsing it as X.509.
- Returning the subject's Common Name, which is the device ID.
"""
import base64
import binascii
import logging
import re
from pathlib import Path
from typing import Iterator, Tuple

from cryptography import x509
from cryptography.x509.oid import NameOID

from iotcore_mqtt.errors import (
    CertificateNotFoundError,
    CertificateParseError,
    CertificateReadError,
    PEMDecodeError,
)

logger = logging.getLogger(__name__)

CERTIFICATE_LABEL = "CERTIFICATE"

_PEM_BLOCK = re.compile(
    rb"-----BEGIN (?P<label>[^-\r\n]+)-----\r?\n(?P<body>.*?)-----END (?P=label)-----",
    re.DOTALL,
)


def iter_pem_blocks(data: bytes) -> Iterator[Tuple[str, bytes]]:
    """
    Yields (label, raw_body) for every PEM block in data, in file order.
    Text outside the blocks is ignored. The body is still base64 text.
    """
    for match in _PEM_BLOCK.finditer(data):
        yield match.group("label").decode("ascii", errors="replace"), match.group("body")


def decode_pem_body(body: bytes) -> bytes:
    """Base64-decodes a PEM body, skipping RFC 1421 style header lines."""
    lines = [line.strip() for line in body.splitlines()]
    payload = b"".join(line for line in lines if line and b":" not in line)
    return base64.b64decode(payload, validate=True)


def load_certificate(path: str) -> x509.Certificate:
    """
    Reads path and parses the first PEM block in it as an X.509 certificate.
    """
    try:
        pem_bytes = Path(path).read_bytes()
    except FileNotFoundError as e:
        raise CertificateNotFoundError(f"cert file does not exist: {path}", path=path) from e
    except OSError as e:
        raise CertificateReadError(f"failed to read cert {path}: {e}", path=path) from e

    block = next(iter_pem_blocks(pem_bytes), None)
    if block is None or block[0] != CERTIFICATE_LABEL:
        raise PEMDecodeError(f"failed to decode PEM certificate from {path}", path=path)

    try:
        der = decode_pem_body(block[1])
    except (binascii.Error, ValueError) as e:
        raise PEMDecodeError(f"failed to decode PEM certificate from {path}: {e}", path=path) from e

    try:
        return x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise CertificateParseError(f"failed to parse X.509 certificate {path}: {e}", path=path) from e


def device_id_from_cert(cert_path: str) -> str:
    """
    Gets the Common Name from an X.509 cert, which is considered to be the device ID.

    A certificate without a Common Name is rejected rather than mapped to an
    empty ID.
    """
    cert = load_certificate(cert_path)
    common_names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not common_names or not common_names[0].value:
        raise CertificateParseError(f"certificate {cert_path} has no subject common name", path=cert_path)

    device_id = str(common_names[0].value)
    logger.debug(f"Read device ID '{device_id}' from {cert_path}")
    return device_id
