"""
Exceptions raised while deriving a device identity or assembling its
connection parameters.

Every failure is raised to the immediate caller. Nothing here is retried or
replaced with a fallback value.
"""
from typing import Optional


class IotCoreError(Exception):
    """Base class for all errors raised by iotcore_mqtt."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


# --- Reading files ---

class CertificateNotFoundError(IotCoreError):
    """The certificate file does not exist."""


class ReadError(IotCoreError):
    """A file exists but could not be read."""


class CertificateReadError(ReadError):
    pass


class CACertsReadError(ReadError):
    """The CA bundle could not be read."""


# --- Decoding ---

class DecodeError(IotCoreError):
    """PEM or X.509 content is structurally invalid."""


class PEMDecodeError(DecodeError):
    """No PEM block was found, or its label is not CERTIFICATE."""


class CertificateParseError(DecodeError):
    """The PEM block decoded but is not a usable X.509 certificate."""


# --- TLS material ---

class NoValidCACertsError(IotCoreError):
    """The CA bundle was readable but yielded zero certificates."""


class KeyPairError(IotCoreError):
    """The client certificate and private key could not be loaded together."""


# --- Configuration ---

class InvalidDeviceError(IotCoreError, ValueError):
    """The device description is missing something required."""


class OptionError(IotCoreError):
    """A connection option refused to apply."""
