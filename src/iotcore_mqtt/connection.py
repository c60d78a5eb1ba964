"""
Mutual-TLS Connection Parameters for a Device.

This module is responsible for:
- Loading the CA bundle into a trust store (accepting the bundle as long as
  at least one certificate in it parses).
- Loading the device's client certificate/key pair.
- Building an `ssl.SSLContext` that verifies the broker, presents the client
  certificate, sends the endpoint as SNI and refuses anything below TLS 1.2.
- Assembling `ConnectionParameters` and running the caller's options over
  them, in order, before handing them to an MQTT client factory.

No network I/O happens here. Connecting is the MQTT client's job.
"""
import logging
import ssl
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from aiomqtt import Client as MQTTClient, ProtocolVersion, Will
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

from iotcore_mqtt.errors import CACertsReadError, InvalidDeviceError, KeyPairError, NoValidCACertsError, OptionError
from iotcore_mqtt.identity import CERTIFICATE_LABEL, decode_pem_body, iter_pem_blocks
from iotcore_mqtt.models import Device, MQTTBroker

logger = logging.getLogger(__name__)

MIN_TLS_VERSION = ssl.TLSVersion.TLSv1_2
DEFAULT_KEEPALIVE = 60


class ServerNameContext(ssl.SSLContext):
    """
    An SSLContext that always sends `server_name` as SNI.

    MQTT clients pass the host they dial as `server_hostname`; this context
    replaces it so the SNI value (and the name the broker certificate is
    checked against) stays whatever was configured.
    """
    server_name: Optional[str] = None

    def wrap_socket(self, sock, *args, server_hostname=None, **kwargs):
        return super().wrap_socket(sock, *args, server_hostname=self.server_name or server_hostname, **kwargs)

    def wrap_bio(self, incoming, outgoing, *args, server_hostname=None, **kwargs):
        return super().wrap_bio(incoming, outgoing, *args, server_hostname=self.server_name or server_hostname, **kwargs)


@dataclass
class ConnectionParameters:
    """
    Everything the MQTT client needs to open a session.

    Built fresh for every call to `build_connection_parameters` and owned by
    it until the options have run. Options may change any field.
    """
    broker: MQTTBroker
    client_id: str
    tls_context: ssl.SSLContext
    keepalive: int = DEFAULT_KEEPALIVE
    timeout: Optional[float] = None
    clean_session: Optional[bool] = None
    protocol: ProtocolVersion = ProtocolVersion.V311
    will: Optional[Will] = None
    username: Optional[str] = None
    password: Optional[str] = None
    # Passed through to the client factory untouched.
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def broker_url(self) -> str:
        return self.broker.url()

    @property
    def server_name(self) -> Optional[str]:
        return getattr(self.tls_context, "server_name", None)

    @server_name.setter
    def server_name(self, name: str):
        # A plain SSLContext would keep the value but never send it.
        if not isinstance(self.tls_context, ServerNameContext):
            raise OptionError(
                f"cannot set server name on {type(self.tls_context).__name__}, a ServerNameContext is required"
            )
        self.tls_context.server_name = name

    def to_aiomqtt_args(self) -> Dict[str, Any]:
        """Returns dict suitable for aiomqtt.Client(**args)"""
        return {
            "hostname": self.broker.host,
            "port": self.broker.port,
            "identifier": self.client_id,
            "tls_context": self.tls_context,
            "keepalive": self.keepalive,
            "protocol": self.protocol,
            **({'timeout': self.timeout} if self.timeout is not None else {}),
            **({'clean_session': self.clean_session} if self.clean_session is not None else {}),
            **({'will': self.will} if self.will else {}),
            **({'username': self.username} if self.username else {}),
            **({'password': self.password} if self.password else {}),
            **self.extra,
        }


# An option customizes the parameters in place and fails by raising.
Option = Callable[[Device, ConnectionParameters], None]
ClientFactory = Callable[[ConnectionParameters], Any]


def load_ca_certs(ca_certs_path: str) -> List[x509.Certificate]:
    """
    Parses every CERTIFICATE block of a PEM bundle.

    Blocks that fail to parse are logged and skipped; only a bundle that
    yields no certificate at all is an error.
    """
    try:
        pem_certs = Path(ca_certs_path).read_bytes()
    except OSError as e:
        raise CACertsReadError(f"failed to read CA certs {ca_certs_path}: {e}", path=ca_certs_path) from e

    certs: List[x509.Certificate] = []
    for index, (label, body) in enumerate(iter_pem_blocks(pem_certs)):
        if label != CERTIFICATE_LABEL:
            continue
        try:
            certs.append(x509.load_der_x509_certificate(decode_pem_body(body)))
        except ValueError as e:
            logger.warning(f"Skipping unparseable certificate #{index} in CA bundle {ca_certs_path}: {e}")

    if not certs:
        raise NoValidCACertsError(f"no certs were parsed from CA certs {ca_certs_path}", path=ca_certs_path)

    logger.debug(f"Loaded {len(certs)} CA cert(s) from {ca_certs_path}")
    return certs


def build_tls_context(device: Device, minimum_version: ssl.TLSVersion = MIN_TLS_VERSION) -> ServerNameContext:
    """
    Builds the mutual-TLS context for a device.

    The broker must present a certificate chaining to the device's CA bundle
    (and nothing else), the device presents its own certificate, and SNI is
    set to the device's endpoint.
    """
    # 1. Trust store
    ca_certs = load_ca_certs(device.ca_certs_path)

    # PROTOCOL_TLS_CLIENT requires a verified server certificate and a matching hostname.
    context = ServerNameContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = minimum_version
    context.load_verify_locations(cadata=b"".join(cert.public_bytes(Encoding.DER) for cert in ca_certs))

    # 2. Client certificate/key pair
    try:
        context.load_cert_chain(certfile=device.cert_path, keyfile=device.priv_key_path)
    except OSError as e:
        # ssl.SSLError is an OSError too: malformed PEM, mismatched key, missing file.
        # path names the missing file when only the key is absent, otherwise the certificate.
        bad_path = device.cert_path
        if Path(device.cert_path).is_file() and not Path(device.priv_key_path).is_file():
            bad_path = device.priv_key_path
        raise KeyPairError(
            f"failed to load x509 key pair ({device.cert_path}, {device.priv_key_path}): {e}",
            path=bad_path,
        ) from e

    # 3. AWS IoT routes on SNI and rejects connections without it.
    context.server_name = device.endpoint
    return context


def build_connection_parameters(device: Device, *options: Option) -> ConnectionParameters:
    """
    Assembles the connection parameters for a device.

    By default the parameters hold the minimum needed to connect: the broker,
    the client ID (the device ID) and the TLS context. Options are applied
    afterwards in the order given, e.g.

        def connect_timeout(seconds):
            def option(device, params):
                params.timeout = seconds
            return option

    An option that raises stops the chain; later options do not run and the
    exception reaches the caller unchanged.
    """
    if not device.endpoint:
        raise InvalidDeviceError("device endpoint must not be empty")
    if not device.device_id:
        raise InvalidDeviceError("device ID must not be empty")

    tls_context = build_tls_context(device)

    params = ConnectionParameters(
        broker=device.broker(),
        client_id=device.id(),
        tls_context=tls_context,
    )

    for option in options:
        name = getattr(option, "__name__", repr(option))
        try:
            option(device, params)
        except Exception:
            logger.error(f"Connection option '{name}' failed for device {device.device_id}")
            raise
        logger.debug(f"Applied connection option '{name}' for device {device.device_id}")

    logger.debug(f"Connection parameters ready for {device.device_id} at {params.broker_url}")
    return params


def create_aiomqtt_client(params: ConnectionParameters) -> MQTTClient:
    """Creates (but does not connect) an aiomqtt client. Use it with `async with`."""
    return MQTTClient(**params.to_aiomqtt_args())


def new_client(device: Device, *options: Option, client_factory: ClientFactory = create_aiomqtt_client):
    """
    Builds the connection parameters for a device and passes them to
    client_factory, returning whatever client it creates.
    """
    params = build_connection_parameters(device, *options)
    return client_factory(params)
