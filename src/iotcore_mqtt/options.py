"""
Built-in Connection Options.

Each factory returns an option, a function taking the device and the
in-progress `ConnectionParameters`, for use with
`build_connection_parameters(device, *options)`. Arguments are checked when
the option is applied and rejected with `OptionError`.
"""
import logging
from typing import Optional, Union

from aiomqtt import ProtocolVersion, Will

from iotcore_mqtt.connection import ConnectionParameters, Option
from iotcore_mqtt.errors import OptionError
from iotcore_mqtt.models import Device, MQTTBroker

logger = logging.getLogger(__name__)


def _named(option: Option, name: str) -> Option:
    option.__name__ = name
    return option


def connect_timeout(seconds: float) -> Option:
    def option(device: Device, params: ConnectionParameters):
        if seconds <= 0:
            raise OptionError(f"connect timeout must be positive, got {seconds}")
        params.timeout = float(seconds)
    return _named(option, f"connect_timeout({seconds})")


def keepalive(seconds: int) -> Option:
    """Keep-alive interval in seconds. AWS IoT accepts 30 to 1200."""
    def option(device: Device, params: ConnectionParameters):
        if seconds <= 0:
            raise OptionError(f"keepalive must be positive, got {seconds}")
        params.keepalive = int(seconds)
    return _named(option, f"keepalive({seconds})")


def clean_session(flag: bool) -> Option:
    def option(device: Device, params: ConnectionParameters):
        params.clean_session = bool(flag)
    return _named(option, f"clean_session({flag})")


def broker_port(port: int) -> Option:
    """Overrides the default MQTT-over-TLS port, e.g. 443 with ALPN."""
    def option(device: Device, params: ConnectionParameters):
        if not 0 < port < 65536:
            raise OptionError(f"invalid broker port {port}")
        params.broker = MQTTBroker(host=params.broker.host, port=port)
    return _named(option, f"broker_port({port})")


def server_name(name: str) -> Option:
    """Sends name as SNI instead of the device's endpoint."""
    def option(device: Device, params: ConnectionParameters):
        if not name:
            raise OptionError("server name must not be empty")
        logger.debug(f"Overriding SNI for {device.device_id}: {params.server_name} -> {name}")
        params.server_name = name
    return _named(option, f"server_name({name})")


def last_will(topic: str, payload: Optional[Union[str, bytes]] = None, qos: int = 0, retain: bool = False) -> Option:
    def option(device: Device, params: ConnectionParameters):
        if not topic:
            raise OptionError("last will topic must not be empty")
        if qos not in (0, 1):
            # AWS IoT Core does not support QoS 2.
            raise OptionError(f"unsupported last will QoS {qos}")
        params.will = Will(topic=topic, payload=payload, qos=qos, retain=retain)
    return _named(option, f"last_will({topic})")


def protocol_version(version: ProtocolVersion) -> Option:
    def option(device: Device, params: ConnectionParameters):
        try:
            params.protocol = ProtocolVersion(version)
        except ValueError as e:
            raise OptionError(f"unknown MQTT protocol version {version}") from e
    return _named(option, f"protocol_version({version})")
