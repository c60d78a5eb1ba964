"""
Data Models for Device Identity and MQTT Payloads.

Defines the device descriptor, the broker address derived from it,
and the JSON payloads a device publishes.
"""
from dataclasses import dataclass, field, asdict, fields
import json
from typing import Any, Dict, Optional
import time

# AWS IoT Core only accepts MQTT over TLS on this port.
DEFAULT_PORT = 8883
BROKER_SCHEME = "mqtts"
TELEMETRY_TOPIC_TEMPLATE = "things/{device_id}/telemetry"


@dataclass(frozen=True)
class MQTTBroker:
    """The network target of a device: host and port, nothing more."""
    host: str
    port: int = DEFAULT_PORT

    def url(self) -> str:
        """Returns the canonical broker URL, e.g. mqtts://example.com:8883"""
        return f"{BROKER_SCHEME}://{self.host}:{self.port}"


@dataclass(frozen=True, kw_only=True)
class Device:
    """
    Identity and credential paths for one device.

    The derivations below never touch the filesystem or the network.
    Reading the PEM files is left to the connection module.
    """
    endpoint: str = ""
    device_id: str = ""
    telemetry_topic_override: Optional[str] = None
    # Path to a .pem bundle holding the broker's trusted root certs.
    ca_certs_path: str = ""
    cert_path: str = ""
    priv_key_path: str = ""

    def id(self) -> str:
        return self.device_id

    def broker(self) -> MQTTBroker:
        return MQTTBroker(host=self.endpoint, port=DEFAULT_PORT)

    def telemetry_topic(self) -> str:
        """Returns the MQTT topic the device publishes telemetry events to."""
        if self.telemetry_topic_override:
            return self.telemetry_topic_override
        return TELEMETRY_TOPIC_TEMPLATE.format(device_id=self.device_id)

    # --- Serialization ---
    # The serialized names differ from the attribute names in one place:
    # the override is stored as "telemetry_topic".

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if "telemetry_topic" in data:
            kwargs["telemetry_topic_override"] = data["telemetry_topic"]
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["telemetry_topic"] = data.pop("telemetry_topic_override")
        return data


@dataclass(frozen=True, kw_only=True)
class BasePayload:
    """Base class for all JSON payloads sent over MQTT."""
    timestamp: float = field(default_factory=time.time)

    def to_json(self) -> str:
        """Converts the object to a JSON string."""
        return json.dumps(asdict(self))

    def to_bytes(self) -> bytes:
        """Converts the object to UTF-8 encoded bytes for MQTT."""
        return self.to_json().encode('utf-8')


@dataclass(frozen=True, kw_only=True)
class TelemetryPayload(BasePayload):
    """A device measurement, e.g. TelemetryPayload(device_id="d1", values={"temp": 18.0})"""
    device_id: str
    values: Dict[str, Any] = field(default_factory=dict)
