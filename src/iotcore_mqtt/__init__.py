"""
iotcore_mqtt

This package prepares everything a device needs to talk to a cloud-hosted
MQTT broker over mutual TLS: its identity (taken from an X.509 certificate),
the TLS material and the MQTT connection parameters, and the topic it
publishes telemetry to.
"""
from iotcore_mqtt.connection import ConnectionParameters, build_connection_parameters, new_client
from iotcore_mqtt.identity import device_id_from_cert
from iotcore_mqtt.models import Device, MQTTBroker

__version__ = "0.1.0"

__all__ = [
    "ConnectionParameters",
    "Device",
    "MQTTBroker",
    "build_connection_parameters",
    "device_id_from_cert",
    "new_client",
]
