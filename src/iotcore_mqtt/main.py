"""
Example device publisher.

This module is responsible for:
- Setting up logging.
- Loading the device and MQTT options from a YAML file.
- Building the TLS-secured MQTT client for the device.
- Connecting, publishing one telemetry message to the device's
  telemetry topic and disconnecting.

Run it with:  python -m iotcore_mqtt.main config.yaml
"""

import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from aiomqtt import Client as MQTTClient

from iotcore_mqtt.config_loader import device_from_config, load_config, options_from_config
from iotcore_mqtt.connection import new_client
from iotcore_mqtt.models import Device, TelemetryPayload


def setup_logging():
    """
    Configures the global logging settings for the entire application.
    This should be called as early as possible during startup.
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )

logger = logging.getLogger(__name__)

async def publish_telemetry(client: MQTTClient, device: Device, payload: TelemetryPayload, qos: int = 1):
    """Publishes payload to the device's telemetry topic on an already connected client."""
    topic = device.telemetry_topic()
    await client.publish(topic, payload=payload.to_bytes(), qos=qos, retain=False)
    logger.info(f"Published telemetry to '{topic}': {payload.to_json()}")

async def main_application_runner(config_path: str = "config.yaml", values: Optional[Dict[str, Any]] = None):
    setup_logging()

    # 1. Load config and describe the device
    config: Dict[str, Any] = load_config(config_path)
    device = device_from_config(config)
    logger.info(f"Starting device {device.id()} against {device.broker().url()}...")

    # 2. Build the client (reads the CA bundle and the key pair, no I/O on the network yet)
    client = new_client(device, *options_from_config(config))

    # 3. The connection is ONLY valid inside this block
    telemetry_conf = config.get('telemetry') or {}
    payload = TelemetryPayload(device_id=device.id(), values=values or telemetry_conf.get('values', {}))
    async with client:
        logger.info(f"Connected to {device.endpoint} as {device.id()}")
        await publish_telemetry(client, device, payload, qos=int(telemetry_conf.get('qos', 1)))

    logger.info("Disconnected.")

if __name__ == "__main__":
    asyncio.run(main_application_runner(sys.argv[1] if len(sys.argv) > 1 else "config.yaml"))
