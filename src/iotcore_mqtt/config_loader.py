"""
Configuration Loader.

Responsible for reading the config.yaml file and turning it into a
`Device` and a list of connection options.

Example:

    device:
      endpoint: abc123-ats.iot.us-east-2.amazonaws.com
      cert_path: my-device.x509       # device_id defaults to the cert's CN
      priv_key_path: my-device.pem
      ca_certs_path: roots.pem
    mqtt:
      keepalive: 60
      connect_timeout: 10
"""
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, List

from iotcore_mqtt import options as opts
from iotcore_mqtt.connection import Option
from iotcore_mqtt.errors import InvalidDeviceError
from iotcore_mqtt.identity import device_id_from_cert
from iotcore_mqtt.models import Device

logger = logging.getLogger(__name__)

REQUIRED_DEVICE_KEYS = ("endpoint", "ca_certs_path", "cert_path", "priv_key_path")


def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Loads the YAML configuration file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
            return config
    except Exception as e:
        logger.error(f"Failed to parse config file: {e}")
        raise


def device_from_config(config: Dict[str, Any]) -> Device:
    """
    Builds the Device described by the `device` section.
    Without an explicit device_id, the Common Name of cert_path is used.
    """
    device_conf = dict(config.get('device') or {})
    missing = [key for key in REQUIRED_DEVICE_KEYS if not device_conf.get(key)]
    if missing:
        raise InvalidDeviceError(f"device config is missing: {', '.join(missing)}")

    if not device_conf.get('device_id'):
        device_conf['device_id'] = device_id_from_cert(device_conf['cert_path'])
        logger.info(f"Using device ID '{device_conf['device_id']}' from {device_conf['cert_path']}")

    return Device.from_dict(device_conf)


def options_from_config(config: Dict[str, Any]) -> List[Option]:
    """Translates the `mqtt` section into connection options, in a fixed order."""
    mqtt_conf = config.get('mqtt') or {}
    options: List[Option] = []

    if 'port' in mqtt_conf:
        options.append(opts.broker_port(int(mqtt_conf['port'])))
    if 'keepalive' in mqtt_conf:
        options.append(opts.keepalive(int(mqtt_conf['keepalive'])))
    if 'connect_timeout' in mqtt_conf:
        options.append(opts.connect_timeout(float(mqtt_conf['connect_timeout'])))
    if 'clean_session' in mqtt_conf:
        options.append(opts.clean_session(bool(mqtt_conf['clean_session'])))

    return options
