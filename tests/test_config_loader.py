import pytest

from iotcore_mqtt.config_loader import device_from_config, load_config, options_from_config
from iotcore_mqtt.connection import build_connection_parameters
from iotcore_mqtt.errors import CertificateNotFoundError, InvalidDeviceError

"""
Tests for loading the YAML configuration into a Device and connection options.
"""

@pytest.fixture
def device_config(pki):
    return {
        "device": {
            "endpoint": "myendpoint",
            "ca_certs_path": str(pki.ca_path),
            "cert_path": str(pki.cert_path),
            "priv_key_path": str(pki.key_path),
        },
    }


def test_load_config_missing_file_returns_empty(tmp_path):
    assert load_config(str(tmp_path / "config.yaml")) == {}


def test_load_config_reads_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("device:\n  endpoint: myendpoint\nmqtt:\n  keepalive: 30\n")

    assert load_config(str(path)) == {"device": {"endpoint": "myendpoint"}, "mqtt": {"keepalive": 30}}


def test_load_config_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(str(path)) == {}


def test_load_config_invalid_yaml_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("device: [unclosed\n")

    with pytest.raises(Exception):
        load_config(str(path))


def test_device_id_defaults_to_cert_common_name(device_config):
    device = device_from_config(device_config)

    assert device.id() == "my-device"
    assert device.telemetry_topic() == "things/my-device/telemetry"


def test_explicit_device_id_and_topic(device_config):
    device_config["device"]["device_id"] = "foo"
    device_config["device"]["telemetry_topic"] = "things/foo/my/custom/topic"

    device = device_from_config(device_config)

    assert device.id() == "foo"
    assert device.telemetry_topic() == "things/foo/my/custom/topic"


def test_missing_required_keys(device_config):
    del device_config["device"]["endpoint"]
    del device_config["device"]["priv_key_path"]

    with pytest.raises(InvalidDeviceError, match="endpoint, priv_key_path"):
        device_from_config(device_config)


def test_missing_cert_when_deriving_device_id(device_config, tmp_path):
    device_config["device"]["cert_path"] = str(tmp_path / "missing.x509")

    with pytest.raises(CertificateNotFoundError):
        device_from_config(device_config)


def test_options_from_config(device_config):
    device_config["mqtt"] = {"keepalive": 30, "connect_timeout": 5, "clean_session": True, "port": 443}

    params = build_connection_parameters(device_from_config(device_config), *options_from_config(device_config))

    assert params.keepalive == 30
    assert params.timeout == 5.0
    assert params.clean_session is True
    assert params.broker.port == 443


def test_no_mqtt_section_means_no_options():
    assert options_from_config({}) == []
