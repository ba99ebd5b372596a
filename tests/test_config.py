"""Unit tests for configuration loading and validation."""

import json

import pytest

from insteon_bridge.config import BridgeConfig, ConfigError, DeviceConfig, normalize_device_id


def base_config(**overrides):
    raw = {
        "name": "Hub",
        "host": "10.0.0.10",
        "model": "plm",
        "devices": [{"name": "Hall", "deviceID": "1a.2b.3c", "deviceType": "Dimmer"}],
    }
    raw.update(overrides)
    return raw


@pytest.mark.parametrize("raw,expected", [("1a.2b.3c", "1A2B3C"), ("1A:2B:3C", "1A2B3C"), ("aabbcc", "AABBCC")])
def test_normalize_device_id(raw, expected):
    assert normalize_device_id(raw) == expected


def test_defaults_and_device_normalization():
    config = BridgeConfig.from_dict(base_config())
    assert config.hub_port == 25105
    assert config.bridge_port == 8080
    assert config.devices == [DeviceConfig(name="Hall", device_id="1A2B3C", device_type="dimmer")]


def test_aliases_for_credentials_and_port():
    config = BridgeConfig.from_dict(base_config(model=2245, user="me", **{"pass": "pw", "port": 9000}))
    assert config.model == "2245"
    assert config.username == "me"
    assert config.password == "pw"
    assert config.hub_port == 9000


def test_hub2_requires_credentials():
    with pytest.raises(ConfigError, match="username"):
        BridgeConfig.from_dict(base_config(model="2245"))


@pytest.mark.parametrize(
    "overrides,match",
    [
        ({"model": "9999"}, "Unknown hub model"),
        ({"devices": {"name": "x"}}, "devices must be an array"),
        ({"devices": [{"name": "x", "deviceID": "1"}]}, "missing required keys"),
        ({"devices": [{"name": "x", "deviceID": "1", "deviceType": "toaster"}]}, "unknown deviceType"),
        (
            {
                "devices": [
                    {"name": "a", "deviceID": "aa.bb.cc", "deviceType": "switch"},
                    {"name": "b", "deviceID": "AABBCC", "deviceType": "switch"},
                ]
            },
            "Duplicate deviceID",
        ),
    ],
)
def test_invalid_configs(overrides, match):
    with pytest.raises(ConfigError, match=match):
        BridgeConfig.from_dict(base_config(**overrides))


def test_missing_keys_reported():
    raw = base_config()
    del raw["host"]
    with pytest.raises(ConfigError, match="host"):
        BridgeConfig.from_dict(raw)


def test_from_file_and_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(base_config(bridgePort=9090)), encoding="utf-8")
    monkeypatch.setenv("INSTEON_HEARTBEAT_SECONDS", "15")
    monkeypatch.setenv("INSTEON_LOG_LEVEL", "DEBUG")
    config = BridgeConfig.from_file(path)
    assert config.bridge_port == 9090
    assert config.heartbeat_interval == 15.0
    assert config.log_level == "DEBUG"
    assert config.source == path


def test_from_file_errors(tmp_path):
    with pytest.raises(ConfigError, match="Could not find"):
        BridgeConfig.from_file(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{nope", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        BridgeConfig.from_file(bad)
    with pytest.raises(ConfigError, match="directory"):
        BridgeConfig.from_file(tmp_path)


def test_redacted_masks_credentials():
    config = BridgeConfig.from_dict(base_config(model="2245", username="me", password="pw"))
    redacted = config.redacted()
    assert redacted["username"] == "*****"
    assert redacted["password"] == "*****"
    assert "pw" not in json.dumps(redacted)
