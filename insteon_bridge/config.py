"""Configuration helpers for the Insteon bridge."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

KNOWN_HUB_MODELS = ("2245", "2242", "2243", "plm")
KNOWN_DEVICE_TYPES = (
    "switch",
    "dimmer",
    "lightbulb",
    "leaksensor",
    "contactsensor",
    "windowsensor",
    "doorsensor",
)

DEFAULT_HUB_PORT = 25105
DEFAULT_BRIDGE_PORT = 8080

_KNOWN_KEYS = ("name", "username", "password", "host", "model", "devices", "hubPort", "bridgePort")
_ALIASES = {"user": "username", "pass": "password", "port": "hubPort"}
_ID_SEPARATORS = re.compile(r"[.:]")


class ConfigError(Exception):
    """Raised when the bridge configuration is missing or invalid."""


def normalize_device_id(device_id: Any) -> str:
    return _ID_SEPARATORS.sub("", str(device_id)).upper()


@dataclass(frozen=True)
class DeviceConfig:
    name: str
    device_id: str
    device_type: str

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DeviceConfig":
        if not isinstance(raw, dict):
            raise ConfigError(f"Device entries must be objects, got {type(raw).__name__}")
        missing = [key for key in ("name", "deviceID", "deviceType") if key not in raw]
        if missing:
            raise ConfigError(f"A device is missing required keys: {missing}")
        name = str(raw["name"])
        device_type = str(raw["deviceType"]).lower()
        if device_type not in KNOWN_DEVICE_TYPES:
            raise ConfigError(
                f"Device name=[{name}] is unknown deviceType=[{device_type}]. "
                f"Known device types are {list(KNOWN_DEVICE_TYPES)}"
            )
        return cls(name=name, device_id=normalize_device_id(raw["deviceID"]), device_type=device_type)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "deviceID": self.device_id, "deviceType": self.device_type}


@dataclass
class BridgeConfig:
    name: str
    host: str
    model: str
    devices: List[DeviceConfig]
    username: Optional[str] = None
    password: Optional[str] = None
    hub_port: int = DEFAULT_HUB_PORT
    bridge_port: int = DEFAULT_BRIDGE_PORT
    http_host: str = "0.0.0.0"
    reconnect_initial: float = 5.0
    reconnect_max: float = 60.0
    heartbeat_interval: float = 30.0
    command_timeout: float = 10.0
    log_level: str = "INFO"
    source: Optional[Path] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], *, source: Optional[Path] = None) -> "BridgeConfig":
        if not isinstance(raw, dict):
            raise ConfigError("Config file must contain a JSON object")
        data = dict(raw)

        # Accept some different names for compatibility with other servers
        for alias, key in _ALIASES.items():
            if data.get(alias) and not data.get(key):
                data[key] = data[alias]
        data = {key: value for key, value in data.items() if key in _KNOWN_KEYS}

        required = ["name", "host", "model", "devices"]
        if str(data.get("model", "")) == "2245":
            required += ["username", "password"]
        missing = [key for key in required if key not in data]
        if missing:
            raise ConfigError(f"config is missing required keys: {missing}")

        if not isinstance(data["devices"], list):
            raise ConfigError("devices must be an array")

        model = str(data["model"]).lower()
        if model not in KNOWN_HUB_MODELS:
            raise ConfigError(f"Unknown hub model=[{model}]. Known models are {list(KNOWN_HUB_MODELS)}")

        try:
            hub_port = int(data.get("hubPort") or DEFAULT_HUB_PORT)
            bridge_port = int(data.get("bridgePort") or DEFAULT_BRIDGE_PORT)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid port value: {exc}") from exc

        devices = [DeviceConfig.from_dict(entry) for entry in data["devices"]]
        seen: Dict[str, str] = {}
        for device in devices:
            if device.device_id in seen:
                raise ConfigError(
                    f"Duplicate deviceID {device.device_id} for [{seen[device.device_id]}] and [{device.name}]"
                )
            seen[device.device_id] = device.name

        return cls(
            name=str(data["name"]),
            host=str(data["host"]),
            model=model,
            devices=devices,
            username=str(data["username"]) if data.get("username") is not None else None,
            password=str(data["password"]) if data.get("password") is not None else None,
            hub_port=hub_port,
            bridge_port=bridge_port,
            source=source,
        )

    @classmethod
    def from_file(cls, path: Optional[Path] = None) -> "BridgeConfig":
        path = Path(path or os.getenv("INSTEON_BRIDGE_CONFIG", "config.json"))
        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file: {exc}") from exc
        except FileNotFoundError as exc:
            raise ConfigError(f"Could not find config file {path}. Please make sure it is present.") from exc
        except IsADirectoryError as exc:
            raise ConfigError(
                f"Config file {path} is a directory. If you are using a container, make sure your mount syntax is correct."
            ) from exc
        return cls.from_dict(raw, source=path).with_env_overrides()

    def with_env_overrides(self) -> "BridgeConfig":
        return replace(
            self,
            bridge_port=int(os.getenv("INSTEON_BRIDGE_PORT", str(self.bridge_port))),
            http_host=os.getenv("INSTEON_BIND", self.http_host),
            reconnect_initial=float(os.getenv("INSTEON_RECONNECT_SECONDS", str(self.reconnect_initial))),
            reconnect_max=float(os.getenv("INSTEON_RECONNECT_MAX_SECONDS", str(self.reconnect_max))),
            heartbeat_interval=float(os.getenv("INSTEON_HEARTBEAT_SECONDS", str(self.heartbeat_interval))),
            command_timeout=float(os.getenv("INSTEON_COMMAND_TIMEOUT", str(self.command_timeout))),
            log_level=os.getenv("INSTEON_LOG_LEVEL", self.log_level),
        )

    def redacted(self) -> Dict[str, Any]:
        """Config as a dict with credentials masked, for logging."""
        return {
            "name": self.name,
            "host": self.host,
            "model": self.model,
            "username": "*****",
            "password": "*****",
            "hubPort": self.hub_port,
            "bridgePort": self.bridge_port,
            "devices": [device.to_dict() for device in self.devices],
        }


__all__ = [
    "BridgeConfig",
    "ConfigError",
    "DeviceConfig",
    "KNOWN_DEVICE_TYPES",
    "KNOWN_HUB_MODELS",
    "normalize_device_id",
]
