"""Device kinds and the registry mapping device IDs to bridge devices."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Type

from .config import DeviceConfig, normalize_device_id
from .hub import DeviceCapability, HubClient

DEVICE_INFO = "deviceInfo"
DEVICE_LEVEL = "deviceLevel"
DEVICE_ON = "deviceOn"
DEVICE_OFF = "deviceOff"
DEVICE_FAST_ON = "deviceFastOn"
DEVICE_FAST_OFF = "deviceFastOff"
DEVICE_SET_RAMP_RATE = "deviceSetRampRate"
DEVICE_SET_ON_LEVEL = "deviceSetOnLevel"
DEVICE_SET_LEVEL = "deviceSetLevel"

_LIGHTING_METHODS = frozenset(
    {DEVICE_INFO, DEVICE_LEVEL, DEVICE_ON, DEVICE_OFF, DEVICE_FAST_ON, DEVICE_FAST_OFF}
)
# Only on/off switches accept these; dimmable firmware rejects them.
SWITCH_ONLY_METHODS = frozenset({DEVICE_SET_RAMP_RATE, DEVICE_SET_ON_LEVEL, DEVICE_SET_LEVEL})


class DeviceNotFoundError(Exception):
    """Raised when a requested device is not known to the bridge."""


class Device:
    """A configured device and the hub capability that drives it."""

    device_types: ClassVar[FrozenSet[str]] = frozenset()
    methods: ClassVar[FrozenSet[str]] = frozenset({DEVICE_INFO})

    def __init__(self, config: DeviceConfig, capability: DeviceCapability):
        self.config = config
        self.capability = capability

    @property
    def device_id(self) -> str:
        return self.config.device_id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def device_type(self) -> str:
        return self.config.device_type

    def is_dimmable(self) -> bool:
        return False

    def supports(self, method: str) -> bool:
        return method in self.methods

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, device_id={self.device_id!r})"


class SwitchDevice(Device):
    device_types = frozenset({"switch"})
    methods = _LIGHTING_METHODS | SWITCH_ONLY_METHODS


class DimmableDevice(Device):
    device_types = frozenset({"dimmer", "lightbulb"})
    methods = _LIGHTING_METHODS

    def is_dimmable(self) -> bool:
        return True


class ContactSensorDevice(Device):
    device_types = frozenset({"contactsensor", "windowsensor", "doorsensor"})


class LeakSensorDevice(Device):
    device_types = frozenset({"leaksensor"})


DEVICE_KINDS: List[Type[Device]] = [SwitchDevice, DimmableDevice, ContactSensorDevice, LeakSensorDevice]


def device_kind(device_type: str) -> Type[Device]:
    for kind in DEVICE_KINDS:
        if device_type in kind.device_types:
            return kind
    raise ValueError(f"Unsupported device type {device_type!r}")


class DeviceRegistry:
    """Read-only (after startup) map of canonical device ID to :class:`Device`."""

    def __init__(self, hub: HubClient):
        self.hub = hub
        self._devices: Dict[str, Device] = {}

    def register(self, config: DeviceConfig) -> Device:
        kind = device_kind(config.device_type)
        device = kind(config, self.hub.capability(config.device_id, config.device_type))
        self._devices[config.device_id] = device
        return device

    def get(self, device_id: Any) -> Optional[Device]:
        return self._devices.get(normalize_device_id(device_id))

    def lookup(self, device_id: Any) -> Device:
        device = self.get(device_id)
        if device is None:
            raise DeviceNotFoundError(f"Unknown device ID {normalize_device_id(device_id)}")
        return device

    def snapshot(self) -> List[Dict[str, Any]]:
        return [device.config.to_dict() for device in self._devices.values()]

    def __len__(self) -> int:
        return len(self._devices)


__all__ = [
    "ContactSensorDevice",
    "DEVICE_KINDS",
    "Device",
    "DeviceNotFoundError",
    "DeviceRegistry",
    "DimmableDevice",
    "LeakSensorDevice",
    "SWITCH_ONLY_METHODS",
    "SwitchDevice",
    "device_kind",
]
