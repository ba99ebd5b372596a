"""Unit tests for device kinds and the registry."""

import pytest

from conftest import DIMMER_ID, DOOR_ID, LAMP_ID, LEAK_ID, SWITCH_ID
from insteon_bridge.devices import (
    ContactSensorDevice,
    DeviceNotFoundError,
    DimmableDevice,
    LeakSensorDevice,
    SwitchDevice,
    device_kind,
)


@pytest.mark.parametrize(
    "device_type,kind",
    [
        ("switch", SwitchDevice),
        ("dimmer", DimmableDevice),
        ("lightbulb", DimmableDevice),
        ("doorsensor", ContactSensorDevice),
        ("windowsensor", ContactSensorDevice),
        ("contactsensor", ContactSensorDevice),
        ("leaksensor", LeakSensorDevice),
    ],
)
def test_device_kind(device_type, kind):
    assert device_kind(device_type) is kind


def test_unknown_kind():
    with pytest.raises(ValueError):
        device_kind("toaster")


def test_lookup_is_case_and_separator_insensitive(context):
    registry = context.registry
    assert registry.lookup("aa.bb.cc") is registry.lookup(SWITCH_ID)
    assert registry.get("11:22:33").device_id == DIMMER_ID
    assert registry.get("aabbcc") is not None
    assert len(registry) == 5


def test_lookup_unknown(context):
    assert context.registry.get("000000") is None
    with pytest.raises(DeviceNotFoundError):
        context.registry.lookup("000000")


def test_dimmable_flag(context):
    registry = context.registry
    assert registry.lookup(DIMMER_ID).is_dimmable()
    assert registry.lookup(LAMP_ID).is_dimmable()
    assert not registry.lookup(SWITCH_ID).is_dimmable()
    assert not registry.lookup(DOOR_ID).is_dimmable()


def test_supported_methods(context):
    registry = context.registry
    assert registry.lookup(SWITCH_ID).supports("deviceSetRampRate")
    assert not registry.lookup(DIMMER_ID).supports("deviceSetRampRate")
    assert registry.lookup(DIMMER_ID).supports("deviceOn")
    assert registry.lookup(LEAK_ID).supports("deviceInfo")
    assert not registry.lookup(LEAK_ID).supports("deviceLevel")


def test_each_device_gets_its_own_capability(context, hub):
    device = context.registry.lookup(SWITCH_ID)
    assert device.capability is hub.capabilities[SWITCH_ID]
    assert context.registry.snapshot()[0] == {
        "name": "Kitchen Switch",
        "deviceID": SWITCH_ID,
        "deviceType": "switch",
    }
