"""Shared fixtures for bridge tests.

Provides an in-memory hub collaborator and client connection so the bridge
components can be exercised without hardware or sockets.
"""

import asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from insteon_bridge.bridge import BridgeContext
from insteon_bridge.config import BridgeConfig
from insteon_bridge.devices import DeviceRegistry
from insteon_bridge.dispatcher import CommandDispatcher
from insteon_bridge.hub import CommandStatus, DeviceCapability, HubClient
from insteon_bridge.tracker import LevelTracker

DEVICES = [
    {"name": "Kitchen Switch", "deviceID": "aa.bb.cc", "deviceType": "switch"},
    {"name": "Living Dimmer", "deviceID": "11:22:33", "deviceType": "dimmer"},
    {"name": "Porch Lamp", "deviceID": "44.55.66", "deviceType": "lightbulb"},
    {"name": "Front Door", "deviceID": "77.88.99", "deviceType": "doorsensor"},
    {"name": "Basement Leak", "deviceID": "dd.ee.ff", "deviceType": "leaksensor"},
]

SWITCH_ID = "AABBCC"
DIMMER_ID = "112233"
LAMP_ID = "445566"
DOOR_ID = "778899"
LEAK_ID = "DDEEFF"


class FakeCapability(DeviceCapability):
    """Scriptable device capability.

    ``levels`` is consumed one value per read; the last value repeats.
    """

    def __init__(self, device_id: str, device_type: str):
        self.device_id = device_id
        self.device_type = device_type
        self.levels: List[Any] = [0]
        self.info_data: Dict[str, Any] = {"rampRate": 500, "onLevel": 100, "level": 0}
        self.status = CommandStatus(True)
        self.level_error: Optional[Exception] = None
        self.setting_result: Optional[int] = None
        self.calls: List[tuple] = []

    async def info(self) -> Dict[str, Any]:
        self.calls.append(("info",))
        return dict(self.info_data)

    async def level(self) -> int:
        self.calls.append(("level",))
        if self.level_error is not None:
            raise self.level_error
        if len(self.levels) > 1:
            return self.levels.pop(0)
        return self.levels[0]

    async def set_level(self, level, rate=None) -> CommandStatus:
        self.calls.append(("set_level", level, rate))
        return self.status

    async def turn_on(self, level=None, rate=None) -> CommandStatus:
        self.calls.append(("turn_on", level, rate))
        return self.status

    async def turn_off(self, rate=None) -> CommandStatus:
        self.calls.append(("turn_off", rate))
        return self.status

    async def turn_on_fast(self) -> CommandStatus:
        self.calls.append(("turn_on_fast",))
        return self.status

    async def turn_off_fast(self) -> CommandStatus:
        self.calls.append(("turn_off_fast",))
        return self.status

    async def set_ramp_rate(self, rate):
        self.calls.append(("set_ramp_rate", rate))
        return self.setting_result

    async def set_on_level(self, level):
        self.calls.append(("set_on_level", level))
        return self.setting_result


class FakeHub(HubClient):
    def __init__(self):
        super().__init__()
        self.capabilities: Dict[str, FakeCapability] = {}
        self.connect_failures: List[Exception] = []
        self.connect_calls: List[tuple] = []
        self.closed = False

    async def _connect(self, *call):
        self.connect_calls.append(call)
        if self.connect_failures:
            raise self.connect_failures.pop(0)

    async def connect_http(self, host, port, username, password):
        await self._connect("http", host, port, username, password)

    async def connect_tcp(self, host, port):
        await self._connect("tcp", host, port)

    async def connect_serial(self, device, *, baudrate=19200):
        await self._connect("serial", device, baudrate)

    async def close(self):
        self.closed = True

    def capability(self, device_id, device_type):
        capability = FakeCapability(device_id, device_type)
        self.capabilities[device_id] = capability
        return capability


class FakeConnection:
    """Records envelopes sent to one client."""

    def __init__(self, remote: str = "10.0.0.5"):
        self.remote = remote
        self.alive = True
        self.closed = False
        self.sent: List[tuple] = []
        self.ping = AsyncMock()
        self.pong = AsyncMock()
        self.terminated = False

    def mark_alive(self):
        self.alive = True

    async def send(self, message_type, data):
        if self.closed:
            return False
        self.sent.append((message_type, data))
        return True

    async def terminate(self):
        self.terminated = True
        self.closed = True

    async def close(self, message=b""):
        self.closed = True

    def of_type(self, message_type):
        return [data for kind, data in self.sent if kind == message_type]


@pytest.fixture
def bridge_config() -> BridgeConfig:
    return BridgeConfig.from_dict(
        {
            "name": "Test Hub",
            "host": "192.168.1.50",
            "model": "2245",
            "username": "admin",
            "password": "secret",
            "devices": DEVICES,
        }
    )


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def context(bridge_config, hub) -> BridgeContext:
    registry = DeviceRegistry(hub)
    for device_config in bridge_config.devices:
        registry.register(device_config)
    return BridgeContext(config=bridge_config, registry=registry)


@pytest.fixture
def tracker() -> LevelTracker:
    return LevelTracker()


@pytest.fixture
def dispatcher(context, tracker) -> CommandDispatcher:
    return CommandDispatcher(context, tracker, command_timeout=1.0)


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


async def drain(tracker: LevelTracker, timeout: float = 5.0) -> None:
    await asyncio.wait_for(tracker.wait_idle(), timeout=timeout)
