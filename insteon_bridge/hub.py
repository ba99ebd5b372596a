"""Boundary between the bridge and the library that talks to Insteon hardware.

The bridge never talks to a hub directly. It holds a :class:`HubClient` which
hands out one :class:`DeviceCapability` per configured device and publishes
hardware-originated changes as :class:`HubEvent` objects on an asyncio queue.
Levels are percentages (0-100) and ramp rates are milliseconds throughout.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

# Hardware notification names understood by the event fan-out.
OPENED = "opened"
CLOSED = "closed"
WET = "wet"
DRY = "dry"
TURN_ON = "turnOn"
TURN_ON_FAST = "turnOnFast"
TURN_OFF = "turnOff"
TURN_OFF_FAST = "turnOffFast"
BRIGHTENED = "brightened"


class HubNotConnected(Exception):
    """Raised when a device operation needs a hub connection that is not up."""


@dataclass(frozen=True)
class CommandStatus:
    success: bool
    detail: Optional[str] = None


@dataclass(frozen=True)
class HubEvent:
    device_id: str
    name: str
    level: Optional[int] = None


class DeviceCapability(abc.ABC):
    """Operations the hub can perform on one physical unit."""

    @abc.abstractmethod
    async def info(self) -> Dict[str, Any]:
        """Return device info; lighting devices include ``rampRate`` and ``onLevel``."""

    @abc.abstractmethod
    async def level(self) -> int:
        ...

    @abc.abstractmethod
    async def set_level(self, level: int, rate: Optional[int] = None) -> CommandStatus:
        ...

    @abc.abstractmethod
    async def turn_on(self, level: Optional[int] = None, rate: Optional[int] = None) -> CommandStatus:
        ...

    @abc.abstractmethod
    async def turn_off(self, rate: Optional[int] = None) -> CommandStatus:
        ...

    @abc.abstractmethod
    async def turn_on_fast(self) -> CommandStatus:
        ...

    @abc.abstractmethod
    async def turn_off_fast(self) -> CommandStatus:
        ...

    @abc.abstractmethod
    async def set_ramp_rate(self, rate: int) -> Optional[int]:
        """Write the ramp rate; returns the stored value, or None when unknown."""

    @abc.abstractmethod
    async def set_on_level(self, level: int) -> Optional[int]:
        """Write the on level; returns the stored value, or None when unknown."""


class HubClient(abc.ABC):
    """A connection to one Insteon hub or PLM."""

    def __init__(self, *, event_buffer: int = 1000):
        self.events: "asyncio.Queue[HubEvent]" = asyncio.Queue(event_buffer)
        self.log = logging.getLogger("insteon_bridge.hub")

    @abc.abstractmethod
    async def connect_http(self, host: str, port: int, username: str, password: str) -> None:
        """Connect to an HTTP-polled Hub 2 (model 2245)."""

    @abc.abstractmethod
    async def connect_tcp(self, host: str, port: int) -> None:
        """Connect to an IP-direct Hub 1 (model 2242)."""

    @abc.abstractmethod
    async def connect_serial(self, device: str, *, baudrate: int = 19200) -> None:
        """Connect to a serial hub (model 2243) or a PLM."""

    @abc.abstractmethod
    async def close(self) -> None:
        ...

    @abc.abstractmethod
    def capability(self, device_id: str, device_type: str) -> DeviceCapability:
        """Return the capability object for a configured device."""

    def publish(self, event: HubEvent) -> bool:
        try:
            self.events.put_nowait(event)
        except asyncio.QueueFull:
            self.log.warning("Dropping event because queue is full: %s", event)
            return False
        return True


__all__ = [
    "BRIGHTENED",
    "CLOSED",
    "CommandStatus",
    "DRY",
    "DeviceCapability",
    "HubClient",
    "HubEvent",
    "HubNotConnected",
    "OPENED",
    "TURN_OFF",
    "TURN_OFF_FAST",
    "TURN_ON",
    "TURN_ON_FAST",
    "WET",
]
