"""Hub collaborator backed by pyinsteon."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from pyinsteon import async_close, async_connect
from pyinsteon.constants import ResponseStatus
from pyinsteon.utils import ramp_rate_to_seconds, seconds_to_ramp_rate

from . import hub as hub_events
from .config import normalize_device_id
from .hub import CommandStatus, DeviceCapability, HubClient, HubEvent, HubNotConnected

LIGHTING_TYPES = frozenset({"switch", "dimmer", "lightbulb"})
DIMMABLE_TYPES = frozenset({"dimmer", "lightbulb"})
CONTACT_TYPES = frozenset({"contactsensor", "windowsensor", "doorsensor"})

_EVENT_NAMES = {
    "on_event": hub_events.TURN_ON,
    "on_fast_event": hub_events.TURN_ON_FAST,
    "off_event": hub_events.TURN_OFF,
    "off_fast_event": hub_events.TURN_OFF_FAST,
}
RAMP_RATE = "ramp_rate"
ON_LEVEL = "on_level"


def to_percent(value: Any) -> int:
    if isinstance(value, bool):
        return 100 if value else 0
    try:
        raw = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return int(round(max(0, min(raw, 255)) * 100 / 255))


def to_byte(percent: Any) -> int:
    level = max(0, min(int(percent), 100))
    return int(round(level * 255 / 100))


def _status(result: Any) -> CommandStatus:
    return CommandStatus(success=result == ResponseStatus.SUCCESS, detail=str(result))


def _config_value(device: Any, name: str) -> Any:
    for attr in ("configuration", "properties"):
        values = getattr(device, attr, None)
        if not values:
            continue
        with suppress(Exception):
            entry = values[name]
            return getattr(entry, "value", entry)
    return None


class InsteonDevice(DeviceCapability):
    """Capability wrapper resolving the pyinsteon device on each call."""

    def __init__(self, hub: "InsteonHub", device_id: str, device_type: str):
        self.hub = hub
        self.device_id = device_id
        self.device_type = device_type

    @property
    def device(self) -> Any:
        device = self.hub.find_device(self.device_id)
        if device is None:
            raise HubNotConnected(f"Insteon device {self.device_id} is not available")
        return device

    @property
    def dimmable(self) -> bool:
        return self.device_type in DIMMABLE_TYPES

    async def _group_value(self, group: int = 1) -> Any:
        device = self.device
        status = getattr(device, "async_status", None)
        if callable(status):
            # Status replies update the group state; that is not a hardware change
            self.hub.polling.add(self.device_id)
            try:
                await status()
            finally:
                self.hub.polling.discard(self.device_id)
        groups = getattr(device, "groups", {}) or {}
        state = groups.get(group)
        return getattr(state, "value", None)

    async def info(self) -> Dict[str, Any]:
        device = self.device
        info: Dict[str, Any] = {
            "address": str(getattr(device, "address", self.device_id)),
            "description": getattr(device, "description", None),
            "model": getattr(device, "model", None),
            "firmware": getattr(device, "firmware", None),
        }
        if self.device_type in LIGHTING_TYPES:
            read_config = getattr(device, "async_read_config", None)
            if callable(read_config):
                await read_config()
            ramp_rate = _config_value(device, RAMP_RATE)
            on_level = _config_value(device, ON_LEVEL)
            info["rampRate"] = int(ramp_rate_to_seconds(ramp_rate) * 1000) if ramp_rate is not None else None
            info["onLevel"] = to_percent(on_level) if on_level is not None else None
            info["level"] = to_percent(await self._group_value())
        return info

    async def level(self) -> int:
        return to_percent(await self._group_value())

    async def set_level(self, level: int, rate: Optional[int] = None) -> CommandStatus:
        if level <= 0:
            return await self.turn_off(rate)
        return await self.turn_on(level, rate)

    async def turn_on(self, level: Optional[int] = None, rate: Optional[int] = None) -> CommandStatus:
        if rate is not None:
            self.hub.log.debug("Per-command ramp rate not supported; device=[%s] uses its configured rate", self.device_id)
        # On/off switches take no level; any positive level means full on
        if level is None or not self.dimmable:
            return _status(await self.device.async_on())
        return _status(await self.device.async_on(on_level=to_byte(level)))

    async def turn_off(self, rate: Optional[int] = None) -> CommandStatus:
        return _status(await self.device.async_off())

    async def turn_on_fast(self) -> CommandStatus:
        if not self.dimmable:
            return _status(await self.device.async_on())
        return _status(await self.device.async_on(fast=True))

    async def turn_off_fast(self) -> CommandStatus:
        if not self.dimmable:
            return _status(await self.device.async_off())
        return _status(await self.device.async_off(fast=True))

    async def _write_config(self, name: str, value: Any) -> bool:
        device = self.device
        for attr in ("configuration", "properties"):
            values = getattr(device, attr, None)
            if values and name in values:
                values[name].new_value = value
                break
        else:
            return False
        result = await device.async_write_config()
        return result == ResponseStatus.SUCCESS

    async def set_ramp_rate(self, rate: int) -> Optional[int]:
        if not await self._write_config(RAMP_RATE, seconds_to_ramp_rate(rate / 1000)):
            raise RuntimeError(f"Failed to write ramp rate to {self.device_id}")
        # Report what the device holds after the write
        return None

    async def set_on_level(self, level: int) -> Optional[int]:
        if not await self._write_config(ON_LEVEL, to_byte(level)):
            raise RuntimeError(f"Failed to write on level to {self.device_id}")
        return None


class InsteonHub(HubClient):
    """Talks to an Insteon Hub or PLM through pyinsteon."""

    def __init__(self, *, loop: Optional[asyncio.AbstractEventLoop] = None, event_buffer: int = 1000):
        super().__init__(event_buffer=event_buffer)
        self.loop = loop
        self.log = logging.getLogger("insteon_bridge.insteon")
        self._manager: Any = None
        self._capabilities: Dict[str, InsteonDevice] = {}
        self._callbacks: List[Tuple[Any, Callable[..., None]]] = []
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._levels: Dict[str, int] = {}
        self.polling: Set[str] = set()

    # ------------------------------------------------------------------
    async def connect_http(self, host: str, port: int, username: str, password: str) -> None:
        manager = await async_connect(host=host, port=port, username=username, password=password, hub_version=2)
        await self._on_connected(manager)

    async def connect_tcp(self, host: str, port: int) -> None:
        manager = await async_connect(host=host, port=port, hub_version=1)
        await self._on_connected(manager)

    async def connect_serial(self, device: str, *, baudrate: int = 19200) -> None:
        # pyinsteon opens serial modems at the standard 19200 baud
        manager = await async_connect(device=device)
        await self._on_connected(manager)

    async def close(self) -> None:
        self._clear_callbacks()
        manager, self._manager = self._manager, None
        if manager is not None:
            await async_close()

    def capability(self, device_id: str, device_type: str) -> DeviceCapability:
        capability = InsteonDevice(self, normalize_device_id(device_id), device_type)
        self._capabilities[capability.device_id] = capability
        return capability

    # ------------------------------------------------------------------
    async def _on_connected(self, manager: Any) -> None:
        self.loop = self.loop or asyncio.get_running_loop()
        self._manager = manager
        load_fn = getattr(manager, "async_load", None)
        if callable(load_fn):
            await load_fn(id_devices=1)
        self._clear_callbacks()
        for device_id, capability in self._capabilities.items():
            device = self.find_device(device_id)
            if device is None:
                self.log.warning("Configured device %s was not found on the hub", device_id)
                continue
            self._subscribe(device, capability)

    def find_device(self, device_id: str) -> Optional[Any]:
        manager = self._manager
        if manager is None:
            raise HubNotConnected("Insteon hub is not connected")
        normalized = normalize_device_id(device_id)
        values = getattr(manager, "values", None)
        if not callable(values):
            return None
        for device in list(values()):
            address = getattr(device, "address", None)
            candidate = getattr(address, "id", None) or address
            if candidate is not None and normalize_device_id(candidate) == normalized:
                return device
        return None

    def _subscribe(self, device: Any, capability: InsteonDevice) -> None:
        if capability.device_type in LIGHTING_TYPES:
            events = getattr(device, "events", {}) or {}
            for group_events in events.values():
                if not isinstance(group_events, dict):
                    continue
                for event_name, event_obj in group_events.items():
                    name = _EVENT_NAMES.get(event_name)
                    if name is None or not hasattr(event_obj, "subscribe"):
                        continue
                    self._attach(event_obj, self._make_event_callback(capability.device_id, name))
            if capability.dimmable:
                # Holding the paddle changes the level without an on/off event
                group = (getattr(device, "groups", {}) or {}).get(1)
                if hasattr(group, "subscribe"):
                    self._attach(group, self._make_level_callback(capability.device_id))
            return
        groups = getattr(device, "groups", {}) or {}
        for group in groups.values():
            if hasattr(group, "subscribe"):
                self._attach(group, self._make_sensor_callback(capability))

    def _attach(self, source: Any, callback: Callable[..., None]) -> None:
        try:
            source.subscribe(callback, force_strong_ref=True)
        except Exception:
            self.log.debug("Failed to subscribe to %s", source, exc_info=True)
            return
        self._callbacks.append((source, callback))

    def _clear_callbacks(self) -> None:
        for source, callback in self._callbacks:
            if hasattr(source, "unsubscribe"):
                with suppress(Exception):
                    source.unsubscribe(callback)
        self._callbacks.clear()
        self._pending.clear()
        self._levels.clear()

    def _note(self, device_id: str, *, name: Optional[str] = None, level: Optional[int] = None) -> None:
        """Collect changes from one hardware message and publish them as a single event."""
        pending = self._pending.get(device_id)
        if pending is None:
            pending = self._pending[device_id] = {}
            self.loop.call_soon_threadsafe(self._flush, device_id)
        if name is not None:
            pending["name"] = name
        if level is not None:
            pending["level"] = level

    def _flush(self, device_id: str) -> None:
        pending = self._pending.pop(device_id, None) or {}
        name = pending.get("name")
        level = pending.get("level")
        if name is None:
            if level is None or level == self._levels.get(device_id):
                return
            name = hub_events.BRIGHTENED
        if level is not None:
            self._levels[device_id] = level
        self.publish(HubEvent(device_id, name, level))

    def _make_event_callback(self, device_id: str, name: str) -> Callable[..., None]:
        def handler(*_: Any, **__: Any) -> None:
            self._note(device_id, name=name)

        return handler

    def _make_level_callback(self, device_id: str) -> Callable[..., None]:
        def handler(name: str, address: str, value: Any, group: int, **_: Any) -> None:
            level = to_percent(value)
            if device_id in self.polling:
                self._levels[device_id] = level
                return
            self._note(device_id, level=level)

        return handler

    def _make_sensor_callback(self, capability: InsteonDevice) -> Callable[..., None]:
        def handler(name: str, address: str, value: Any, group: int, **_: Any) -> None:
            event = sensor_event(capability.device_type, str(name or ""), value)
            if event is not None:
                self.loop.call_soon_threadsafe(self.publish, HubEvent(capability.device_id, event))

        return handler


def sensor_event(device_type: str, group_name: str, value: Any) -> Optional[str]:
    """Translate a pyinsteon sensor group change into a hub event name."""
    group_name = group_name.lower()
    if "heartbeat" in group_name or "battery" in group_name:
        return None
    if device_type in CONTACT_TYPES:
        return hub_events.OPENED if value else hub_events.CLOSED
    if device_type == "leaksensor":
        if "wet" in group_name:
            return hub_events.WET if value else hub_events.DRY
        if "dry" in group_name:
            return hub_events.DRY if value else hub_events.WET
    return None


__all__ = ["InsteonDevice", "InsteonHub", "sensor_event", "to_byte", "to_percent"]
