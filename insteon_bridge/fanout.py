"""Republishes hardware-originated device changes to every connected client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from . import hub as hub_events
from .devices import ContactSensorDevice, Device, DimmableDevice, LeakSensorDevice, SwitchDevice
from .hub import HubEvent
from .messages import EVENT, device_event

BroadcastFn = Callable[[str, Any], Awaitable[Any]]

# Fixed states per device kind; dimmable "on" events are resolved separately.
_STATES: Dict[Type[Device], Dict[str, Any]] = {
    ContactSensorDevice: {hub_events.OPENED: "open", hub_events.CLOSED: "closed"},
    LeakSensorDevice: {hub_events.WET: "wet", hub_events.DRY: "dry"},
    SwitchDevice: {
        hub_events.TURN_ON: 100,
        hub_events.TURN_ON_FAST: 100,
        hub_events.TURN_OFF: 0,
        hub_events.TURN_OFF_FAST: 0,
    },
    DimmableDevice: {hub_events.TURN_OFF: 0, hub_events.TURN_OFF_FAST: 0},
}
_DIMMABLE_LEVEL_EVENTS = (hub_events.TURN_ON, hub_events.TURN_ON_FAST, hub_events.BRIGHTENED)
UNMAPPED = object()


class EventFanout:
    """Consumes the hub's event queue and broadcasts one ``event`` per notification."""

    def __init__(
        self,
        context: Any,
        events: "asyncio.Queue[HubEvent]",
        broadcast: BroadcastFn,
        *,
        read_timeout: Optional[float] = 10.0,
    ):
        self.context = context
        self.events = events
        self.broadcast = broadcast
        self.read_timeout = read_timeout
        self.log = logging.getLogger("insteon_bridge.fanout")
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run(), name="bridge-fanout")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run(self) -> None:
        while True:
            event = await self.events.get()
            try:
                await self.process(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                self.log.exception("Failed to publish hub event %s", event)
            finally:
                self.events.task_done()

    async def process(self, event: HubEvent) -> bool:
        """Broadcast ``event``; returns False when it maps to no client state."""
        device = self.context.registry.get(event.device_id)
        if device is None:
            self.log.debug("Ignoring EVENT [%s] from unknown device=[%s]", event.name, event.device_id)
            return False
        state = await self.resolve_state(device, event)
        if state is UNMAPPED:
            return False
        self.log.info("EVENT [%s] from device=[%s] state=[%s]", event.name, device.name, state)
        await self.broadcast(EVENT, device_event(device, state))
        return True

    async def resolve_state(self, device: Device, event: HubEvent) -> Any:
        states = _STATES.get(type(device), {})
        if event.name in states:
            return states[event.name]
        if isinstance(device, DimmableDevice) and event.name in _DIMMABLE_LEVEL_EVENTS:
            if event.level is not None:
                return event.level
            # Physical button presses arrive without a level
            try:
                level = await asyncio.wait_for(device.capability.level(), timeout=self.read_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.log.warning("Could not read level of device=[%s] after [%s]: %s", device.name, event.name, exc)
                return UNMAPPED
            return level
        self.log.debug("EVENT [%s] does not apply to device=[%s] (%s)", event.name, device.name, device.device_type)
        return UNMAPPED


__all__ = ["EventFanout", "UNMAPPED"]
