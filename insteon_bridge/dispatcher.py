"""Turns client requests into device operations and response envelopes."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from . import devices as kinds
from .config import normalize_device_id
from .devices import Device
from .hub import CommandStatus
from .messages import DEVICE_INFO, ERROR, EVENT, device_event, error_data
from .tracker import LevelTracker

LIST_DEVICES = "listDevices"
LEGACY_GET_DEVICES = "getDevices"


class RequestError(Exception):
    """A client request that cannot be handled; reported back as an ``error`` envelope."""


@dataclass
class Request:
    method: str
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def device_id(self) -> Optional[str]:
        value = self.params.get("deviceID")
        return normalize_device_id(value) if value else None

    @property
    def level(self) -> Optional[int]:
        return self.params.get("level")

    @property
    def rate(self) -> Optional[int]:
        return self.params.get("rate")

    @classmethod
    def parse(cls, raw: Any) -> "Request":
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise RequestError(f"Invalid request encoding: {exc}") from exc
        # Older drivers send getDevices as a bare string
        if isinstance(raw, str) and raw.strip() == LEGACY_GET_DEVICES:
            return cls(method=LIST_DEVICES)
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise RequestError(f"Invalid request: {exc}") from exc
        if not isinstance(payload, dict):
            raise RequestError("Invalid request: expected a JSON object")
        method = payload.get("method")
        if not isinstance(method, str) or not method:
            raise RequestError("Invalid request: method must be a non-empty string")
        params = payload.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise RequestError(f"Invalid request: params must be an object in call {method}")
        for key in ("level", "rate"):
            value = params.get(key)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise RequestError(f"Invalid {key}={value!r} in call {method}")
        return cls(method=method, params=params)


Handler = Callable[[Any, Device, Request], Awaitable[None]]


class CommandDispatcher:
    """Handles one inbound message per call, replying only to the sender."""

    def __init__(self, context: Any, tracker: LevelTracker, *, command_timeout: Optional[float] = 10.0):
        self.context = context
        self.tracker = tracker
        self.command_timeout = command_timeout
        self.log = logging.getLogger("insteon_bridge.dispatcher")
        self._tasks: Set[asyncio.Task] = set()
        self._handlers: Dict[str, Handler] = {
            kinds.DEVICE_INFO: self._device_info,
            kinds.DEVICE_LEVEL: self._device_level,
            kinds.DEVICE_ON: self._device_on,
            kinds.DEVICE_OFF: self._device_off,
            kinds.DEVICE_FAST_ON: self._device_fast_on,
            kinds.DEVICE_FAST_OFF: self._device_fast_off,
            kinds.DEVICE_SET_RAMP_RATE: self._device_set_ramp_rate,
            kinds.DEVICE_SET_ON_LEVEL: self._device_set_on_level,
            kinds.DEVICE_SET_LEVEL: self._device_set_level,
        }

    # ------------------------------------------------------------------
    def submit(self, connection: Any, raw: Any) -> asyncio.Task:
        """Handle ``raw`` in its own task so slow hub calls never stall the socket reader."""
        task = asyncio.get_running_loop().create_task(self.handle(connection, raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def handle(self, connection: Any, raw: Any) -> None:
        self.log.debug("Client request raw message=%s", raw)
        try:
            request = Request.parse(raw)
            await self.dispatch(connection, request)
        except RequestError as exc:
            self.log.info("Rejected request from client=[%s]: %s", connection.remote, exc)
            await connection.send(ERROR, error_data(str(exc)))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.log.exception("Unhandled error processing request from client=[%s]", connection.remote)
            await connection.send(ERROR, error_data(f"Internal error: {exc}"))

    async def dispatch(self, connection: Any, request: Request) -> None:
        device: Optional[Device] = None
        if request.device_id:
            device = self.context.registry.get(request.device_id)
            if device is None:
                raise RequestError(f"Unknown device ID {request.device_id} in call {request.method}")

        if request.method == LIST_DEVICES:
            await connection.send(LIST_DEVICES, self.context.registry.snapshot())
            return

        handler = self._handlers.get(request.method)
        if handler is None:
            raise RequestError(f"Unknown method=[{request.method}]")
        if device is None:
            raise RequestError(f"Missing deviceID in call {request.method}")
        if request.method in kinds.SWITCH_ONLY_METHODS and device.is_dimmable():
            raise RequestError(f"Cannot {_SWITCH_ONLY_ACTIONS[request.method]} on dimmable device=[{device.name}]")
        if not device.supports(request.method):
            raise RequestError(f"Method {request.method} is not supported by deviceType={device.device_type}")
        await handler(connection, device, request)

    # ------------------------------------------------------------------
    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.command_timeout)

    async def _command(self, action: str, device: Device, awaitable: Awaitable[CommandStatus]) -> None:
        try:
            status = await self._call(awaitable)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.log.warning("ERROR: failed to %s device=[%s]: %s: %s", action, device.name, type(exc).__name__, exc)
            raise RequestError(f"ERROR: failed to {action} device=[{device.name}]") from exc
        if not status.success:
            self.log.warning("ERROR: failed to %s device=[%s] status=%s", action, device.name, status)
            raise RequestError(f"ERROR: failed to {action} device=[{device.name}]")

    async def _read(self, action: str, device: Device, awaitable: Awaitable[Any]) -> Any:
        try:
            return await self._call(awaitable)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.log.warning("ERROR: failed to %s device=[%s]: %s: %s", action, device.name, type(exc).__name__, exc)
            raise RequestError(f"ERROR: failed to {action} device=[{device.name}]") from exc

    async def _info(self, device: Device) -> Dict[str, Any]:
        info = dict(await self._read("read info from", device, device.capability.info()))
        info["deviceID"] = device.device_id
        return info

    async def _send_level(self, connection: Any, device: Device) -> None:
        level = await self._read("read level from", device, device.capability.level())
        await connection.send(EVENT, device_event(device, level))

    # ------------------------------------------------------------------
    async def _device_info(self, connection: Any, device: Device, request: Request) -> None:
        info = await self._info(device)
        if not device.is_dimmable():
            info.pop("rampRate", None)
            info.pop("onLevel", None)
        await connection.send(request.method, info)

    async def _device_level(self, connection: Any, device: Device, request: Request) -> None:
        await self._send_level(connection, device)

    async def _device_on(self, connection: Any, device: Device, request: Request) -> None:
        await self._command("turn on", device, device.capability.turn_on(request.level, request.rate))
        if not device.is_dimmable():
            await connection.send(EVENT, device_event(device, 100))
            return
        # The ramp can take minutes, so report the level now and keep polling until it settles
        await self._send_level(connection, device)
        ramp_time = request.rate
        expected_level = request.level
        if ramp_time is None or expected_level is None:
            info = await self._info(device)
            if ramp_time is None:
                ramp_time = info.get("rampRate") or 0
            if expected_level is None:
                expected_level = info.get("onLevel")
        self.tracker.track_ramp(device, connection.send, expected_level, ramp_time)

    async def _device_off(self, connection: Any, device: Device, request: Request) -> None:
        await self._command("turn off", device, device.capability.turn_off(request.rate))
        if not device.is_dimmable():
            await connection.send(EVENT, device_event(device, 0))
            return
        ramp_time = request.rate
        if ramp_time is None:
            info = await self._info(device)
            ramp_time = info.get("rampRate") or 0
        self.tracker.track_ramp(device, connection.send, 0, ramp_time)

    async def _device_fast_on(self, connection: Any, device: Device, request: Request) -> None:
        await self._command("turn on (fast)", device, device.capability.turn_on_fast())
        await self._send_level(connection, device)

    async def _device_fast_off(self, connection: Any, device: Device, request: Request) -> None:
        await self._command("turn off (fast)", device, device.capability.turn_off_fast())
        await connection.send(EVENT, device_event(device, 0))

    async def _device_set_ramp_rate(self, connection: Any, device: Device, request: Request) -> None:
        if request.rate is None:
            raise RequestError(f"Missing rate in call {request.method}")
        value = await self._read("set rampRate on", device, device.capability.set_ramp_rate(request.rate))
        await self._send_setting(connection, device, "rampRate", value)

    async def _device_set_on_level(self, connection: Any, device: Device, request: Request) -> None:
        if request.level is None:
            raise RequestError(f"Missing level in call {request.method}")
        value = await self._read("set onLevel on", device, device.capability.set_on_level(request.level))
        await self._send_setting(connection, device, "onLevel", value)

    async def _send_setting(self, connection: Any, device: Device, key: str, value: Any) -> None:
        if value is None:
            await connection.send(DEVICE_INFO, await self._info(device))
        else:
            await connection.send(DEVICE_INFO, {"deviceID": device.device_id, key: value})

    async def _device_set_level(self, connection: Any, device: Device, request: Request) -> None:
        if request.level is None:
            raise RequestError(f"Missing level in call {request.method}")
        await self._command(
            f"set level={request.level}",
            device,
            device.capability.set_level(request.level, request.rate),
        )
        await self._send_level(connection, device)


_SWITCH_ONLY_ACTIONS = {
    kinds.DEVICE_SET_RAMP_RATE: "set rampRate",
    kinds.DEVICE_SET_ON_LEVEL: "set onLevel",
    kinds.DEVICE_SET_LEVEL: "set level",
}


__all__ = ["CommandDispatcher", "Request", "RequestError"]
