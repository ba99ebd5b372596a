"""Connects to the Insteon hub and announces connectivity to clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import BridgeConfig
from .hub import HubClient
from .messages import BRIDGE_STATUS, bridge_status

BroadcastFn = Callable[[str, Any], Awaitable[Any]]
SERIAL_BAUDRATE = 19200


async def _connect_hub2(hub: HubClient, config: BridgeConfig) -> None:
    await hub.connect_http(config.host, config.hub_port, config.username or "", config.password or "")


async def _connect_hub1(hub: HubClient, config: BridgeConfig) -> None:
    await hub.connect_tcp(config.host, config.hub_port)


async def _connect_serial(hub: HubClient, config: BridgeConfig) -> None:
    await hub.connect_serial(config.host, baudrate=SERIAL_BAUDRATE)


# model -> (label, connect strategy)
CONNECT_STRATEGIES: Dict[str, Any] = {
    "2245": ("Insteon 2245 hub", _connect_hub2),
    "2242": ("Insteon 2242 hub", _connect_hub1),
    "2243": ("Insteon 2243 hub", _connect_serial),
    "plm": ("Insteon PLM", _connect_serial),
}


class HubMonitor:
    """Owns the hub connection attempt and the shared connectivity flag."""

    def __init__(self, context: Any, hub: HubClient, broadcast_sinks: List[BroadcastFn]):
        self.context = context
        self.hub = hub
        self.config: BridgeConfig = context.config
        self.broadcast_sinks = broadcast_sinks
        self.log = logging.getLogger("insteon_bridge.monitor")
        self.connect_attempts = 0
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._connected_event = asyncio.Event()

    @property
    def target(self) -> str:
        return "PLM" if self.config.model == "plm" else "hub"

    async def _announce(self, message: str, **extra: Any) -> None:
        data = bridge_status(message, self.context.hub_connected, **extra)
        for sink in self.broadcast_sinks:
            try:
                await sink(BRIDGE_STATUS, data)
            except Exception:
                self.log.exception("Failed to deliver bridge status")

    async def connect(self) -> None:
        """Single connection attempt; raises when the hub cannot be reached."""
        label, strategy = CONNECT_STRATEGIES[self.config.model]
        self.connect_attempts += 1
        self.log.info(
            "Connecting to [%s] %s at [%s] (attempt %s)",
            self.config.name, label, self.config.host, self.connect_attempts,
        )
        await strategy(self.hub, self.config)
        self.context.hub_connected = True
        self.last_error = None
        self._connected_event.set()
        self.log.info("Connected to %s", self.target)
        await self._announce(f"Connected to {self.target}")

    async def run(self) -> None:
        base_backoff = self.config.reconnect_initial
        max_backoff = self.config.reconnect_max
        backoff = base_backoff
        while not self.context.hub_connected:
            try:
                await self.connect()
                return
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.last_error = f"{type(exc).__name__}: {exc}"
                self.log.warning("Hub connect failed: %s; retrying in %.0fs", self.last_error, backoff)
                await self._announce(f"Failed to connect to {self.target}", error=self.last_error)
            await asyncio.sleep(backoff)
            backoff = min(max_backoff, backoff * 2)

    async def wait_until_connected(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run(), name="insteon-connect")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        was_connected = self.context.hub_connected
        self.context.hub_connected = False
        self._connected_event.clear()
        try:
            await asyncio.wait_for(self.hub.close(), timeout=5)
        except Exception as exc:
            self.log.debug("Error closing hub connection: %s", exc)
        if was_connected:
            self.log.info("Disconnected from %s", self.target)


__all__ = ["CONNECT_STRATEGIES", "HubMonitor"]
