"""Wires the bridge components together around a shared context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import BridgeConfig
from .connections import ConnectionManager
from .devices import DeviceRegistry
from .dispatcher import CommandDispatcher
from .fanout import EventFanout
from .hub import HubClient
from .monitor import HubMonitor
from .tracker import LevelTracker

BroadcastFn = Callable[[str, Any], Awaitable[Any]]


@dataclass
class BridgeContext:
    """Process-scoped state shared by the bridge components.

    The registry is filled once at startup and only read afterwards. The
    connectivity flag is written by the hub monitor alone.
    """

    config: BridgeConfig
    registry: DeviceRegistry
    hub_connected: bool = False


class InsteonBridge:
    """Owns the bridge components and their lifecycle."""

    def __init__(self, config: BridgeConfig, hub: HubClient, *, broadcast_sink: Optional[BroadcastFn] = None):
        self.config = config
        self.hub = hub
        self.log = logging.getLogger("insteon_bridge.bridge")

        registry = DeviceRegistry(hub)
        for device_config in config.devices:
            registry.register(device_config)
        self.context = BridgeContext(config=config, registry=registry)

        self.connections = ConnectionManager(self.context, heartbeat_interval=config.heartbeat_interval)
        self.tracker = LevelTracker(read_timeout=config.command_timeout)
        self.dispatcher = CommandDispatcher(self.context, self.tracker, command_timeout=config.command_timeout)
        self.fanout = EventFanout(
            self.context, hub.events, self.connections.broadcast, read_timeout=config.command_timeout
        )
        sinks: List[BroadcastFn] = [self.connections.broadcast]
        if broadcast_sink is not None:
            sinks.append(broadcast_sink)
        self.monitor = HubMonitor(self.context, hub, sinks)
        self._started = False

    @property
    def registry(self) -> DeviceRegistry:
        return self.context.registry

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.connections.start()
        self.fanout.start()
        self.monitor.start()
        self.log.info("Insteon bridge started with %s devices (model=%s)", len(self.registry), self.config.model)

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.connections.stop()
        await self.dispatcher.cancel_all()
        await self.tracker.cancel_all()
        await self.fanout.stop()
        await self.monitor.stop()
        self.log.info("Insteon bridge stopped")

    def status_snapshot(self) -> Dict[str, Any]:
        return {
            "connected": self.context.hub_connected,
            "name": self.config.name,
            "model": self.config.model,
            "host": self.config.host,
            "connect_attempts": self.monitor.connect_attempts,
            "last_error": self.monitor.last_error,
            "device_count": len(self.registry),
            "ws_clients": len(self.connections.clients),
            "tracking_sessions": self.tracker.active,
        }


__all__ = ["BridgeContext", "InsteonBridge"]
