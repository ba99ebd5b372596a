"""aiohttp application exposing the bridge WebSocket and status endpoints."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Iterable, Optional

from aiohttp import WSMsgType, web

from .bridge import BroadcastFn, InsteonBridge
from .config import BridgeConfig, ConfigError, DeviceConfig
from .connections import ClientConnection
from .hub import HubClient
from .insteon import InsteonHub

log = logging.getLogger("insteon_bridge.http")

BRIDGE_KEY = web.AppKey("bridge", InsteonBridge)


def create_app(bridge: InsteonBridge) -> web.Application:
    app = web.Application()
    app[BRIDGE_KEY] = bridge

    async def on_startup(app: web.Application) -> None:
        await bridge.start()

    async def on_shutdown(app: web.Application) -> None:
        await bridge.stop()

    app.on_startup.append(on_startup)
    app.on_shutdown.append(on_shutdown)

    async def handle_status(request: web.Request) -> web.Response:
        return web.json_response({"success": True, "status": bridge.status_snapshot()})

    async def handle_ws(request: web.Request) -> web.StreamResponse:
        # Pings and pongs are surfaced to the loop below so liveness is tracked here
        ws = web.WebSocketResponse(autoping=False)
        await ws.prepare(request)
        connection = ClientConnection(ws, request.remote)
        await bridge.connections.attach(connection)
        try:
            async for msg in ws:
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    connection.mark_alive()
                    bridge.dispatcher.submit(connection, msg.data)
                elif msg.type == WSMsgType.PONG:
                    log.debug("Received PONG response from client=[%s]", connection.remote)
                    connection.mark_alive()
                elif msg.type == WSMsgType.PING:
                    log.debug("Received PING request from client=[%s]", connection.remote)
                    connection.mark_alive()
                    await connection.pong(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    log.warning("Websocket error from client=[%s]: %s", connection.remote, ws.exception())
                    break
        finally:
            bridge.connections.detach(connection)
        return ws

    app.router.add_get("/status", handle_status)
    app.router.add_get("/", handle_ws)
    app.router.add_get("/ws", handle_ws)
    return app


async def start(
    device_configs: Iterable[Any],
    hub: HubClient,
    port: int,
    *,
    config: Optional[BridgeConfig] = None,
    broadcast_sink: Optional[BroadcastFn] = None,
) -> web.AppRunner:
    """Start serving the bridge on ``port``; call ``cleanup()`` on the runner to stop."""
    devices = [entry if isinstance(entry, DeviceConfig) else DeviceConfig.from_dict(entry) for entry in device_configs]
    if config is None:
        config = BridgeConfig(name="insteon", host="", model="plm", devices=devices)
    else:
        config.devices = devices
    config.bridge_port = port
    bridge = InsteonBridge(config, hub, broadcast_sink=broadcast_sink)
    runner = web.AppRunner(create_app(bridge))
    await runner.setup()
    site = web.TCPSite(runner, config.http_host, port)
    await site.start()
    log.info("Starting websocket server on %s:%s", config.http_host, port)
    return runner


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="insteon-bridge", description="Insteon hub to WebSocket bridge")
    parser.add_argument("--config", help="Path to config.json (default: $INSTEON_BRIDGE_CONFIG or ./config.json)")
    parser.add_argument("--log-level", help="Logging level (default: $INSTEON_LOG_LEVEL or INFO)")
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log.info("Reading config file")
    try:
        cfg = BridgeConfig.from_file(args.config)
    except ConfigError as exc:
        log.error("%s", exc)
        sys.exit(1)
    level = (args.log_level or cfg.log_level).upper()
    logging.getLogger().setLevel(level)
    log.info("config=%s", cfg.redacted())

    async def make_app() -> web.Application:
        return create_app(InsteonBridge(cfg, InsteonHub()))

    web.run_app(make_app(), host=cfg.http_host, port=cfg.bridge_port)


__all__ = ["BRIDGE_KEY", "create_app", "main", "start"]
